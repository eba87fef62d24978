from django.urls import path

from . import views

app_name = "bookings"
urlpatterns = [
    path("order", views.create_order_view, name="create_order"),
    path("verify", views.verify_payment_view, name="verify_payment"),

    # admin console API
    path("console/login", views.admin_login_view, name="admin_login"),
    path("console/bookings", views.admin_bookings_view, name="admin_bookings"),
    path("console/complete-session", views.admin_complete_session_view, name="admin_complete_session"),
]

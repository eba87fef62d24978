from django.contrib import admin
from django.urls import include, path

from . import views

urlpatterns = [
    path("", include("bookings.urls")),
    path("admin/", admin.site.urls),
]

handler404 = views.error_404_view
handler500 = views.error_500_view

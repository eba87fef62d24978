from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("booking_ref", "customer_name", "appointment_date", "appointment_time",
                    "payment_status", "session_status", "created_at")
    search_fields = ("booking_ref", "customer_name", "customer_email", "customer_phone",
                     "razorpay_order_id", "razorpay_payment_id")
    list_filter = ("payment_status", "session_status", "appointment_date", "created_at")
    readonly_fields = ("booking_ref", "razorpay_order_id", "razorpay_payment_id", "amount_paid",
                       "payment_status", "failure_reason", "feedback_sent_at", "created_at", "updated_at")
    ordering = ("-created_at",)

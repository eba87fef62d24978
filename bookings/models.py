import uuid

from django.db import models

from .utils import paise_to_rupees


class Booking(models.Model):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
    ]

    SESSION_SCHEDULED = "scheduled"
    SESSION_COMPLETED = "completed"
    SESSION_CHOICES = [
        (SESSION_SCHEDULED, "Scheduled"),
        (SESSION_COMPLETED, "Completed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking_ref = models.CharField(max_length=16, unique=True, editable=False)  # PZ-YYYY-XXXX

    customer_name = models.CharField(max_length=128)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=20)
    city = models.CharField(max_length=64)
    problem = models.CharField(max_length=128)
    circumstances = models.TextField()
    appointment_date = models.DateField()
    appointment_time = models.TimeField()

    payment_status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=PENDING, db_index=True)
    razorpay_order_id = models.CharField(max_length=64, unique=True)
    razorpay_payment_id = models.CharField(max_length=64, blank=True, default="")
    amount_paid = models.PositiveIntegerField()  # paise
    failure_reason = models.CharField(max_length=255, blank=True, default="")

    session_status = models.CharField(max_length=16, choices=SESSION_CHOICES, default=SESSION_SCHEDULED)
    session_completed_at = models.DateTimeField(null=True, blank=True)
    admin_notes = models.TextField(blank=True, default="")
    feedback_due_at = models.DateTimeField(null=True, blank=True, db_index=True)
    feedback_sent_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    @property
    def is_terminal(self) -> bool:
        return self.payment_status in (self.COMPLETED, self.FAILED)

    @property
    def amount_rupees(self):
        return paise_to_rupees(self.amount_paid)

    def as_dict(self) -> dict:
        return {
            "id": str(self.id),
            "booking_ref": self.booking_ref,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "city": self.city,
            "problem": self.problem,
            "circumstances": self.circumstances,
            "appointment_date": self.appointment_date.isoformat(),
            "appointment_time": self.appointment_time.strftime("%H:%M"),
            "payment_status": self.payment_status,
            "razorpay_order_id": self.razorpay_order_id,
            "razorpay_payment_id": self.razorpay_payment_id or None,
            "amount_paid": self.amount_paid,
            "failure_reason": self.failure_reason or None,
            "session_status": self.session_status,
            "session_completed_at": self.session_completed_at.isoformat() if self.session_completed_at else None,
            "admin_notes": self.admin_notes or None,
            "feedback_sent_at": self.feedback_sent_at.isoformat() if self.feedback_sent_at else None,
        }

    def __str__(self):
        return f"{self.booking_ref} ({self.payment_status})"

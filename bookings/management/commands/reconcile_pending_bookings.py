import datetime
import time

from django.core.management.base import BaseCommand
from django.utils import timezone

from bookings.models import Booking
from bookings.services import BookingError
from bookings.workflow import reconcile_booking
from payments.integrations.razorpay import RazorpayError


class Command(BaseCommand):
    help = "Poll Razorpay for stale pending bookings and complete those that were paid"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=50)
        parser.add_argument("--sleep", type=float, default=0.2)
        parser.add_argument("--older-than-minutes", type=int, default=15)

    def handle(self, *args, **opts):
        cutoff = timezone.now() - datetime.timedelta(minutes=opts["older_than_minutes"])
        qs = (
            Booking.objects
            .filter(payment_status=Booking.PENDING, created_at__lt=cutoff)
            .order_by("created_at")[:opts["max"]]
        )

        checked = completed = 0
        for booking in qs:
            checked += 1
            try:
                status = reconcile_booking(booking)
            except (RazorpayError, BookingError) as e:
                self.stdout.write(self.style.WARNING(f"{booking.booking_ref}: {e}"))
                continue
            if status == Booking.COMPLETED:
                completed += 1
                self.stdout.write(self.style.SUCCESS(f"{booking.booking_ref} -> completed"))
            else:
                self.stdout.write(f"{booking.booking_ref}: gateway status={status}")
            if opts["sleep"]:
                time.sleep(opts["sleep"])

        self.stdout.write(self.style.SUCCESS(f"Checked {checked}, completed {completed} bookings."))

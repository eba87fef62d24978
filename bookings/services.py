import datetime
import logging

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from .models import Booking
from .utils import gen_booking_ref, paise_to_rupees

logger = logging.getLogger(__name__)


class BookingError(Exception):
    pass


class BookingNotFound(BookingError):
    pass


class PersistenceError(BookingError):
    pass


class DuplicateReference(PersistenceError):
    pass


class InvalidTransition(BookingError):
    def __init__(self, booking, target):
        super().__init__(
            f"Booking {booking.booking_ref} is already {booking.payment_status}; cannot mark {target}"
        )
        self.booking = booking
        self.target = target


def create_booking(*, customer_name, customer_email, customer_phone, city, problem,
                   circumstances, appointment_date, appointment_time,
                   razorpay_order_id, amount_paid) -> Booking:
    """Insert a pending booking tied to a gateway order.

    Idempotent against ``razorpay_order_id``: a second call for the same
    order returns the existing row instead of creating another.
    """
    existing = Booking.objects.filter(razorpay_order_id=razorpay_order_id).first()
    if existing is not None:
        return existing

    try:
        with transaction.atomic():
            return Booking.objects.create(
                booking_ref=gen_booking_ref(),
                customer_name=customer_name,
                customer_email=customer_email,
                customer_phone=customer_phone,
                city=city,
                problem=problem,
                circumstances=circumstances,
                appointment_date=appointment_date,
                appointment_time=appointment_time,
                payment_status=Booking.PENDING,
                razorpay_order_id=razorpay_order_id,
                amount_paid=amount_paid,
            )
    except IntegrityError as e:
        # Lost a race on the order id, or the reference collided
        existing = Booking.objects.filter(razorpay_order_id=razorpay_order_id).first()
        if existing is not None:
            return existing
        raise DuplicateReference(str(e)) from e
    except DatabaseError as e:
        raise PersistenceError(str(e)) from e


def _transition(order_id: str, target: str, **fields):
    now = timezone.now()
    try:
        updated = (
            Booking.objects
            .filter(razorpay_order_id=order_id, payment_status=Booking.PENDING)
            .update(payment_status=target, updated_at=now, **fields)
        )
        booking = Booking.objects.filter(razorpay_order_id=order_id).first()
    except DatabaseError as e:
        raise PersistenceError(str(e)) from e
    if booking is None:
        raise BookingNotFound(f"No booking for order {order_id}")
    return booking, bool(updated)


def complete_booking(order_id: str, payment_id: str):
    """Mark a pending booking paid. Returns ``(booking, changed)``.

    Repeating the call with the same payment id is a no-op
    (``changed=False``); any other terminal state is rejected.
    """
    booking, changed = _transition(order_id, Booking.COMPLETED, razorpay_payment_id=payment_id)
    if changed:
        logger.info("Booking %s completed (order=%s payment=%s)", booking.booking_ref, order_id, payment_id)
        return booking, True
    if booking.payment_status == Booking.COMPLETED and booking.razorpay_payment_id == payment_id:
        return booking, False
    raise InvalidTransition(booking, Booking.COMPLETED)


def fail_booking(order_id: str, reason: str):
    """Mark a pending booking failed. Returns ``(booking, changed)``."""
    booking, changed = _transition(order_id, Booking.FAILED, failure_reason=reason)
    if changed:
        logger.info("Booking %s failed (order=%s): %s", booking.booking_ref, order_id, reason)
        return booking, True
    if booking.payment_status == Booking.FAILED:
        return booking, False
    raise InvalidTransition(booking, Booking.FAILED)


def _get(**lookup) -> Booking:
    try:
        return Booking.objects.get(**lookup)
    except (Booking.DoesNotExist, ValueError, DjangoValidationError):
        raise BookingNotFound(f"No booking for {lookup}")
    except DatabaseError as e:
        raise PersistenceError(str(e)) from e


def get_booking_by_ref(booking_ref: str) -> Booking:
    return _get(booking_ref=booking_ref)


def get_booking_by_order_id(order_id: str) -> Booking:
    return _get(razorpay_order_id=order_id)


def list_bookings(status: str | None = None):
    qs = Booking.objects.order_by("-created_at")
    if status:
        qs = qs.filter(payment_status=status)
    return qs


def booking_stats() -> dict:
    agg = Booking.objects.aggregate(
        total=Count("id"),
        completed=Count("id", filter=Q(payment_status=Booking.COMPLETED)),
        pending=Count("id", filter=Q(payment_status=Booking.PENDING)),
        failed=Count("id", filter=Q(payment_status=Booking.FAILED)),
        revenue=Sum("amount_paid", filter=Q(payment_status=Booking.COMPLETED)),
    )
    agg["revenue"] = paise_to_rupees(agg["revenue"] or 0)
    return agg


def complete_session(booking_id, notes: str = "", now=None) -> Booking:
    """Record that the counseling session happened and schedule the feedback prompt."""
    now = now or timezone.now()
    booking = _get(pk=booking_id)
    booking.session_status = Booking.SESSION_COMPLETED
    booking.session_completed_at = now
    booking.admin_notes = notes or ""
    if booking.feedback_sent_at is None:
        booking.feedback_due_at = now + datetime.timedelta(minutes=settings.FEEDBACK_DELAY_MINUTES)
    try:
        booking.save(update_fields=[
            "session_status", "session_completed_at", "admin_notes", "feedback_due_at", "updated_at",
        ])
    except DatabaseError as e:
        raise PersistenceError(str(e)) from e
    return booking


def due_feedback_sends(now=None):
    now = now or timezone.now()
    return (
        Booking.objects
        .filter(
            payment_status=Booking.COMPLETED,
            session_status=Booking.SESSION_COMPLETED,
            feedback_due_at__lte=now,
            feedback_sent_at__isnull=True,
        )
        .order_by("feedback_due_at")
    )


def mark_feedback_sent(booking: Booking, now=None) -> bool:
    now = now or timezone.now()
    updated = (
        Booking.objects
        .filter(pk=booking.pk, feedback_sent_at__isnull=True)
        .update(feedback_sent_at=now, updated_at=now)
    )
    booking.feedback_sent_at = now
    return bool(updated)

"""Booking workflow: order creation, payment verification, failure reports.

Views call into this module and translate ``WorkflowError`` subclasses into
HTTP responses via ``status_code``. The charged amount always comes from
``settings.BOOKING_AMOUNT_PAISE``; the client never supplies it.
"""

import logging
import time

from django.conf import settings
from django.utils import timezone

from payments.integrations import razorpay
from payments.integrations.razorpay import RazorpayError

from .forms import BookingOrderForm
from .models import Booking
from .notifications import dispatch_confirmations, dispatch_feedback_request
from .services import (
    BookingNotFound,
    DuplicateReference,
    InvalidTransition,
    PersistenceError,
    complete_booking,
    create_booking,
    due_feedback_sends,
    fail_booking,
    mark_feedback_sent,
)
from . import services

logger = logging.getLogger(__name__)

REQUIRED_ORDER_FIELDS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "city",
    "problem",
    "circumstances",
    "appointment_date",
    "appointment_time",
)
REQUIRED_VERIFY_FIELDS = ("razorpay_order_id", "razorpay_payment_id", "razorpay_signature")

INVALID_SIGNATURE_REASON = "Invalid payment signature"
DEFAULT_FAILURE_REASON = "Payment failed or cancelled by user"
# Client-reported reasons longer than the column are cut to fit
FAILURE_REASON_MAX_LENGTH = Booking._meta.get_field("failure_reason").max_length


class WorkflowError(Exception):
    status_code = 500

    def __init__(self, message, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra


class ValidationError(WorkflowError):
    status_code = 400


class NotFound(WorkflowError):
    status_code = 404


class Conflict(WorkflowError):
    status_code = 409


class UpstreamError(WorkflowError):
    status_code = 500


def _require(data: dict, fields) -> None:
    missing = [k for k in fields if not str(data.get(k) or "").strip()]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)


def _clean_str(data: dict, key: str) -> str:
    return str(data.get(key) or "").strip()


def create_order(data: dict):
    """Create the gateway order and the pending booking that references it.

    Returns ``(order, booking)``. A failed gateway call leaves no booking
    behind. If the booking insert fails after the order exists, the order id
    is logged as orphaned; unpaid Razorpay orders expire on their own.
    """
    _require(data, REQUIRED_ORDER_FIELDS)
    form = BookingOrderForm(data)
    if not form.is_valid():
        errors = {field: [str(m) for m in msgs] for field, msgs in form.errors.items()}
        raise ValidationError(f"Invalid fields: {', '.join(errors)}", fields=errors)
    cleaned = form.cleaned_data

    amount = settings.BOOKING_AMOUNT_PAISE
    try:
        order = razorpay.create_order(
            amount=amount,
            currency=settings.BOOKING_CURRENCY,
            receipt=f"booking_{int(time.time() * 1000)}",
            notes={
                "customer_name": cleaned["customer_name"],
                "customer_email": cleaned["customer_email"],
                "customer_phone": cleaned["customer_phone"],
                "problem": cleaned["problem"],
                "appointment_date": cleaned["appointment_date"].isoformat(),
                "appointment_time": cleaned["appointment_time"].strftime("%H:%M"),
            },
        )
    except RazorpayError as e:
        logger.error("Failed to create Razorpay order: %s", e)
        raise UpstreamError("Failed to create payment order") from e

    order_id = order["id"]
    attempts = max(1, settings.BOOKING_REF_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            booking = create_booking(razorpay_order_id=order_id, amount_paid=amount, **cleaned)
            break
        except DuplicateReference:
            logger.warning("Booking reference collision for order %s (attempt %s/%s)", order_id, attempt, attempts)
        except PersistenceError as e:
            logger.error("Orphaned Razorpay order %s: booking insert failed: %s", order_id, e)
            raise UpstreamError("Failed to create booking record") from e
    else:
        logger.error("Orphaned Razorpay order %s: no unique booking reference after %s attempts", order_id, attempts)
        raise UpstreamError("Failed to create booking record")

    logger.info("Booking %s created pending for order %s", booking.booking_ref, order_id)
    return order, booking


def verify_payment(data: dict) -> dict:
    """Verify the checkout signature and settle the booking.

    An invalid signature is an outcome, not an error: the booking is marked
    failed and ``{"verified": False, ...}`` is returned.
    """
    _require(data, REQUIRED_VERIFY_FIELDS)
    order_id = _clean_str(data, "razorpay_order_id")
    payment_id = _clean_str(data, "razorpay_payment_id")
    signature = _clean_str(data, "razorpay_signature")

    if not razorpay.verify_payment_signature(order_id=order_id, payment_id=payment_id, signature=signature):
        logger.warning("Invalid payment signature for order %s payment %s", order_id, payment_id)
        booking = None
        try:
            booking, _ = fail_booking(order_id, INVALID_SIGNATURE_REASON)
        except InvalidTransition as e:
            # A forged notice must not undo a settled booking
            logger.warning("Invalid signature ignored for settled booking: %s", e)
            booking = e.booking
        except BookingNotFound:
            logger.warning("Invalid signature for unknown order %s", order_id)
        except PersistenceError as e:
            logger.error("Could not mark order %s failed after invalid signature: %s", order_id, e)
        return {"verified": False, "booking": booking, "changed": False, "notifications": {}}

    try:
        booking, changed = complete_booking(order_id, payment_id)
    except BookingNotFound as e:
        logger.error("Valid payment %s for unknown order %s", payment_id, order_id)
        raise NotFound("Booking not found") from e
    except InvalidTransition as e:
        logger.error("Payment %s verified for order %s but %s", payment_id, order_id, e)
        raise Conflict("Booking is no longer pending", booking_ref=e.booking.booking_ref) from e
    except PersistenceError as e:
        logger.error("Failed to complete booking for order %s: %s", order_id, e)
        raise UpstreamError("Failed to confirm booking") from e

    notifications = dispatch_confirmations(booking) if changed else {}
    return {"verified": True, "booking": booking, "changed": changed, "notifications": notifications}


def report_failure(data: dict):
    _require(data, ("razorpay_order_id",))
    order_id = _clean_str(data, "razorpay_order_id")
    reason = _clean_str(data, "reason") or DEFAULT_FAILURE_REASON
    if len(reason) > FAILURE_REASON_MAX_LENGTH:
        logger.info("Failure reason for order %s truncated from %s chars", order_id, len(reason))
        reason = reason[:FAILURE_REASON_MAX_LENGTH]
    try:
        booking, _ = fail_booking(order_id, reason)
    except BookingNotFound as e:
        raise NotFound("Booking not found") from e
    except InvalidTransition as e:
        raise Conflict("Booking is already completed", booking_ref=e.booking.booking_ref) from e
    except PersistenceError as e:
        logger.error("Failed to update booking status for order %s: %s", order_id, e)
        raise UpstreamError("Failed to update booking status") from e
    return booking


def complete_session(data: dict):
    _require(data, ("booking_id",))
    try:
        return services.complete_session(_clean_str(data, "booking_id"), _clean_str(data, "notes"))
    except BookingNotFound as e:
        raise NotFound("Booking not found") from e
    except PersistenceError as e:
        logger.error("Failed to complete session %s: %s", data.get("booking_id"), e)
        raise UpstreamError("Failed to update booking") from e


def send_due_feedback(now=None, limit=None) -> dict:
    """Send every feedback prompt that is due; unsent ones stay due for the next run."""
    now = now or timezone.now()
    qs = due_feedback_sends(now)
    if limit:
        qs = qs[:limit]
    sent = failed = 0
    for booking in qs:
        results = dispatch_feedback_request(booking)
        if all(r.get("success") for r in results.values()):
            mark_feedback_sent(booking, now)
            sent += 1
        else:
            failed += 1
    return {"sent": sent, "failed": failed}


def reconcile_booking(booking) -> str:
    """Settle a pending booking from the gateway's view of its order.

    Returns the resulting status label. ``RazorpayError`` propagates.
    """
    order = razorpay.fetch_order(booking.razorpay_order_id)
    if str(order.get("status", "")).lower() != "paid":
        return str(order.get("status") or "unknown")
    captured = [p for p in razorpay.fetch_order_payments(booking.razorpay_order_id) if p.get("status") == "captured"]
    if not captured:
        return "paid-without-capture"
    booking, changed = complete_booking(booking.razorpay_order_id, captured[0]["id"])
    if changed:
        dispatch_confirmations(booking)
    return booking.payment_status

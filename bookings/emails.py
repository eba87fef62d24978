import logging
from typing import List

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from .utils import format_date, format_time

logger = logging.getLogger(__name__)


def _admin_recipients() -> List[str]:
    # Comma-separated list via env or settings; fall back to DEFAULT_FROM_EMAIL/host user
    raw = getattr(settings, "ADMIN_EMAILS", None)
    if not raw:
        raw = ",".join([
            getattr(settings, "EMAIL_HOST_USER", "") or "",
            getattr(settings, "DEFAULT_FROM_EMAIL", "") or "",
        ])
    emails = [e.strip() for e in (raw or "").split(",") if e and e.strip()]
    seen = set()
    uniq: List[str] = []
    for e in emails:
        if e.lower() not in seen:
            seen.add(e.lower())
            uniq.append(e)
    return uniq


def _context(booking) -> dict:
    return {
        "booking": booking,
        "amount": booking.amount_rupees,
        "appointment_date": format_date(booking.appointment_date, long=True),
        "appointment_time": format_time(booking.appointment_time),
    }


def _send(subject: str, template: str, context: dict, recipients: List[str]) -> dict:
    from_email = getattr(settings, "DEFAULT_FROM_EMAIL", None) or getattr(settings, "EMAIL_HOST_USER", None)
    try:
        text = render_to_string(f"emails/{template}.txt", context)
        html = render_to_string(f"emails/{template}.html", context)
        msg = EmailMultiAlternatives(subject, text, from_email, recipients)
        msg.attach_alternative(html, "text/html")
        msg.send(fail_silently=False)
    except Exception as e:
        logger.exception("Failed to send %s email to %s", template, recipients)
        return {"success": False, "error": str(e)}
    return {"success": True, "error": None}


def send_admin_notification(booking) -> dict:
    """Email the booking and payment details to the configured admins."""
    admins = _admin_recipients()
    if not admins:
        return {"success": False, "error": "Admin email not configured"}
    subject = f"New Booking: {booking.customer_name} - {booking.booking_ref}"
    return _send(subject, "booking_notification_admin", _context(booking), admins)


def send_customer_confirmation(booking) -> dict:
    if not booking.customer_email:
        return {"success": False, "error": "Customer has no email"}
    subject = f"Booking confirmed: {booking.booking_ref} (Psychology Zone)"
    return _send(subject, "booking_confirmation_customer", _context(booking), [booking.customer_email])

"""Best-effort fan-out of booking notifications.

Each channel is an independent task returning ``{"success", "error"}``.
Failures are logged and reported back but never raised: the booking's
payment state does not depend on messaging being available.
"""

import logging

from . import emails, whatsapp

logger = logging.getLogger(__name__)


def _run(tasks, booking) -> dict:
    results = {}
    for name, task in tasks:
        try:
            result = task(booking)
        except Exception as e:
            logger.exception("Notification task %s crashed for %s", name, booking.booking_ref)
            result = {"success": False, "error": str(e)}
        if not result.get("success"):
            logger.warning("Notification %s not delivered for %s: %s", name, booking.booking_ref, result.get("error"))
        results[name] = result
    return results


def dispatch_confirmations(booking) -> dict:
    return _run([
        ("whatsapp_customer", whatsapp.send_customer_confirmation),
        ("whatsapp_admin", whatsapp.send_admin_notification),
        ("email_customer", emails.send_customer_confirmation),
        ("email_admin", emails.send_admin_notification),
    ], booking)


def dispatch_feedback_request(booking) -> dict:
    return _run([("whatsapp_feedback", whatsapp.send_feedback_request)], booking)

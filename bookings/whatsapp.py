"""Interakt WhatsApp template messages for bookings.

Every sender returns ``{"success": bool, "error": str | None}`` and never
raises; the caller decides how loudly to log.
"""

import logging

import requests
from django.conf import settings
from requests import RequestException

from .utils import format_date, format_time, normalize_phone

logger = logging.getLogger(__name__)


def _payload(phone: str, template: str, body_values: list, callback: str) -> dict:
    country_code, number = normalize_phone(phone)
    return {
        "countryCode": country_code,
        "phoneNumber": number,
        "callbackData": callback,
        "type": "Template",
        "template": {
            "name": template,
            "languageCode": "en",
            "bodyValues": body_values,
        },
    }


def _send_message(payload: dict) -> dict:
    api_key = settings.INTERAKT_API_KEY
    if not api_key:
        return {"success": False, "error": "Interakt API key not configured"}
    try:
        resp = requests.post(
            settings.INTERAKT_BASE_URL,
            json=payload,
            headers={"Content-Type": "application/json", "Authorization": f"Basic {api_key}"},
            timeout=settings.INTERAKT_TIMEOUT,
        )
    except RequestException as e:
        logger.error("Interakt request failed for %s: %s", payload.get("callbackData"), e)
        return {"success": False, "error": str(e)}
    try:
        data = resp.json()
    except ValueError:
        data = {}
    if not resp.ok:
        logger.error("Interakt API error %s for %s: %s", resp.status_code, payload.get("callbackData"), data)
        return {"success": False, "error": data.get("message") or f"HTTP {resp.status_code}"}
    logger.info("WhatsApp template %s sent for %s", payload["template"]["name"], payload.get("callbackData"))
    return {"success": True, "error": None}


def send_customer_confirmation(booking) -> dict:
    payload = _payload(
        booking.customer_phone,
        settings.INTERAKT_CUSTOMER_TEMPLATE,
        [
            booking.customer_name,
            format_date(booking.appointment_date),
            format_time(booking.appointment_time),
            booking.booking_ref,
        ],
        booking.booking_ref,
    )
    return _send_message(payload)


def send_admin_notification(booking) -> dict:
    if not settings.ADMIN_WHATSAPP_NUMBER:
        return {"success": False, "error": "Admin WhatsApp number not configured"}
    payload = _payload(
        settings.ADMIN_WHATSAPP_NUMBER,
        settings.INTERAKT_ADMIN_TEMPLATE,
        [
            booking.booking_ref,
            booking.customer_name,
            booking.customer_phone,
            booking.customer_email,
            booking.problem,
            format_date(booking.appointment_date),
            format_time(booking.appointment_time),
            f"₹{booking.amount_rupees}",
        ],
        booking.booking_ref,
    )
    return _send_message(payload)


def send_feedback_request(booking) -> dict:
    payload = _payload(
        booking.customer_phone,
        settings.INTERAKT_FEEDBACK_TEMPLATE,
        [booking.customer_name, format_date(booking.appointment_date)],
        booking.booking_ref,
    )
    return _send_message(payload)

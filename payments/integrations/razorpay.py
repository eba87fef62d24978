"""Thin client for the Razorpay Orders/Payments REST API.

Only the calls the booking flow needs are wrapped here. Signature
verification is computed locally from ``RAZORPAY_KEY_SECRET``; the
client-supplied payment notice is never trusted on its own.
"""

import hashlib
import hmac
import json
import logging

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from requests import RequestException
from requests.auth import HTTPBasicAuth

logger = logging.getLogger(__name__)


class RazorpayError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


def key_id() -> str:
    return settings.RAZORPAY_KEY_ID or ""


def _auth() -> HTTPBasicAuth:
    if not (settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET):
        raise RazorpayError("Missing RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET")
    return HTTPBasicAuth(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET)


def _url(path: str) -> str:
    return f"{settings.RAZORPAY_BASE_URL.rstrip('/')}/{path.lstrip('/')}"


def _request(method: str, path: str, *, what: str, payload=None) -> dict:
    try:
        resp = requests.request(
            method,
            _url(path),
            auth=_auth(),
            json=payload,
            timeout=settings.RAZORPAY_TIMEOUT,
        )
    except RequestException as e:
        raise RazorpayError(f"Gateway request failed: {e}")
    try:
        data = resp.json()
    except ValueError:
        data = {"raw": resp.text}
    if 200 <= resp.status_code < 300:
        return data

    error = (data.get("error") or {}) if isinstance(data, dict) else {}
    description = error.get("description") or ""
    if resp.status_code == 401:
        hint = "Check RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET."
    elif resp.status_code == 400:
        hint = f"Bad request: {description or 'see response'}."
    elif resp.status_code == 404:
        hint = "Not found."
    else:
        hint = f"HTTP {resp.status_code}"
    raise RazorpayError(
        f"{what} failed: {hint} Response: {json.dumps(data)[:800]}",
        status_code=resp.status_code,
    )


def create_order(*, amount, currency="INR", receipt, notes=None) -> dict:
    """Create a gateway order for ``amount`` paise.

    The amount is decided by the caller from server-side configuration and
    must be a positive integer; the checkout client never supplies it.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise RazorpayError("Invalid amount value (expected positive integer paise)")
    payload = {
        "amount": amount,
        "currency": currency or "INR",
        "receipt": receipt,
        "notes": notes or {},
    }
    order = _request("POST", "orders", what="Create order", payload=payload)
    logger.info("Razorpay order created id=%s receipt=%s amount=%s", order.get("id"), receipt, amount)
    return order


def fetch_order(order_id: str) -> dict:
    return _request("GET", f"orders/{order_id}", what="Fetch order")


def fetch_payment(payment_id: str) -> dict:
    return _request("GET", f"payments/{payment_id}", what="Fetch payment")


def fetch_order_payments(order_id: str) -> list:
    data = _request("GET", f"orders/{order_id}/payments", what="Fetch order payments")
    return data.get("items") or []


def payment_signature(order_id: str, payment_id: str) -> str:
    secret = settings.RAZORPAY_KEY_SECRET
    if not secret:
        logger.error("RAZORPAY_KEY_SECRET missing in settings")
        raise ImproperlyConfigured("RAZORPAY_KEY_SECRET setting is required to verify payments")
    msg = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), msg, hashlib.sha256).hexdigest()


def verify_payment_signature(*, order_id: str, payment_id: str, signature: str) -> bool:
    """Check the checkout signature over ``order_id|payment_id``.

    Returns ``False`` on mismatch; only a missing secret raises.
    """
    expected = payment_signature(order_id or "", payment_id or "")
    # Bytes, since compare_digest rejects non-ASCII str input
    return hmac.compare_digest(expected.encode(), (signature or "").strip().encode("utf-8"))

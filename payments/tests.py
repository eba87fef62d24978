import hashlib
import hmac
from unittest.mock import patch

import requests
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings

from .integrations import razorpay


def _mutations(value: str):
    for i, ch in enumerate(value):
        yield value[:i] + ("X" if ch != "X" else "Y") + value[i + 1:]


class FakeResponse:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data
        self.text = text

    def json(self):
        if self._data is None:
            raise ValueError("no json")
        return self._data


@override_settings(RAZORPAY_KEY_SECRET="shh-secret")
class VerifyPaymentSignatureTests(SimpleTestCase):
    order_id = "order_Nx1AbC9"
    payment_id = "pay_Qw7ZyX2"

    def _sign(self, order_id, payment_id, secret="shh-secret"):
        msg = f"{order_id}|{payment_id}".encode()
        return hmac.new(secret.encode(), msg, hashlib.sha256).hexdigest()

    def test_valid_signature(self):
        sig = self._sign(self.order_id, self.payment_id)
        self.assertTrue(razorpay.verify_payment_signature(
            order_id=self.order_id, payment_id=self.payment_id, signature=sig))

    def test_any_single_character_mutation_is_rejected(self):
        sig = self._sign(self.order_id, self.payment_id)
        for bad_order in _mutations(self.order_id):
            self.assertFalse(razorpay.verify_payment_signature(
                order_id=bad_order, payment_id=self.payment_id, signature=sig))
        for bad_payment in _mutations(self.payment_id):
            self.assertFalse(razorpay.verify_payment_signature(
                order_id=self.order_id, payment_id=bad_payment, signature=sig))
        for bad_sig in _mutations(sig):
            self.assertFalse(razorpay.verify_payment_signature(
                order_id=self.order_id, payment_id=self.payment_id, signature=bad_sig))

    def test_signature_from_other_secret_rejected(self):
        sig = self._sign(self.order_id, self.payment_id, secret="other")
        self.assertFalse(razorpay.verify_payment_signature(
            order_id=self.order_id, payment_id=self.payment_id, signature=sig))

    def test_empty_signature_rejected(self):
        self.assertFalse(razorpay.verify_payment_signature(
            order_id=self.order_id, payment_id=self.payment_id, signature=None))

    def test_non_ascii_signature_rejected(self):
        sig = self._sign(self.order_id, self.payment_id)
        for bad_sig in ("sigé", sig[:-1] + "é", "₹" * 64):
            self.assertFalse(razorpay.verify_payment_signature(
                order_id=self.order_id, payment_id=self.payment_id, signature=bad_sig))

    @override_settings(RAZORPAY_KEY_SECRET="")
    def test_missing_secret_is_a_configuration_error(self):
        with self.assertLogs("payments.integrations.razorpay", level="ERROR"):
            with self.assertRaises(ImproperlyConfigured):
                razorpay.verify_payment_signature(
                    order_id=self.order_id, payment_id=self.payment_id, signature="x")


@override_settings(
    RAZORPAY_KEY_ID="rzp_test_key",
    RAZORPAY_KEY_SECRET="shh-secret",
    RAZORPAY_BASE_URL="https://api.example.com/v1/",
    RAZORPAY_TIMEOUT=7,
)
class GatewayCallTests(SimpleTestCase):
    def test_create_order_posts_amount_with_basic_auth(self):
        order = {"id": "order_1", "amount": 59900, "currency": "INR", "status": "created"}
        with patch("payments.integrations.razorpay.requests.request",
                   return_value=FakeResponse(200, order)) as req:
            result = razorpay.create_order(amount=59900, receipt="booking_1", notes={"a": "b"})

        self.assertEqual(result, order)
        args, kwargs = req.call_args
        self.assertEqual(args, ("POST", "https://api.example.com/v1/orders"))
        self.assertEqual(kwargs["json"], {
            "amount": 59900, "currency": "INR", "receipt": "booking_1", "notes": {"a": "b"},
        })
        self.assertEqual(kwargs["auth"].username, "rzp_test_key")
        self.assertEqual(kwargs["auth"].password, "shh-secret")
        self.assertEqual(kwargs["timeout"], 7)

    def test_create_order_rejects_non_positive_or_fractional_amount(self):
        with patch("payments.integrations.razorpay.requests.request") as req:
            for bad in (0, -100, 599.0, "59900", True):
                with self.assertRaises(razorpay.RazorpayError):
                    razorpay.create_order(amount=bad, receipt="r")
        req.assert_not_called()

    def test_upstream_error_carries_status_and_description(self):
        body = {"error": {"code": "BAD_REQUEST_ERROR", "description": "receipt too long"}}
        with patch("payments.integrations.razorpay.requests.request",
                   return_value=FakeResponse(400, body)):
            with self.assertRaises(razorpay.RazorpayError) as cm:
                razorpay.create_order(amount=100, receipt="r")
        self.assertEqual(cm.exception.status_code, 400)
        self.assertIn("receipt too long", str(cm.exception))

    def test_non_json_error_body(self):
        with patch("payments.integrations.razorpay.requests.request",
                   return_value=FakeResponse(502, None, text="bad gateway")):
            with self.assertRaises(razorpay.RazorpayError) as cm:
                razorpay.fetch_order("order_1")
        self.assertEqual(cm.exception.status_code, 502)
        self.assertIn("bad gateway", str(cm.exception))

    def test_timeout_becomes_gateway_error(self):
        with patch("payments.integrations.razorpay.requests.request",
                   side_effect=requests.Timeout("read timed out")):
            with self.assertRaises(razorpay.RazorpayError) as cm:
                razorpay.fetch_payment("pay_1")
        self.assertIsNone(cm.exception.status_code)

    def test_fetch_calls_use_expected_paths(self):
        with patch("payments.integrations.razorpay.requests.request",
                   return_value=FakeResponse(200, {"items": [{"id": "pay_1"}]})) as req:
            payments = razorpay.fetch_order_payments("order_9")
            razorpay.fetch_order("order_9")
            razorpay.fetch_payment("pay_1")

        self.assertEqual(payments, [{"id": "pay_1"}])
        urls = [c.args[1] for c in req.call_args_list]
        self.assertEqual(urls, [
            "https://api.example.com/v1/orders/order_9/payments",
            "https://api.example.com/v1/orders/order_9",
            "https://api.example.com/v1/payments/pay_1",
        ])
        self.assertTrue(all(c.args[0] == "GET" for c in req.call_args_list))

    @override_settings(RAZORPAY_KEY_ID="")
    def test_missing_credentials(self):
        with patch("payments.integrations.razorpay.requests.request") as req:
            with self.assertRaises(razorpay.RazorpayError):
                razorpay.fetch_order("order_1")
        req.assert_not_called()

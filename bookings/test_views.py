import datetime
import json
from unittest.mock import patch

from django.conf import settings
from django.core import mail
from django.test import TestCase, override_settings

from payments.integrations import razorpay

from .auth import issue_admin_token
from .models import Booking
from .services import PersistenceError

ORDER_BODY = {
    "customer_name": "Asha Verma",
    "customer_email": "asha@example.com",
    "customer_phone": "+91 98765 43210",
    "city": "Pune",
    "problem": "anxiety",
    "circumstances": "Work stress for a few months",
    "appointment_date": "2025-03-07",
    "appointment_time": "13:05",
}


class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self._data = data
        self.text = json.dumps(data)

    def json(self):
        return self._data


def gateway_ok(order_id="order_E2E"):
    return FakeResponse(200, {"id": order_id, "entity": "order", "amount": 59900,
                              "currency": "INR", "status": "created"})


class JsonClientMixin:
    def _send(self, method, url, payload):
        return getattr(self.client, method)(url, data=json.dumps(payload), content_type="application/json")

    def _post(self, url, payload):
        return self._send("post", url, payload)

    def _put(self, url, payload):
        return self._send("put", url, payload)


@override_settings(EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend", BOOKING_AMOUNT_PAISE=59900)
class BookingFlowTests(JsonClientMixin, TestCase):
    def _create_order(self, order_id="order_E2E"):
        with patch("payments.integrations.razorpay.requests.request", return_value=gateway_ok(order_id)):
            return self._post("/order", ORDER_BODY)

    def test_create_order_response(self):
        resp = self._create_order()
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["order_id"], "order_E2E")
        self.assertRegex(data["booking_ref"], r"^PZ-\d{4}-[0-9A-Z]{4}$")
        self.assertEqual(data["amount"], 59900)
        self.assertEqual(data["currency"], "INR")
        self.assertEqual(data["key_id"], settings.RAZORPAY_KEY_ID)
        self.assertEqual(data["prefill"], {
            "name": "Asha Verma", "email": "asha@example.com", "contact": "+91 98765 43210",
        })
        booking = Booking.objects.get(razorpay_order_id="order_E2E")
        self.assertEqual(booking.payment_status, Booking.PENDING)
        self.assertEqual(booking.booking_ref, data["booking_ref"])

    def test_create_order_missing_field(self):
        body = dict(ORDER_BODY)
        del body["circumstances"]
        resp = self._post("/order", body)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["missing"], ["circumstances"])
        self.assertIn("circumstances", resp.json()["error"])

    def test_create_order_rejects_non_json(self):
        resp = self.client.post("/order", data="nope", content_type="application/json")
        self.assertEqual(resp.status_code, 400)
        resp = self._post("/order", ["not", "an", "object"])
        self.assertEqual(resp.status_code, 400)

    def test_create_order_wrong_method(self):
        self.assertEqual(self.client.get("/order").status_code, 405)

    def test_create_order_gateway_down(self):
        with patch("payments.integrations.razorpay.requests.request",
                   return_value=FakeResponse(500, {"error": {"description": "boom"}})):
            with self.assertLogs("bookings.workflow", level="ERROR"):
                resp = self._post("/order", ORDER_BODY)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["error"], "Failed to create payment order")
        self.assertEqual(Booking.objects.count(), 0)

    def test_paid_booking_end_to_end(self):
        ref = self._create_order().json()["booking_ref"]
        body = {
            "razorpay_order_id": "order_E2E",
            "razorpay_payment_id": "pay_E2E",
            "razorpay_signature": razorpay.payment_signature("order_E2E", "pay_E2E"),
        }
        # WhatsApp is unconfigured in tests, so that channel fails; the payment still confirms
        with self.assertLogs("bookings.notifications", level="WARNING"):
            resp = self._post("/verify", body)

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        booking = Booking.objects.get(razorpay_order_id="order_E2E")
        self.assertEqual(data["booking_ref"], ref)
        self.assertEqual(data["booking"], {
            "id": str(booking.id),
            "customer_name": "Asha Verma",
            "appointment_date": "2025-03-07",
            "appointment_time": "13:05",
            "amount_paid": 599,
        })
        self.assertEqual(booking.payment_status, Booking.COMPLETED)
        self.assertEqual(booking.razorpay_payment_id, "pay_E2E")

        recipients = sorted(r for m in mail.outbox for r in m.to)
        self.assertEqual(recipients, ["admin@example.com", "asha@example.com"])
        self.assertTrue(any(ref in m.subject for m in mail.outbox))

    def test_tampered_signature(self):
        self._create_order()
        body = {
            "razorpay_order_id": "order_E2E",
            "razorpay_payment_id": "pay_E2E",
            "razorpay_signature": razorpay.payment_signature("order_E2E", "pay_OTHER"),
        }
        with self.assertLogs("bookings.workflow", level="WARNING"):
            resp = self._post("/verify", body)

        self.assertEqual(resp.status_code, 400)
        booking = Booking.objects.get(razorpay_order_id="order_E2E")
        self.assertEqual(booking.payment_status, Booking.FAILED)
        self.assertEqual(booking.failure_reason, "Invalid payment signature")
        self.assertEqual(mail.outbox, [])

    def test_non_ascii_signature_fails_booking(self):
        self._create_order()
        body = {
            "razorpay_order_id": "order_E2E",
            "razorpay_payment_id": "pay_E2E",
            "razorpay_signature": "sigé",
        }
        with self.assertLogs("bookings.workflow", level="WARNING"):
            resp = self._post("/verify", body)

        self.assertEqual(resp.status_code, 400)
        booking = Booking.objects.get(razorpay_order_id="order_E2E")
        self.assertEqual(booking.payment_status, Booking.FAILED)
        self.assertEqual(booking.failure_reason, "Invalid payment signature")

    def test_verify_missing_fields(self):
        resp = self._post("/verify", {"razorpay_order_id": "order_E2E"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["missing"], ["razorpay_payment_id", "razorpay_signature"])

    def test_verify_store_failure(self):
        self._create_order()
        body = {
            "razorpay_order_id": "order_E2E",
            "razorpay_payment_id": "pay_E2E",
            "razorpay_signature": razorpay.payment_signature("order_E2E", "pay_E2E"),
        }
        with patch("bookings.workflow.complete_booking", side_effect=PersistenceError("db down")):
            with self.assertLogs("bookings.workflow", level="ERROR"):
                resp = self._post("/verify", body)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["error"], "Failed to confirm booking")

    def test_report_failure(self):
        ref = self._create_order().json()["booking_ref"]
        resp = self._put("/verify", {"razorpay_order_id": "order_E2E"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["booking_ref"], ref)
        booking = Booking.objects.get(razorpay_order_id="order_E2E")
        self.assertEqual(booking.payment_status, Booking.FAILED)
        self.assertEqual(booking.failure_reason, "Payment failed or cancelled by user")

    def test_report_failure_errors(self):
        self.assertEqual(self._put("/verify", {}).status_code, 400)
        self.assertEqual(self._put("/verify", {"razorpay_order_id": "order_none"}).status_code, 404)


class AdminConsoleTests(JsonClientMixin, TestCase):
    def setUp(self):
        base = dict(
            customer_name="Ravi", customer_email="ravi@example.com", customer_phone="9876543210",
            city="Delhi", problem="stress", circumstances="-",
            appointment_date=datetime.date(2025, 4, 1), appointment_time=datetime.time(9, 0),
            amount_paid=59900,
        )
        Booking.objects.create(booking_ref="PZ-2025-AD01", razorpay_order_id="order_a1",
                               payment_status=Booking.COMPLETED, **base)
        Booking.objects.create(booking_ref="PZ-2025-AD02", razorpay_order_id="order_a2",
                               payment_status=Booking.COMPLETED, **base)
        Booking.objects.create(booking_ref="PZ-2025-AD03", razorpay_order_id="order_a3", **base)
        Booking.objects.create(booking_ref="PZ-2025-AD04", razorpay_order_id="order_a4",
                               payment_status=Booking.FAILED, **base)

    def _login(self):
        resp = self._post("/console/login", {"password": "letmein"})
        self.assertEqual(resp.status_code, 200)
        return resp

    def test_requires_admin_session(self):
        self.assertEqual(self.client.get("/console/bookings").status_code, 401)
        self.client.cookies["admin_session"] = "forged"
        self.assertEqual(self.client.get("/console/bookings").status_code, 401)

    def test_login_rejects_bad_password(self):
        with self.assertLogs("bookings.views", level="WARNING"):
            resp = self._post("/console/login", {"password": "nope"})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(self._post("/console/login", {}).status_code, 400)

    @override_settings(ADMIN_PASSWORD="")
    def test_login_without_configured_password(self):
        with self.assertLogs("bookings.views", level="ERROR"):
            resp = self._post("/console/login", {"password": "anything"})
        self.assertEqual(resp.status_code, 500)

    def test_login_sets_http_only_cookie(self):
        cookie = self._login().cookies["admin_session"]
        self.assertTrue(cookie["httponly"])
        self.assertEqual(cookie["samesite"], "Strict")

    def test_list_with_stats(self):
        self._login()
        resp = self.client.get("/console/bookings", {"stats": "true"})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["count"], 4)
        self.assertEqual(data["stats"], {"total": 4, "completed": 2, "pending": 1, "failed": 1, "revenue": 1198})

        resp = self.client.get("/console/bookings", {"status": "pending"})
        self.assertEqual([b["booking_ref"] for b in resp.json()["bookings"]], ["PZ-2025-AD03"])
        self.assertIsNone(resp.json()["stats"])

        self.assertEqual(self.client.get("/console/bookings", {"status": "refunded"}).status_code, 400)

    def test_expired_token_rejected(self):
        past = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(days=3)
        self.client.cookies["admin_session"] = issue_admin_token(now=past)
        self.assertEqual(self.client.get("/console/bookings").status_code, 401)

    def test_logout_clears_cookie(self):
        self._login()
        resp = self.client.delete("/console/login")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get("/console/bookings").status_code, 401)

    @override_settings(FEEDBACK_DELAY_MINUTES=120)
    def test_complete_session_schedules_feedback(self):
        self._login()
        booking = Booking.objects.get(booking_ref="PZ-2025-AD01")
        resp = self._post("/console/complete-session", {"booking_id": str(booking.id), "notes": "Good progress"})
        self.assertEqual(resp.status_code, 200)
        self.assertIsNotNone(resp.json()["feedback_due_at"])

        booking.refresh_from_db()
        self.assertEqual(booking.session_status, Booking.SESSION_COMPLETED)
        self.assertEqual(booking.admin_notes, "Good progress")
        self.assertEqual(booking.feedback_due_at - booking.session_completed_at, datetime.timedelta(minutes=120))

        resp = self._post("/console/complete-session", {"booking_id": "nope"})
        self.assertEqual(resp.status_code, 404)

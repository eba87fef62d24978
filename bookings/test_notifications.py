import datetime
from io import StringIO
from unittest.mock import MagicMock, patch

import requests
from django.core import mail
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from . import emails, notifications, services, whatsapp
from .models import Booking
from .tests import make_booking


def interakt_response(status_code=200, data=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.json.return_value = data if data is not None else {"result": True, "id": "msg_1"}
    return resp


@override_settings(
    INTERAKT_API_KEY="interakt-key",
    INTERAKT_BASE_URL="https://interakt.test/v1/public/message/",
    INTERAKT_CUSTOMER_TEMPLATE="booking_confirmation",
    INTERAKT_TIMEOUT=5,
)
class WhatsAppTests(TestCase):
    def setUp(self):
        self.booking = make_booking(
            customer_phone="+91 98765 43210",
            appointment_date=datetime.date(2025, 3, 7),
            appointment_time=datetime.time(13, 5),
        )

    @patch("bookings.whatsapp.requests.post")
    def test_customer_confirmation_payload(self, post):
        post.return_value = interakt_response()
        result = whatsapp.send_customer_confirmation(self.booking)

        self.assertEqual(result, {"success": True, "error": None})
        (url,), kwargs = post.call_args
        self.assertEqual(url, "https://interakt.test/v1/public/message/")
        self.assertEqual(kwargs["headers"]["Authorization"], "Basic interakt-key")
        self.assertEqual(kwargs["timeout"], 5)
        payload = kwargs["json"]
        self.assertEqual(payload["countryCode"], "91")
        self.assertEqual(payload["phoneNumber"], "9876543210")
        self.assertEqual(payload["callbackData"], self.booking.booking_ref)
        self.assertEqual(payload["template"]["name"], "booking_confirmation")
        self.assertEqual(
            payload["template"]["bodyValues"],
            ["Asha Verma", "07 Mar 2025", "1:05 PM", self.booking.booking_ref],
        )

    @override_settings(ADMIN_WHATSAPP_NUMBER="918968900002")
    @patch("bookings.whatsapp.requests.post")
    def test_admin_notification_goes_to_admin_number(self, post):
        post.return_value = interakt_response()
        self.assertTrue(whatsapp.send_admin_notification(self.booking)["success"])
        payload = post.call_args.kwargs["json"]
        self.assertEqual(payload["phoneNumber"], "8968900002")
        self.assertIn("₹599", payload["template"]["bodyValues"])

    @override_settings(ADMIN_WHATSAPP_NUMBER="")
    @patch("bookings.whatsapp.requests.post")
    def test_admin_notification_without_number(self, post):
        result = whatsapp.send_admin_notification(self.booking)
        self.assertFalse(result["success"])
        post.assert_not_called()

    @override_settings(INTERAKT_API_KEY="")
    @patch("bookings.whatsapp.requests.post")
    def test_missing_api_key(self, post):
        result = whatsapp.send_feedback_request(self.booking)
        self.assertEqual(result, {"success": False, "error": "Interakt API key not configured"})
        post.assert_not_called()

    @patch("bookings.whatsapp.requests.post")
    def test_api_error_reported(self, post):
        post.return_value = interakt_response(400, {"result": False, "message": "Template not approved"})
        with self.assertLogs("bookings.whatsapp", level="ERROR"):
            result = whatsapp.send_customer_confirmation(self.booking)
        self.assertEqual(result, {"success": False, "error": "Template not approved"})

    @patch("bookings.whatsapp.requests.post", side_effect=requests.Timeout("timed out"))
    def test_network_error_reported(self, post):
        with self.assertLogs("bookings.whatsapp", level="ERROR"):
            result = whatsapp.send_customer_confirmation(self.booking)
        self.assertFalse(result["success"])
        self.assertIn("timed out", result["error"])


@override_settings(
    EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
    DEFAULT_FROM_EMAIL="bookings@example.com",
    ADMIN_EMAILS="ops@example.com, OPS@example.com, owner@example.com",
)
class EmailTests(TestCase):
    def setUp(self):
        self.booking = make_booking(payment_status=Booking.COMPLETED, razorpay_payment_id="pay_9")

    def test_admin_recipients_deduplicated(self):
        self.assertEqual(emails._admin_recipients(), ["ops@example.com", "owner@example.com"])

    def test_admin_notification(self):
        result = emails.send_admin_notification(self.booking)
        self.assertTrue(result["success"])
        self.assertEqual(len(mail.outbox), 1)
        msg = mail.outbox[0]
        self.assertEqual(msg.to, ["ops@example.com", "owner@example.com"])
        self.assertEqual(msg.from_email, "bookings@example.com")
        self.assertIn(self.booking.booking_ref, msg.subject)
        self.assertIn("pay_9", msg.body)
        self.assertEqual(msg.alternatives[0][1], "text/html")

    def test_customer_confirmation(self):
        result = emails.send_customer_confirmation(self.booking)
        self.assertTrue(result["success"])
        msg = mail.outbox[0]
        self.assertEqual(msg.to, ["asha@example.com"])
        self.assertIn("07 March 2025", msg.body)
        self.assertIn("1:05 PM", msg.body)

    @override_settings(ADMIN_EMAILS="", EMAIL_HOST_USER="", DEFAULT_FROM_EMAIL="")
    def test_admin_notification_without_recipients(self):
        self.assertFalse(emails.send_admin_notification(self.booking)["success"])
        self.assertEqual(mail.outbox, [])

    @patch("bookings.emails.EmailMultiAlternatives.send", side_effect=OSError("smtp down"))
    def test_send_failure_reported(self, send):
        with self.assertLogs("bookings.emails", level="ERROR"):
            result = emails.send_customer_confirmation(self.booking)
        self.assertEqual(result, {"success": False, "error": "smtp down"})


class DispatchTests(TestCase):
    def setUp(self):
        self.booking = make_booking(payment_status=Booking.COMPLETED)

    def test_all_channels_attempted_when_one_crashes(self):
        ok = {"success": True, "error": None}
        with patch("bookings.whatsapp.send_customer_confirmation", side_effect=RuntimeError("boom")), \
                patch("bookings.whatsapp.send_admin_notification", return_value=ok) as wa_admin, \
                patch("bookings.emails.send_customer_confirmation", return_value=ok) as em_customer, \
                patch("bookings.emails.send_admin_notification", return_value=ok) as em_admin:
            with self.assertLogs("bookings.notifications", level="ERROR"):
                results = notifications.dispatch_confirmations(self.booking)

        self.assertEqual(results["whatsapp_customer"], {"success": False, "error": "boom"})
        for name in ("whatsapp_admin", "email_customer", "email_admin"):
            self.assertTrue(results[name]["success"])
        wa_admin.assert_called_once_with(self.booking)
        em_customer.assert_called_once_with(self.booking)
        em_admin.assert_called_once_with(self.booking)

    def test_failed_result_logged(self):
        with patch("bookings.whatsapp.send_feedback_request", return_value={"success": False, "error": "nope"}):
            with self.assertLogs("bookings.notifications", level="WARNING") as logs:
                results = notifications.dispatch_feedback_request(self.booking)
        self.assertFalse(results["whatsapp_feedback"]["success"])
        self.assertIn("nope", logs.output[0])


class SendFeedbackCommandTests(TestCase):
    def setUp(self):
        past = timezone.now() - datetime.timedelta(hours=3)
        self.booking = make_booking(payment_status=Booking.COMPLETED)
        services.complete_session(self.booking.pk, now=past)

    def test_sends_and_marks_due_feedback(self):
        out = StringIO()
        with patch("bookings.workflow.dispatch_feedback_request",
                   return_value={"whatsapp_feedback": {"success": True, "error": None}}) as dispatch:
            call_command("send_feedback_requests", stdout=out)
        dispatch.assert_called_once()
        self.assertIn("Sent 1", out.getvalue())
        self.booking.refresh_from_db()
        self.assertIsNotNone(self.booking.feedback_sent_at)

        with patch("bookings.workflow.dispatch_feedback_request") as dispatch:
            call_command("send_feedback_requests", stdout=StringIO())
        dispatch.assert_not_called()

    def test_undelivered_feedback_stays_due(self):
        out = StringIO()
        with patch("bookings.workflow.dispatch_feedback_request",
                   return_value={"whatsapp_feedback": {"success": False, "error": "down"}}):
            call_command("send_feedback_requests", stdout=out)
        self.assertIn("will retry", out.getvalue())
        self.booking.refresh_from_db()
        self.assertIsNone(self.booking.feedback_sent_at)


class ReconcileCommandTests(TestCase):
    def setUp(self):
        self.stale = make_booking(razorpay_order_id="order_stale")
        Booking.objects.filter(pk=self.stale.pk).update(created_at=timezone.now() - datetime.timedelta(hours=1))
        self.fresh = make_booking(razorpay_order_id="order_fresh")

    @patch("bookings.workflow.dispatch_confirmations", return_value={})
    @patch("payments.integrations.razorpay.fetch_order_payments",
           return_value=[{"id": "pay_failed", "status": "failed"}, {"id": "pay_ok", "status": "captured"}])
    @patch("payments.integrations.razorpay.fetch_order", return_value={"id": "order_stale", "status": "paid"})
    def test_completes_paid_stale_booking(self, fetch_order, fetch_payments, dispatch):
        out = StringIO()
        call_command("reconcile_pending_bookings", "--sleep", "0", stdout=out)

        fetch_order.assert_called_once_with("order_stale")
        self.stale.refresh_from_db()
        self.assertEqual(self.stale.payment_status, Booking.COMPLETED)
        self.assertEqual(self.stale.razorpay_payment_id, "pay_ok")
        dispatch.assert_called_once()
        self.fresh.refresh_from_db()
        self.assertEqual(self.fresh.payment_status, Booking.PENDING)
        self.assertIn("Checked 1, completed 1", out.getvalue())

    @patch("payments.integrations.razorpay.fetch_order", return_value={"id": "order_stale", "status": "attempted"})
    def test_unpaid_order_left_pending(self, fetch_order):
        out = StringIO()
        call_command("reconcile_pending_bookings", "--sleep", "0", stdout=out)
        self.stale.refresh_from_db()
        self.assertEqual(self.stale.payment_status, Booking.PENDING)
        self.assertIn("gateway status=attempted", out.getvalue())

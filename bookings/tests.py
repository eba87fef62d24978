import datetime
import re
from itertools import count
from unittest.mock import patch

from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from . import services
from .models import Booking
from .utils import format_date, format_time, gen_booking_ref, normalize_phone, paise_to_rupees

REF_RE = re.compile(r"^PZ-\d{4}-[0-9A-Z]{4}$")
_seq = count(1)


def make_booking(**overrides):
    n = next(_seq)
    fields = dict(
        booking_ref=f"PZ-2025-{n:04d}",
        customer_name="Asha Verma",
        customer_email="asha@example.com",
        customer_phone="+91 98765 43210",
        city="Pune",
        problem="anxiety",
        circumstances="Work stress for a few months",
        appointment_date=datetime.date(2025, 3, 7),
        appointment_time=datetime.time(13, 5),
        razorpay_order_id=f"order_{n}",
        amount_paid=59900,
    )
    fields.update(overrides)
    return Booking.objects.create(**fields)


class UtilsTests(SimpleTestCase):
    def test_booking_ref_format(self):
        ref = gen_booking_ref()
        self.assertRegex(ref, REF_RE)
        self.assertTrue(ref.startswith(f"PZ-{timezone.localdate().year}-"))

    @override_settings(TIME_ZONE="Asia/Kolkata")
    def test_booking_ref_uses_local_year(self):
        # 19:00 UTC on 31 Dec is already 1 Jan in Kolkata
        utc_eve = datetime.datetime(2025, 12, 31, 19, 0, tzinfo=datetime.timezone.utc)
        with patch("django.utils.timezone.now", return_value=utc_eve):
            self.assertTrue(gen_booking_ref().startswith("PZ-2026-"))

    def test_normalize_phone(self):
        self.assertEqual(normalize_phone("9876543210"), ("91", "9876543210"))
        self.assertEqual(normalize_phone("919876543210"), ("91", "9876543210"))
        self.assertEqual(normalize_phone("09876543210"), ("91", "9876543210"))
        self.assertEqual(normalize_phone("+91 98765-43210"), ("91", "9876543210"))
        self.assertEqual(normalize_phone("+44 7911 123456"), ("44", "7911123456"))

    def test_format_time(self):
        self.assertEqual(format_time("00:30"), "12:30 AM")
        self.assertEqual(format_time("13:05"), "1:05 PM")
        self.assertEqual(format_time("12:00"), "12:00 PM")
        self.assertEqual(format_time("09:15:00"), "9:15 AM")
        self.assertEqual(format_time(datetime.time(23, 45)), "11:45 PM")

    def test_format_date(self):
        self.assertEqual(format_date("2025-03-07"), "07 Mar 2025")
        self.assertEqual(format_date(datetime.date(2025, 3, 7), long=True), "07 March 2025")

    def test_paise_to_rupees(self):
        self.assertEqual(paise_to_rupees(59900), 599)
        self.assertIsInstance(paise_to_rupees(59900), int)
        self.assertEqual(paise_to_rupees(59950), 599.5)


class CreateBookingTests(TestCase):
    def _fields(self, **overrides):
        fields = dict(
            customer_name="Asha Verma",
            customer_email="asha@example.com",
            customer_phone="9876543210",
            city="Pune",
            problem="anxiety",
            circumstances="Work stress",
            appointment_date=datetime.date(2025, 3, 7),
            appointment_time=datetime.time(10, 30),
            razorpay_order_id="order_A1",
            amount_paid=59900,
        )
        fields.update(overrides)
        return fields

    def test_creates_pending_booking_with_reference(self):
        booking = services.create_booking(**self._fields())
        self.assertEqual(booking.payment_status, Booking.PENDING)
        self.assertRegex(booking.booking_ref, REF_RE)
        self.assertIsNotNone(booking.id)
        self.assertIsNotNone(booking.created_at)
        self.assertEqual(booking.razorpay_payment_id, "")

    def test_same_order_id_returns_existing_booking(self):
        first = services.create_booking(**self._fields())
        second = services.create_booking(**self._fields(customer_name="Someone Else"))
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Booking.objects.count(), 1)

    def test_reference_collision_raises_duplicate_reference(self):
        make_booking(booking_ref="PZ-2025-AAAA")
        with patch("bookings.services.gen_booking_ref", return_value="PZ-2025-AAAA"):
            with self.assertRaises(services.DuplicateReference):
                services.create_booking(**self._fields(razorpay_order_id="order_B2"))
        self.assertFalse(Booking.objects.filter(razorpay_order_id="order_B2").exists())

    def test_references_unique_across_calls(self):
        refs = {
            services.create_booking(**self._fields(razorpay_order_id=f"order_{i}")).booking_ref
            for i in range(20)
        }
        self.assertEqual(len(refs), 20)


class TransitionTests(TestCase):
    def setUp(self):
        self.booking = make_booking(razorpay_order_id="order_T1")

    def test_complete_pending_booking(self):
        booking, changed = services.complete_booking("order_T1", "pay_1")
        self.assertTrue(changed)
        self.assertEqual(booking.payment_status, Booking.COMPLETED)
        self.assertEqual(booking.razorpay_payment_id, "pay_1")

    def test_repeat_completion_with_same_payment_is_noop(self):
        services.complete_booking("order_T1", "pay_1")
        booking, changed = services.complete_booking("order_T1", "pay_1")
        self.assertFalse(changed)
        self.assertEqual(booking.payment_status, Booking.COMPLETED)

    def test_completion_with_other_payment_rejected(self):
        services.complete_booking("order_T1", "pay_1")
        with self.assertRaises(services.InvalidTransition):
            services.complete_booking("order_T1", "pay_2")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.razorpay_payment_id, "pay_1")

    def test_fail_pending_booking(self):
        booking, changed = services.fail_booking("order_T1", "Card declined")
        self.assertTrue(changed)
        self.assertEqual(booking.payment_status, Booking.FAILED)
        self.assertEqual(booking.failure_reason, "Card declined")

    def test_completed_booking_cannot_fail(self):
        services.complete_booking("order_T1", "pay_1")
        with self.assertRaises(services.InvalidTransition):
            services.fail_booking("order_T1", "Invalid payment signature")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, Booking.COMPLETED)
        self.assertEqual(self.booking.failure_reason, "")

    def test_failed_booking_cannot_complete(self):
        services.fail_booking("order_T1", "cancelled")
        with self.assertRaises(services.InvalidTransition):
            services.complete_booking("order_T1", "pay_1")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, Booking.FAILED)
        self.assertEqual(self.booking.razorpay_payment_id, "")

    def test_repeat_failure_is_noop(self):
        services.fail_booking("order_T1", "first")
        booking, changed = services.fail_booking("order_T1", "second")
        self.assertFalse(changed)
        self.assertEqual(booking.failure_reason, "first")

    def test_unknown_order(self):
        with self.assertRaises(services.BookingNotFound):
            services.complete_booking("order_missing", "pay_1")
        with self.assertRaises(services.BookingNotFound):
            services.fail_booking("order_missing", "x")


class LookupAndAggregateTests(TestCase):
    def test_point_lookups(self):
        booking = make_booking(booking_ref="PZ-2025-LOOK", razorpay_order_id="order_L1")
        self.assertEqual(services.get_booking_by_ref("PZ-2025-LOOK").pk, booking.pk)
        self.assertEqual(services.get_booking_by_order_id("order_L1").pk, booking.pk)
        with self.assertRaises(services.BookingNotFound):
            services.get_booking_by_ref("PZ-2025-NONE")
        with self.assertRaises(services.BookingNotFound):
            services.get_booking_by_order_id("order_none")

    def test_list_newest_first_with_filter(self):
        old = make_booking(payment_status=Booking.COMPLETED)
        new = make_booking()
        Booking.objects.filter(pk=old.pk).update(created_at=timezone.now() - datetime.timedelta(days=1))

        self.assertEqual([b.pk for b in services.list_bookings()], [new.pk, old.pk])
        self.assertEqual([b.pk for b in services.list_bookings(Booking.COMPLETED)], [old.pk])

    def test_stats(self):
        make_booking(payment_status=Booking.COMPLETED)
        make_booking(payment_status=Booking.COMPLETED)
        make_booking(payment_status=Booking.PENDING)
        make_booking(payment_status=Booking.FAILED)
        self.assertEqual(
            services.booking_stats(),
            {"total": 4, "completed": 2, "pending": 1, "failed": 1, "revenue": 1198},
        )

    def test_stats_empty(self):
        self.assertEqual(
            services.booking_stats(),
            {"total": 0, "completed": 0, "pending": 0, "failed": 0, "revenue": 0},
        )


@override_settings(FEEDBACK_DELAY_MINUTES=120)
class FeedbackScheduleTests(TestCase):
    def test_complete_session_schedules_feedback(self):
        booking = make_booking(payment_status=Booking.COMPLETED)
        now = timezone.now()
        booking = services.complete_session(booking.pk, "Went well", now=now)

        self.assertEqual(booking.session_status, Booking.SESSION_COMPLETED)
        self.assertEqual(booking.admin_notes, "Went well")
        self.assertEqual(booking.feedback_due_at, now + datetime.timedelta(minutes=120))

    def test_due_feedback_sends_only_returns_due_unsent(self):
        now = timezone.now()
        due = make_booking(payment_status=Booking.COMPLETED)
        services.complete_session(due.pk, now=now - datetime.timedelta(hours=3))
        later = make_booking(payment_status=Booking.COMPLETED)
        services.complete_session(later.pk, now=now)
        make_booking(payment_status=Booking.COMPLETED)  # session not completed

        self.assertEqual([b.pk for b in services.due_feedback_sends(now)], [due.pk])

        self.assertTrue(services.mark_feedback_sent(due, now))
        self.assertFalse(services.mark_feedback_sent(due, now))
        self.assertEqual(list(services.due_feedback_sends(now)), [])

    def test_unpaid_bookings_never_get_feedback(self):
        now = timezone.now()
        for status in (Booking.PENDING, Booking.FAILED):
            booking = make_booking(payment_status=status)
            services.complete_session(booking.pk, now=now - datetime.timedelta(hours=3))
        self.assertEqual(list(services.due_feedback_sends(now)), [])

    def test_unknown_or_malformed_booking_id(self):
        with self.assertRaises(services.BookingNotFound):
            services.complete_session("not-a-uuid")

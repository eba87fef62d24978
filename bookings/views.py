import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from payments.integrations import razorpay

from . import workflow
from .auth import admin_required, check_admin_password, issue_admin_token
from .models import Booking
from .services import booking_stats, list_bookings
from .utils import paise_to_rupees

logger = logging.getLogger(__name__)


def _json_body(request):
    try:
        body = json.loads(request.body.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def _error(message, status, **extra):
    return JsonResponse({"ok": False, "error": message, **extra}, status=status)


def _workflow_error(e: workflow.WorkflowError):
    return _error(e.message, e.status_code, **e.extra)


@csrf_exempt
@require_POST
def create_order_view(request):
    body = _json_body(request)
    if body is None:
        return _error("Invalid JSON body", 400)
    try:
        order, booking = workflow.create_order(body)
    except workflow.WorkflowError as e:
        return _workflow_error(e)

    return JsonResponse({
        "ok": True,
        "order_id": order["id"],
        "booking_ref": booking.booking_ref,
        "amount": order.get("amount", booking.amount_paid),
        "currency": order.get("currency", settings.BOOKING_CURRENCY),
        "key_id": razorpay.key_id(),
        "prefill": {
            "name": booking.customer_name,
            "email": booking.customer_email,
            "contact": booking.customer_phone,
        },
    })


@csrf_exempt
@require_http_methods(["POST", "PUT"])
def verify_payment_view(request):
    body = _json_body(request)
    if body is None:
        return _error("Invalid JSON body", 400)
    if request.method == "PUT":
        return _report_failure(body)

    try:
        result = workflow.verify_payment(body)
    except workflow.WorkflowError as e:
        return _workflow_error(e)

    if not result["verified"]:
        return _error("Payment verification failed - invalid signature", 400)

    booking = result["booking"]
    return JsonResponse({
        "ok": True,
        "message": "Payment verified and booking confirmed",
        "booking_ref": booking.booking_ref,
        "booking": {
            "id": str(booking.id),
            "customer_name": booking.customer_name,
            "appointment_date": booking.appointment_date.isoformat(),
            "appointment_time": booking.appointment_time.strftime("%H:%M"),
            "amount_paid": paise_to_rupees(booking.amount_paid),
        },
    })


def _report_failure(body):
    try:
        booking = workflow.report_failure(body)
    except workflow.WorkflowError as e:
        return _workflow_error(e)
    return JsonResponse({
        "ok": True,
        "message": "Booking marked as failed",
        "booking_ref": booking.booking_ref,
    })


@csrf_exempt
@require_http_methods(["POST", "DELETE"])
def admin_login_view(request):
    cookie = settings.ADMIN_SESSION_COOKIE
    if request.method == "DELETE":
        resp = JsonResponse({"ok": True, "message": "Logged out"})
        resp.delete_cookie(cookie, path="/", samesite="Strict")
        return resp

    body = _json_body(request) or {}
    password = body.get("password") or ""
    if not password:
        return _error("Password required", 400)
    if not settings.ADMIN_PASSWORD:
        logger.error("Admin login attempted but ADMIN_PASSWORD is not configured")
        return _error("Admin password not configured", 500)
    if not check_admin_password(password):
        logger.warning("Failed admin login from %s", request.META.get("REMOTE_ADDR"))
        return _error("Invalid password", 401)

    resp = JsonResponse({"ok": True, "message": "Login successful"})
    resp.set_cookie(
        cookie,
        issue_admin_token(),
        max_age=settings.ADMIN_SESSION_HOURS * 3600,
        path="/",
        httponly=True,
        secure=not settings.DEBUG,
        samesite="Strict",
    )
    return resp


@require_GET
@admin_required
def admin_bookings_view(request):
    status = request.GET.get("status") or None
    valid = {value for value, _ in Booking.STATUS_CHOICES}
    if status and status not in valid:
        return _error(f"Unknown status: {status}", 400)

    bookings = [b.as_dict() for b in list_bookings(status)]
    stats = booking_stats() if request.GET.get("stats") == "true" else None
    return JsonResponse({"ok": True, "bookings": bookings, "stats": stats, "count": len(bookings)})


@csrf_exempt
@require_POST
@admin_required
def admin_complete_session_view(request):
    body = _json_body(request)
    if body is None:
        return _error("Invalid JSON body", 400)
    try:
        booking = workflow.complete_session(body)
    except workflow.WorkflowError as e:
        return _workflow_error(e)
    return JsonResponse({
        "ok": True,
        "message": "Session marked as completed. Feedback request scheduled.",
        "booking_ref": booking.booking_ref,
        "feedback_due_at": booking.feedback_due_at.isoformat() if booking.feedback_due_at else None,
    })

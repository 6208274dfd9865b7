# Overview: Admin booking list, detail, cancellation and manual payments.

"""
Admin booking routes.

Provides endpoints for:
- Booking list with filters and detail with payment summary
- Cancellation (status flag; money is refunded through the provider)
- Recording cash and bank transfer payments

All endpoints require an admin session.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..responses import domain_error, fail, ok
from ..services import booking_service, notification_service, stats_service
from ..services.auth_service import ROLE_ADMIN
from ..services.store import coerce_id
from ..validation import DomainError, require_fields

admin_bookings_bp = Blueprint("admin_bookings", __name__, url_prefix="/api/admin")


@admin_bookings_bp.get("/bookings")
@require_auth
@require_role(ROLE_ADMIN)
def list_bookings_route():
    """
    Query params:
    - paymentStatus, status: exact match
    - sessionId: bookings that include this session
    - email: parent email
    - search: booking ref, child name or email
    - limit (default 100, max 500), offset
    """
    limit = min(request.args.get("limit", 100, type=int), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    bookings = booking_service.list_bookings(
        payment_status=request.args.get("paymentStatus") or None,
        status=request.args.get("status") or None,
        session_id=request.args.get("sessionId", type=int),
        parent_email=request.args.get("email") or None,
        search=request.args.get("search") or None,
        limit=limit,
        offset=offset,
    )
    return ok([b.to_dict() for b in bookings], count=len(bookings))


@admin_bookings_bp.get("/bookings/<int:booking_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_booking_route(booking_id: int):
    try:
        booking = booking_service.get_booking(booking_id)
    except DomainError as e:
        return domain_error(e)
    data = booking.to_dict()
    data["paymentSummary"] = booking_service.payment_summary(booking)
    return ok(data)


@admin_bookings_bp.post("/bookings/<int:booking_id>/cancel")
@require_auth
@require_role(ROLE_ADMIN)
def cancel_booking_route(booking_id: int):
    data = request.get_json(silent=True) or {}
    try:
        booking = booking_service.cancel_booking(booking_id, data.get("reason"))
    except DomainError as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel booking %s", booking_id)
        return fail("Failed to cancel booking", 500)

    stats_service.invalidate_dashboard_stats()
    if data.get("notify", True):
        notification_service.send_cancellation_confirmation(booking)
    return ok(booking.to_dict())


@admin_bookings_bp.get("/bookings/<int:booking_id>/payments")
@require_auth
@require_role(ROLE_ADMIN)
def booking_payments_route(booking_id: int):
    try:
        booking = booking_service.get_booking(booking_id)
    except DomainError as e:
        return domain_error(e)
    return ok(booking_service.payment_summary(booking))


@admin_bookings_bp.post("/payments/record")
@require_auth
@require_role(ROLE_ADMIN)
def record_payment_route():
    """
    Record a cash or bank transfer payment.

    Request body:
    {
        "bookingId": 12,
        "amount": 2500,                 // pence, > 0
        "method": "cash",               // or "bank_transfer"
        "notes": "Paid at reception",   // optional
        "dateReceived": "2026-03-01"    // optional
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), ("bookingId", "amount", "method"))
        outcome = booking_service.record_manual_payment(
            coerce_id(data["bookingId"], "bookingId"),
            data["amount"],
            data["method"],
            notes=data.get("notes"),
            date_received=data.get("dateReceived"),
            recorded_by_user_id=g.current_user.id,
        )
    except DomainError as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to record manual payment")
        return fail("Failed to record payment", 500)

    stats_service.invalidate_dashboard_stats()
    notification_service.send_manual_payment_received(outcome.booking, data["amount"], data["method"])
    summary = booking_service.payment_summary(outcome.booking)
    return ok({
        "payment": outcome.payment.to_dict() if outcome.payment else None,
        "paymentStatus": outcome.booking.payment_status,
        "totalPaid": summary["totalPaid"],
        "remaining": summary["remaining"],
    }, status=201)

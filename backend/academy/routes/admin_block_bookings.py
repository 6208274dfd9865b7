# Overview: Admin block booking (pre-paid session bundle) endpoints.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..responses import domain_error, fail, ok
from ..services import block_booking_service, capacity_ledger, stats_service
from ..services.auth_service import ROLE_ADMIN
from ..validation import DomainError, clean_str, parse_pence, parse_positive_int, parse_session_date

admin_block_bookings_bp = Blueprint("admin_block_bookings", __name__, url_prefix="/api/admin/block-bookings")


def _bool_arg(name: str) -> bool | None:
    value = request.args.get(name)
    if value is None or value == "":
        return None
    return value.lower() == "true"


@admin_block_bookings_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_block_bookings_route():
    """
    Query params:
    - status: active | completed | expired | refunded | cancelled
    - studentName: partial match
    - parentEmail: exact match
    - hasRemaining: true | false
    - sortBy: purchasedAt | remainingSessions | studentName
    - sortOrder: asc | desc
    - limit, offset
    """
    try:
        data = block_booking_service.list_block_bookings(
            status=request.args.get("status") or None,
            student_name=request.args.get("studentName") or None,
            parent_email=request.args.get("parentEmail") or None,
            has_remaining=_bool_arg("hasRemaining"),
            sort_by=request.args.get("sortBy", "purchasedAt"),
            sort_order="asc" if request.args.get("sortOrder") == "asc" else "desc",
            limit=request.args.get("limit", 100, type=int),
            offset=max(request.args.get("offset", 0, type=int), 0),
        )
    except DomainError as e:
        return domain_error(e)
    return ok(data)


@admin_block_bookings_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_block_booking_route():
    try:
        block = block_booking_service.create_block_booking(
            request.get_json(silent=True), created_by_user_id=g.current_user.id,
        )
    except DomainError as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create block booking")
        return fail("Failed to create block booking", 500)
    stats_service.invalidate_dashboard_stats()
    return ok(block_booking_service.detail(block), status=201)


@admin_block_bookings_bp.get("/<int:block_booking_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_block_booking_route(block_booking_id: int):
    try:
        block = block_booking_service.get_block_booking(block_booking_id)
    except DomainError as e:
        return domain_error(e)
    return ok(block_booking_service.detail(block))


@admin_block_bookings_bp.post("/<int:block_booking_id>/deduct")
@require_auth
@require_role(ROLE_ADMIN)
def deduct_session_route(block_booking_id: int):
    """
    Consume one credit for an attended session.

    Request body:
    {
        "sessionDate": "2026-03-14",    // required, YYYY-MM-DD
        "timetableSlotId": "sat-10am",  // optional
        "coachId": "c1",                // optional
        "coachName": "Sam",             // optional
        "notes": "..."                  // optional
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        if not data.get("sessionDate"):
            return fail("sessionDate is required", 400)
        session_date = parse_session_date(data["sessionDate"])
        result = capacity_ledger.deduct_block_session(
            block_booking_id,
            session_date,
            timetable_slot_id=clean_str(data.get("timetableSlotId"), 64),
            coach_id=clean_str(data.get("coachId"), 64),
            coach_name=clean_str(data.get("coachName")),
            notes=clean_str(data.get("notes"), 2000),
            deducted_by_user_id=g.current_user.id,
        )
    except DomainError as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to deduct session from block booking %s", block_booking_id)
        return fail("Failed to deduct session", 500)

    stats_service.invalidate_dashboard_stats()
    return ok({
        "remainingSessions": result.remaining_sessions,
        "newStatus": result.status,
        "usage": result.usage.to_dict(),
    })


@admin_block_bookings_bp.post("/<int:block_booking_id>/refund")
@require_auth
@require_role(ROLE_ADMIN)
def refund_sessions_route(block_booking_id: int):
    """
    Refund unused credits.

    Request body (all optional):
    {
        "sessionsToRefund": 2,   // default: all remaining
        "refundAmount": 3000,    // pence, default: sessions x price per session
        "reason": "Moving away"
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        sessions = data.get("sessionsToRefund")
        amount = data.get("refundAmount")
        if isinstance(amount, int) and not isinstance(amount, bool) and amount < 0:
            return fail("Refund amount cannot be negative", 400)
        result = capacity_ledger.refund_block_sessions(
            block_booking_id,
            sessions_to_refund=None if sessions in (None, "") else parse_positive_int(sessions, "sessionsToRefund"),
            refund_amount=None if amount in (None, "") else parse_pence(amount, "refundAmount"),
            reason=clean_str(data.get("reason")),
            refunded_by_user_id=g.current_user.id,
        )
    except DomainError as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to refund block booking %s", block_booking_id)
        return fail("Failed to process refund", 500)

    stats_service.invalidate_dashboard_stats()
    return ok({
        "sessionsRefunded": result.sessions_refunded,
        "amountRefunded": result.amount_refunded,
        "remainingSessions": result.remaining_sessions,
        "newStatus": result.status,
        "requiresProviderRefund": result.requires_provider_refund,
        "refund": result.refund.to_dict(),
    })

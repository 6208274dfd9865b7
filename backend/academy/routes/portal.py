# Overview: Parent portal: own bookings, cancellation and balance payment.

"""
Portal routes.

A parent sees the bookings made with their account email. Any other
booking answers 403 so booking ids cannot be probed for details.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth
from ..responses import domain_error, fail, ok
from ..services import booking_service, checkout_service, notification_service, stats_service
from ..services.payment_gateway import PaymentGatewayError
from ..validation import DomainError

portal_bp = Blueprint("portal", __name__, url_prefix="/api/portal")


def _own_booking(booking_id: int):
    """Returns (booking, None) or (None, error response)."""
    try:
        booking = booking_service.get_booking(booking_id)
    except DomainError as e:
        return None, domain_error(e)
    if booking.parent_email != g.current_user.email.lower():
        return None, fail("Access denied", 403)
    return booking, None


@portal_bp.get("/bookings")
@require_auth
def list_my_bookings_route():
    bookings = booking_service.list_bookings(parent_email=g.current_user.email, limit=500)
    return ok([b.to_dict() for b in bookings], count=len(bookings))


@portal_bp.get("/bookings/<int:booking_id>")
@require_auth
def get_my_booking_route(booking_id: int):
    booking, error = _own_booking(booking_id)
    if error:
        return error
    data = booking.to_dict()
    summary = booking_service.payment_summary(booking)
    data["totalPaid"] = summary["totalPaid"]
    data["remaining"] = summary["remaining"]
    return ok(data)


@portal_bp.post("/bookings/<int:booking_id>/cancel")
@require_auth
def cancel_my_booking_route(booking_id: int):
    booking, error = _own_booking(booking_id)
    if error:
        return error
    data = request.get_json(silent=True) or {}
    try:
        booking = booking_service.cancel_booking(booking.id, data.get("reason") or "Cancelled by parent")
    except DomainError as e:
        return domain_error(e)
    stats_service.invalidate_dashboard_stats()
    notification_service.send_cancellation_confirmation(booking)
    return ok(booking.to_dict())


@portal_bp.post("/bookings/<int:booking_id>/pay-balance")
@require_auth
def pay_balance_route(booking_id: int):
    booking, error = _own_booking(booking_id)
    if error:
        return error
    try:
        result = checkout_service.start_balance_checkout(booking)
    except DomainError as e:
        return domain_error(e)
    except PaymentGatewayError:
        current_app.logger.exception("Failed to create balance checkout for booking %s", booking_id)
        return fail("Failed to create checkout session", 500)
    return ok(result.to_dict())

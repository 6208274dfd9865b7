# Overview: Admin-raised hosted payment links.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role
from ..responses import domain_error, fail, ok
from ..services import payment_link_service
from ..services.auth_service import ROLE_ADMIN
from ..services.payment_gateway import PaymentGatewayError
from ..validation import DomainError

admin_payment_links_bp = Blueprint("admin_payment_links", __name__, url_prefix="/api/admin/payment-links")


@admin_payment_links_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_payment_links_route():
    try:
        links = payment_link_service.list_payment_links(
            status=request.args.get("status") or None,
            limit=min(request.args.get("limit", 50, type=int), 200),
        )
    except DomainError as e:
        return domain_error(e)
    return ok(links, count=len(links))


@admin_payment_links_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_payment_link_route():
    """
    Request body:
    {
        "customerEmail": "parent@example.com",
        "customerName": "Jo Bloggs",      // optional
        "amount": 4500,                   // pence
        "description": "Easter camp",
        "bookingId": 12,                  // optional
        "expiryDays": 7                   // optional, 1-90
    }
    """
    try:
        link = payment_link_service.create_payment_link(
            request.get_json(silent=True), created_by_user_id=g.current_user.id,
        )
    except DomainError as e:
        return domain_error(e)
    except PaymentGatewayError:
        current_app.logger.exception("Payment provider refused the payment link")
        return fail("Failed to create payment link", 500)
    return ok(link.to_dict(), status=201)

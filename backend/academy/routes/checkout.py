# Overview: Public checkout and coupon-preview endpoints.

from flask import Blueprint, current_app, jsonify, request

from ..responses import domain_error, fail, ok
from ..services import checkout_service, discount_service
from ..services.payment_gateway import PaymentGatewayError
from ..validation import DomainError

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("")
def create_checkout_route():
    """
    Open a hosted checkout for a cart.

    Request body:
    {
        "items": [{"sessionId": 1}, ...],
        "customerDetails": {...},
        "couponCode": "SAVE10",   // optional
        "paymentPlanId": 2        // optional
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        result = checkout_service.start_checkout(
            data.get("items"),
            data.get("customerDetails") or {},
            coupon_code=data.get("couponCode"),
            payment_plan_id=data.get("paymentPlanId"),
        )
        return ok(result.to_dict())
    except DomainError as e:
        return domain_error(e)
    except PaymentGatewayError:
        current_app.logger.exception("Payment provider refused the checkout session")
        return fail("Failed to create checkout session", 500)
    except Exception:
        current_app.logger.exception("Failed to create checkout session")
        return fail("Failed to create checkout session", 500)


@checkout_bp.post("/validate-coupon")
def validate_coupon_route():
    """
    Preview a coupon against a cart total. Never writes.

    Always 200 for a well-formed request; `valid` carries the outcome.
    """
    data = request.get_json(silent=True) or {}
    cart_total = data.get("cartTotal")
    if isinstance(cart_total, bool) or not isinstance(cart_total, int) or cart_total < 0:
        return fail("cartTotal must be a non-negative integer amount in pence", 400)
    session_ids = data.get("sessionIds") or []
    if not isinstance(session_ids, list):
        return fail("sessionIds must be a list", 400)

    result = discount_service.validate_coupon(data.get("code"), cart_total, session_ids)
    return jsonify({"success": True, **result.to_dict()}), 200

# Overview: Admin coupon and payment plan management.

from flask import Blueprint, current_app, request

from ..decorators import require_auth, require_role
from ..responses import domain_error, fail, ok
from ..services import coupons_service
from ..services.auth_service import ROLE_ADMIN
from ..validation import DomainError

admin_discounts_bp = Blueprint("admin_discounts", __name__, url_prefix="/api/admin")


# =============================================================================
# COUPONS
# =============================================================================

@admin_discounts_bp.get("/coupons")
@require_auth
@require_role(ROLE_ADMIN)
def list_coupons_route():
    active_only = request.args.get("active", "false").lower() == "true"
    return ok(coupons_service.list_coupons(active_only=active_only))


@admin_discounts_bp.post("/coupons")
@require_auth
@require_role(ROLE_ADMIN)
def create_coupon_route():
    """
    Request body:
    {
        "code": "SUMMER-10",            // letters, numbers, hyphens; stored uppercase
        "discountType": "percentage",   // or "fixed"
        "discountValue": 10,            // percent, or pence for fixed
        "minPurchase": 5000,            // optional, pence
        "maxUses": 100,                 // optional
        "validFrom": "...", "validUntil": "...",
        "applicableSessions": [1, 2]    // optional
    }
    """
    try:
        coupon = coupons_service.create_coupon(request.get_json(silent=True))
    except DomainError as e:
        return domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create coupon")
        return fail("Failed to create coupon", 500)
    return ok(coupon.to_dict(), status=201)


@admin_discounts_bp.patch("/coupons/<int:coupon_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_coupon_route(coupon_id: int):
    try:
        coupon = coupons_service.update_coupon(coupon_id, request.get_json(silent=True) or {})
    except DomainError as e:
        return domain_error(e)
    return ok(coupon.to_dict())


@admin_discounts_bp.get("/coupons/<int:coupon_id>/uses")
@require_auth
@require_role(ROLE_ADMIN)
def coupon_uses_route(coupon_id: int):
    try:
        uses = coupons_service.coupon_uses(coupon_id)
    except DomainError as e:
        return domain_error(e)
    return ok(uses, count=len(uses))


# =============================================================================
# PAYMENT PLANS
# =============================================================================

@admin_discounts_bp.get("/payment-plans")
@require_auth
@require_role(ROLE_ADMIN)
def list_payment_plans_route():
    active_only = request.args.get("active", "false").lower() == "true"
    return ok(coupons_service.list_payment_plans(active_only=active_only))


@admin_discounts_bp.post("/payment-plans")
@require_auth
@require_role(ROLE_ADMIN)
def create_payment_plan_route():
    try:
        plan = coupons_service.create_payment_plan(request.get_json(silent=True))
    except DomainError as e:
        return domain_error(e)
    return ok(plan.to_dict(), status=201)


@admin_discounts_bp.post("/payment-plans/<int:plan_id>/active")
@require_auth
@require_role(ROLE_ADMIN)
def set_payment_plan_active_route(plan_id: int):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("isActive"), bool):
        return fail("isActive must be true or false", 400)
    try:
        plan = coupons_service.set_payment_plan_active(plan_id, data["isActive"])
    except DomainError as e:
        return domain_error(e)
    return ok(plan.to_dict())

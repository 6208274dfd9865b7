# Overview: Coupon validation, discount arithmetic, redemption and payment-plan schedules.

"""
Discount Engine

WHY: Checkout needs to answer "is this code usable for this cart, and how
much does it take off?" without ever raising into the request, and the
redemption has to be counted exactly once per booking.

DESIGN PRINCIPLES:
- validate_coupon never raises: every outcome is a CouponValidation
- Codes are compared trimmed and uppercased
- Amounts are integer pence; percentage discounts round half-up
- A discount never exceeds the cart total
- record_coupon_use runs inside the caller's transaction and is a no-op
  the second time for the same booking
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Coupon, CouponUse, PaymentPlan
from academy.time_utils import utcnow
from .concurrency import atomic_add


DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED)


@dataclass
class CouponValidation:
    valid: bool
    discount: int = 0
    coupon: Coupon | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        data = {"valid": self.valid}
        if self.valid:
            data["discount"] = self.discount
            data["coupon"] = self.coupon.to_public_dict() if self.coupon else None
        else:
            data["error"] = self.error
        return data


@dataclass
class DepositSchedule:
    deposit: int
    balance_due: int
    balance_due_date: date
    installments: list[int]

    def to_dict(self) -> dict:
        return {
            "depositAmount": self.deposit,
            "balanceDue": self.balance_due,
            "balanceDueDate": self.balance_due_date.isoformat(),
            "installments": list(self.installments),
        }


def normalize_code(code) -> str:
    if code is None:
        return ""
    return str(code).strip().upper()


def format_pounds(pence: int) -> str:
    return f"£{pence // 100}.{pence % 100:02d}"


# =============================================================================
# VALIDATION
# =============================================================================

def validate_coupon(code, cart_total: int, session_ids=None, now: datetime | None = None) -> CouponValidation:
    """
    Check a coupon code against a cart.

    Checks run in a fixed order and the first failure is reported:
    empty code, unknown code, inactive, not yet valid, expired, usage
    limit, minimum purchase, applicable sessions.
    """
    normalized = normalize_code(code)
    if not normalized:
        return CouponValidation(False, error="Please enter a coupon code")

    try:
        coupon = db.session.query(Coupon).filter_by(code=normalized).first()
    except SQLAlchemyError:
        current_app.logger.exception("Coupon lookup failed for %s", normalized)
        return CouponValidation(False, error="Failed to validate coupon. Please try again.")

    if coupon is None:
        return CouponValidation(False, error="Invalid coupon code")

    if not coupon.is_active:
        return CouponValidation(False, error="This coupon is no longer active")

    now = now or utcnow()
    if coupon.valid_from is not None and now < coupon.valid_from:
        return CouponValidation(False, error="This coupon is not yet valid")
    if coupon.valid_until is not None and now > coupon.valid_until:
        return CouponValidation(False, error="This coupon has expired")

    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        return CouponValidation(False, error="This coupon has reached its usage limit")

    if coupon.min_purchase and cart_total < coupon.min_purchase:
        return CouponValidation(
            False,
            error=f"Minimum purchase of {format_pounds(coupon.min_purchase)} required for this coupon",
        )

    applicable = [str(s) for s in (coupon.applicable_sessions or [])]
    if applicable:
        cart = {str(s) for s in (session_ids or [])}
        if not cart.intersection(applicable):
            return CouponValidation(False, error="This coupon is not valid for the items in your cart")

    return CouponValidation(True, discount=calculate_discount(coupon, cart_total), coupon=coupon)


def calculate_discount(coupon: Coupon, cart_total: int) -> int:
    """
    percentage: round_half_up(cart_total * value / 100)
    fixed: value
    Capped at cart_total.
    """
    if cart_total <= 0:
        return 0
    if coupon.discount_type == DISCOUNT_PERCENTAGE:
        # Integer half-up rounding of cart_total * value / 100
        discount = (cart_total * coupon.discount_value * 2 + 100) // 200
    else:
        discount = coupon.discount_value
    return max(0, min(discount, cart_total))


# =============================================================================
# REDEMPTION
# =============================================================================

def record_coupon_use(coupon_id: int, coupon_code: str, booking_id: int, discount_applied: int) -> CouponUse | None:
    """
    Write the CouponUse row and bump coupons.used_count.

    Runs in the caller's transaction (no commit) so the two writes land
    together with the payment they belong to. Returns None when this
    booking already redeemed a coupon; the unique booking_id on
    coupon_uses backs this up under concurrency.

    used_count never passes max_uses. Two carts validated against the
    last remaining use are both paid for by then, so the second keeps its
    discount and its CouponUse row but the counter is not bumped.
    """
    existing = db.session.query(CouponUse).filter_by(booking_id=booking_id).first()
    if existing is not None:
        return None

    use = CouponUse(
        coupon_id=coupon_id,
        coupon_code=normalize_code(coupon_code),
        booking_id=booking_id,
        discount_applied=discount_applied,
        used_at=utcnow(),
    )
    db.session.add(use)
    db.session.flush()
    bumped = atomic_add(
        Coupon, coupon_id, Coupon.used_count, 1,
        where=[or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses)],
        extra_values={Coupon.updated_at: utcnow()},
    )
    if not bumped:
        current_app.logger.warning(
            "Coupon %s redeemed by booking %s after reaching its usage limit", use.coupon_code, booking_id,
        )
    return use


# =============================================================================
# PAYMENT PLANS
# =============================================================================

def plan_applies(plan: PaymentPlan, cart_total: int, session_ids=None) -> str | None:
    """Returns an error message, or None when the plan can be used."""
    if not plan.is_active:
        return "This payment plan is not available"
    if plan.installment_count < 2:
        return "This payment plan is not available"
    if plan.min_purchase_amount and cart_total < plan.min_purchase_amount:
        return f"Minimum purchase of {format_pounds(plan.min_purchase_amount)} required for this payment plan"
    allowed = [str(s) for s in (plan.session_ids or [])]
    if allowed:
        cart = {str(s) for s in (session_ids or [])}
        if not cart.issubset(allowed):
            return "This payment plan is not valid for the items in your cart"
    return None


def split_installments(total: int, count: int) -> list[int]:
    """Even split; the remainder pence go on the first instalment."""
    if count <= 0:
        raise ValueError("count must be positive")
    base, remainder = divmod(total, count)
    parts = [base] * count
    parts[0] += remainder
    return parts


def deposit_schedule(plan: PaymentPlan, total: int, today: date | None = None) -> DepositSchedule:
    installments = split_installments(total, plan.installment_count)
    today = today or utcnow().date()
    deposit = installments[0]
    return DepositSchedule(
        deposit=deposit,
        balance_due=total - deposit,
        balance_due_date=today + timedelta(days=plan.interval_days),
        installments=installments,
    )

# Overview: Admin CRUD for coupons and payment plans.

from __future__ import annotations

import re

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Coupon, CouponUse, PaymentPlan
from ..validation import (
    ConflictError,
    ValidationError,
    clean_str,
    parse_optional_datetime,
    parse_pence,
    parse_positive_int,
    require_fields,
)
from .discount_service import DISCOUNT_FIXED, DISCOUNT_PERCENTAGE, DISCOUNT_TYPES, normalize_code
from .store import get_or_404

COUPON_CODE_RE = re.compile(r"^[A-Z0-9-]+$")

COUPON_FIELDS = {
    "description": "description",
    "discountType": "discount_type",
    "discountValue": "discount_value",
    "minPurchase": "min_purchase",
    "maxUses": "max_uses",
    "validFrom": "valid_from",
    "validUntil": "valid_until",
    "applicableSessions": "applicable_sessions",
    "isActive": "is_active",
}


def _optional_int(value, field: str) -> int | None:
    if value in (None, "", 0):
        return None
    return parse_positive_int(value, field)


def _coupon_values(data: dict, current: Coupon | None = None) -> dict:
    values = {}
    for key, attr in COUPON_FIELDS.items():
        if key not in data:
            continue
        raw = data[key]
        if key == "discountType":
            if raw not in DISCOUNT_TYPES:
                raise ValidationError(f"discountType must be one of {list(DISCOUNT_TYPES)}")
            values[attr] = raw
        elif key == "discountValue":
            values[attr] = parse_pence(raw, "discountValue")
        elif key == "minPurchase":
            values[attr] = None if raw in (None, "", 0) else parse_pence(raw, "minPurchase")
        elif key == "maxUses":
            values[attr] = _optional_int(raw, "maxUses")
        elif key in ("validFrom", "validUntil"):
            values[attr] = parse_optional_datetime(raw, key)
        elif key == "applicableSessions":
            if raw in (None, ""):
                values[attr] = None
            elif not isinstance(raw, list):
                raise ValidationError("applicableSessions must be a list of session ids")
            else:
                values[attr] = [str(s) for s in raw] or None
        elif key == "isActive":
            values[attr] = bool(raw)
        else:
            values[attr] = clean_str(raw)

    discount_type = values.get("discount_type", current.discount_type if current else None)
    discount_value = values.get("discount_value", current.discount_value if current else None)
    if discount_type == DISCOUNT_PERCENTAGE and discount_value is not None and discount_value > 100:
        raise ValidationError("Percentage discount must be between 0 and 100")
    if discount_type == DISCOUNT_FIXED and discount_value is not None and discount_value <= 0:
        raise ValidationError("Fixed discount must be positive")

    valid_from = values.get("valid_from", current.valid_from if current else None)
    valid_until = values.get("valid_until", current.valid_until if current else None)
    if valid_from and valid_until and valid_until <= valid_from:
        raise ValidationError("validUntil must be after validFrom")
    return values


def list_coupons(active_only: bool = False) -> list[dict]:
    q = db.session.query(Coupon)
    if active_only:
        q = q.filter_by(is_active=True)
    return [c.to_dict() for c in q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()]


def create_coupon(data: dict) -> Coupon:
    data = require_fields(data, ("code", "discountType", "discountValue"))
    code = normalize_code(data["code"])
    if not COUPON_CODE_RE.match(code):
        raise ValidationError("Coupon code can only contain letters, numbers, and hyphens")
    if db.session.query(Coupon).filter_by(code=code).first():
        raise ConflictError("A coupon with this code already exists")

    coupon = Coupon(code=code, used_count=0, is_active=True, **_coupon_values(data))
    db.session.add(coupon)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A coupon with this code already exists")
    return coupon


def update_coupon(coupon_id: int, data: dict) -> Coupon:
    """code and usedCount are not editable; redemption owns usedCount."""
    coupon = get_or_404(Coupon, coupon_id, "Coupon")
    if "usedCount" in data or "code" in data:
        raise ValidationError("code and usedCount cannot be changed")
    for attr, value in _coupon_values(data, coupon).items():
        setattr(coupon, attr, value)
    db.session.commit()
    return coupon


def coupon_uses(coupon_id: int) -> list[dict]:
    get_or_404(Coupon, coupon_id, "Coupon")
    uses = (
        db.session.query(CouponUse)
        .filter_by(coupon_id=coupon_id)
        .order_by(CouponUse.used_at.desc())
        .all()
    )
    return [u.to_dict() for u in uses]


def list_payment_plans(active_only: bool = False) -> list[dict]:
    q = db.session.query(PaymentPlan)
    if active_only:
        q = q.filter_by(is_active=True)
    return [p.to_dict() for p in q.order_by(PaymentPlan.created_at.desc(), PaymentPlan.id.desc()).all()]


def create_payment_plan(data: dict) -> PaymentPlan:
    data = require_fields(data, ("name", "installmentCount"))
    count = parse_positive_int(data["installmentCount"], "installmentCount")
    if count < 2:
        raise ValidationError("installmentCount must be at least 2")
    session_ids = data.get("sessionIds") or None
    if session_ids is not None and not isinstance(session_ids, list):
        raise ValidationError("sessionIds must be a list of session ids")

    plan = PaymentPlan(
        name=clean_str(data["name"]),
        description=clean_str(data.get("description"), 2000),
        installment_count=count,
        interval_days=parse_positive_int(data.get("intervalDays", 30), "intervalDays"),
        session_ids=[str(s) for s in session_ids] if session_ids else None,
        min_purchase_amount=None if data.get("minPurchaseAmount") in (None, "", 0)
        else parse_pence(data["minPurchaseAmount"], "minPurchaseAmount"),
        is_active=bool(data.get("isActive", True)),
    )
    db.session.add(plan)
    db.session.commit()
    return plan


def set_payment_plan_active(plan_id: int, is_active: bool) -> PaymentPlan:
    plan = get_or_404(PaymentPlan, plan_id, "Payment plan")
    plan.is_active = bool(is_active)
    db.session.commit()
    return plan

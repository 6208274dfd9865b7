from __future__ import annotations

from ..extensions import db
from academy.time_utils import to_utc_z


class Coupon(db.Model):
    """
    Discount code entered at checkout.

    discount_value is 0-100 for "percentage", pence for "fixed".
    used_count only moves together with a CouponUse row
    (discount_service.record_coupon_use).
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.CheckConstraint("used_count >= 0", name="ck_coupons_used_count_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)  # uppercase
    description = db.Column(db.String(255), nullable=True)

    discount_type = db.Column(db.String(16), nullable=False)  # percentage, fixed
    discount_value = db.Column(db.Integer, nullable=False)

    min_purchase = db.Column(db.Integer, nullable=True)
    max_uses = db.Column(db.Integer, nullable=True)  # NULL = unlimited
    used_count = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=True)
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)
    applicable_sessions = db.Column(db.JSON, nullable=True)  # empty = all sessions

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "minPurchase": self.min_purchase,
            "maxUses": self.max_uses,
            "usedCount": self.used_count,
            "validFrom": to_utc_z(self.valid_from),
            "validUntil": to_utc_z(self.valid_until),
            "applicableSessions": self.applicable_sessions or [],
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_public_dict(self) -> dict:
        """Fields safe to show a customer at checkout."""
        return {
            "id": self.id,
            "code": self.code,
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "description": self.description,
        }


class CouponUse(db.Model):
    """Audit row for one redemption. One per booking."""
    __tablename__ = "coupon_uses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)
    coupon_code = db.Column(db.String(64), nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True)
    discount_applied = db.Column(db.Integer, nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "couponId": self.coupon_id,
            "couponCode": self.coupon_code,
            "bookingId": self.booking_id,
            "discountApplied": self.discount_applied,
            "usedAt": to_utc_z(self.used_at),
        }

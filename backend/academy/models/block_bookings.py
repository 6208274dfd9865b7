from __future__ import annotations

from ..extensions import db
from academy.time_utils import to_iso_date, to_utc_z


class BlockBooking(db.Model):
    """
    Pre-paid bundle of sessions consumed one attended session at a time.

    STATUSES: active, completed (all sessions used), expired, refunded, cancelled
    """
    __tablename__ = "block_bookings"
    __table_args__ = (
        db.CheckConstraint("remaining_sessions >= 0", name="ck_block_bookings_remaining_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    student_name = db.Column(db.String(255), nullable=False)
    parent_name = db.Column(db.String(255), nullable=False)
    parent_email = db.Column(db.String(255), nullable=False, index=True)
    parent_phone = db.Column(db.String(32), nullable=True)

    total_sessions = db.Column(db.Integer, nullable=False)
    remaining_sessions = db.Column(db.Integer, nullable=False)

    total_paid = db.Column(db.Integer, nullable=False, default=0)  # pence
    price_per_session = db.Column(db.Integer, nullable=False, default=0)  # pence
    payment_method = db.Column(db.String(32), nullable=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    purchased_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    usages = db.relationship(
        "BlockBookingUsage",
        backref="block_booking",
        lazy=True,
        order_by="BlockBookingUsage.used_at",
    )
    refunds = db.relationship(
        "BlockBookingRefund",
        backref="block_booking",
        lazy=True,
        order_by="BlockBookingRefund.refunded_at",
    )

    @property
    def used_sessions(self) -> int:
        return self.total_sessions - self.remaining_sessions

    @property
    def value_remaining(self) -> int:
        return self.remaining_sessions * self.price_per_session

    def to_dict(self, include_history: bool = False) -> dict:
        used = self.used_sessions
        data = {
            "id": self.id,
            "studentName": self.student_name,
            "parentName": self.parent_name,
            "parentEmail": self.parent_email,
            "parentPhone": self.parent_phone,
            "totalSessions": self.total_sessions,
            "remainingSessions": self.remaining_sessions,
            "usedSessions": used,
            "percentageUsed": round(used * 100 / self.total_sessions) if self.total_sessions else 0,
            "totalPaid": self.total_paid,
            "pricePerSession": self.price_per_session,
            "valueRemaining": self.value_remaining,
            "paymentMethod": self.payment_method,
            "status": self.status,
            "purchasedAt": to_utc_z(self.purchased_at),
            "expiresAt": to_utc_z(self.expires_at),
            "notes": self.notes,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if include_history:
            data["usageHistory"] = [u.to_dict() for u in self.usages]
            data["refunds"] = [r.to_dict() for r in self.refunds]
        return data


class BlockBookingUsage(db.Model):
    """
    One deducted session. Append-only.

    timetable_slot_id is "" (not NULL) when absent so the unique constraint
    also covers slot-less deductions.
    """
    __tablename__ = "block_booking_usages"
    __table_args__ = (
        db.UniqueConstraint(
            "block_booking_id", "session_date", "timetable_slot_id",
            name="uq_block_booking_usage_date_slot",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    block_booking_id = db.Column(db.Integer, db.ForeignKey("block_bookings.id"), nullable=False, index=True)

    session_date = db.Column(db.Date, nullable=False)
    timetable_slot_id = db.Column(db.String(64), nullable=False, default="")
    coach_id = db.Column(db.String(64), nullable=True)
    coach_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    deducted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionDate": to_iso_date(self.session_date),
            "timetableSlotId": self.timetable_slot_id or None,
            "coachId": self.coach_id,
            "coachName": self.coach_name,
            "notes": self.notes,
            "deductedBy": self.deducted_by_user_id,
            "usedAt": to_utc_z(self.used_at),
        }


class BlockBookingRefund(db.Model):
    """Refund of unused sessions. Append-only."""
    __tablename__ = "block_booking_refunds"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    block_booking_id = db.Column(db.Integer, db.ForeignKey("block_bookings.id"), nullable=False, index=True)
    sessions_refunded = db.Column(db.Integer, nullable=False)
    amount_refunded = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    # Card-paid bundles still need the money returned through Stripe by hand
    requires_provider_refund = db.Column(db.Boolean, nullable=False, default=False)
    refunded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sessionsRefunded": self.sessions_refunded,
            "amountRefunded": self.amount_refunded,
            "reason": self.reason,
            "requiresProviderRefund": self.requires_provider_refund,
            "refundedBy": self.refunded_by_user_id,
            "refundedAt": to_utc_z(self.refunded_at),
        }

from __future__ import annotations

from ..extensions import db
from academy.time_utils import to_utc_z


class Payment(db.Model):
    """
    Money received against a booking. Append-only.

    The booking's payment_status is always re-derived from the sum of its
    paid Payment rows (services/status_rules.py), never maintained
    incrementally.

    METHODS:
    - card: Stripe checkout (full, deposit or balance)
    - payment_link: Stripe payment link raised by an admin
    - cash / bank_transfer: recorded manually by an admin

    `reference` is the provider payment id (payment intent or checkout
    session). It is unique so the same provider payment can never be
    counted twice, which is what makes mark_paid idempotent.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)  # pence
    method = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="paid", index=True)  # paid, refunded
    payment_type = db.Column(db.String(16), nullable=True)  # full, deposit, balance
    reference = db.Column(db.String(255), nullable=True, unique=True)
    stripe_payment_link_id = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    booking = db.relationship("Booking", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bookingId": self.booking_id,
            "amount": self.amount,
            "method": self.method,
            "status": self.status,
            "paymentType": self.payment_type,
            "reference": self.reference,
            "notes": self.notes,
            "recordedByUserId": self.recorded_by_user_id,
            "receivedAt": to_utc_z(self.received_at),
            "createdAt": to_utc_z(self.created_at),
        }


class PaymentLink(db.Model):
    """Stripe payment link raised by an admin, optionally tied to a booking."""
    __tablename__ = "payment_links"
    __table_args__ = {"sqlite_autoincrement": True}

    STATUS_ACTIVE = "active"
    STATUS_COMPLETED = "completed"
    STATUS_EXPIRED = "expired"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Integer, nullable=False)  # pence

    stripe_payment_link_id = db.Column(db.String(255), nullable=False, unique=True)
    url = db.Column(db.String(512), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, completed, expired
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bookingId": self.booking_id,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "description": self.description,
            "amount": self.amount,
            "stripePaymentLinkId": self.stripe_payment_link_id,
            "url": self.url,
            "status": self.status,
            "expiresAt": to_utc_z(self.expires_at),
            "paidAt": to_utc_z(self.paid_at),
            "createdAt": to_utc_z(self.created_at),
        }


class PaymentPlan(db.Model):
    """
    Instalment template. The first instalment is taken at checkout as a
    deposit; the rest is the booking's balance, due one interval later.
    """
    __tablename__ = "payment_plans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    installment_count = db.Column(db.Integer, nullable=False, default=2)
    interval_days = db.Column(db.Integer, nullable=False, default=30)
    session_ids = db.Column(db.JSON, nullable=True)  # empty = applies to all sessions
    min_purchase_amount = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "installmentCount": self.installment_count,
            "intervalDays": self.interval_days,
            "sessionIds": self.session_ids or [],
            "minPurchaseAmount": self.min_purchase_amount,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }

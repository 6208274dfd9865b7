from __future__ import annotations

from ..extensions import db
from academy.time_utils import to_iso_date, to_utc_z


class Booking(db.Model):
    """
    One family's reservation for one or more sessions.

    Provisional (status NULL, payment_status "pending") until the payment
    provider confirms. Never deleted: cancellation is a status flag.

    enrollment_applied_at marks that this booking's seats were added to
    sessions.enrolled. It is set with a conditional UPDATE so the effect is
    applied at most once whatever path (webhook, manual payment, payment
    link) confirms the booking.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_payment_status_created", "payment_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_ref = db.Column(db.String(32), nullable=False, unique=True, index=True)

    session_ids = db.Column(db.JSON, nullable=False, default=list)
    program_id = db.Column(db.Integer, db.ForeignKey("programs.id"), nullable=True)

    # Child
    child_first_name = db.Column(db.String(120), nullable=False)
    child_last_name = db.Column(db.String(120), nullable=False)
    child_dob = db.Column(db.Date, nullable=True)
    age_group = db.Column(db.String(16), nullable=True)
    medical_conditions = db.Column(db.Text, nullable=True)

    # Parent
    parent_first_name = db.Column(db.String(120), nullable=False)
    parent_last_name = db.Column(db.String(120), nullable=False)
    parent_email = db.Column(db.String(255), nullable=False, index=True)
    parent_phone = db.Column(db.String(32), nullable=True)
    emergency_contact_name = db.Column(db.String(255), nullable=True)
    emergency_contact_phone = db.Column(db.String(32), nullable=True)
    emergency_contact_relationship = db.Column(db.String(64), nullable=True)

    # Consent
    photo_consent = db.Column(db.Boolean, nullable=False, default=False)
    terms_accepted = db.Column(db.Boolean, nullable=False, default=False)
    marketing_consent = db.Column(db.Boolean, nullable=False, default=False)

    # Money (pence). amount is net of discount.
    subtotal = db.Column(db.Integer, nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    amount = db.Column(db.Integer, nullable=False)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True)
    coupon_code = db.Column(db.String(64), nullable=True)

    # pending, paid, partial, failed, expired, refunded, partially_refunded
    payment_status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    payment_type = db.Column(db.String(16), nullable=False, default="full")  # full, deposit
    payment_method = db.Column(db.String(32), nullable=True)
    # confirmed, cancelled, waitlist (NULL while provisional)
    status = db.Column(db.String(16), nullable=True, index=True)

    payment_plan_id = db.Column(db.Integer, db.ForeignKey("payment_plans.id"), nullable=True)
    deposit_paid = db.Column(db.Integer, nullable=False, default=0)
    balance_due = db.Column(db.Integer, nullable=False, default=0)
    balance_due_date = db.Column(db.Date, nullable=True)
    balance_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    stripe_session_id = db.Column(db.String(255), nullable=True, index=True)
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    failure_reason = db.Column(db.String(255), nullable=True)
    refunded_amount = db.Column(db.Integer, nullable=False, default=0)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    enrollment_applied_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def child_name(self) -> str:
        return f"{self.child_first_name} {self.child_last_name}".strip()

    @property
    def parent_name(self) -> str:
        return f"{self.parent_first_name} {self.parent_last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bookingRef": self.booking_ref,
            "sessionIds": list(self.session_ids or []),
            "programId": self.program_id,
            "childFirstName": self.child_first_name,
            "childLastName": self.child_last_name,
            "childDOB": to_iso_date(self.child_dob),
            "ageGroup": self.age_group,
            "medicalConditions": self.medical_conditions,
            "parentFirstName": self.parent_first_name,
            "parentLastName": self.parent_last_name,
            "parentEmail": self.parent_email,
            "parentPhone": self.parent_phone,
            "emergencyContact": {
                "name": self.emergency_contact_name,
                "phone": self.emergency_contact_phone,
                "relationship": self.emergency_contact_relationship,
            },
            "photoConsent": self.photo_consent,
            "termsAccepted": self.terms_accepted,
            "marketingConsent": self.marketing_consent,
            "subtotal": self.subtotal,
            "discountAmount": self.discount_amount,
            "amount": self.amount,
            "couponCode": self.coupon_code,
            "paymentStatus": self.payment_status,
            "paymentType": self.payment_type,
            "paymentMethod": self.payment_method,
            "status": self.status,
            "paymentPlanId": self.payment_plan_id,
            "depositPaid": self.deposit_paid,
            "balanceDue": self.balance_due,
            "balanceDueDate": to_iso_date(self.balance_due_date),
            "balancePaidAt": to_utc_z(self.balance_paid_at),
            "failureReason": self.failure_reason,
            "refundedAmount": self.refunded_amount,
            "refundedAt": to_utc_z(self.refunded_at),
            "enrollmentApplied": self.enrollment_applied_at is not None,
            "cancelledAt": to_utc_z(self.cancelled_at),
            "cancellationReason": self.cancellation_reason,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

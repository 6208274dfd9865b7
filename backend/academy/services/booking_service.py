# Overview: Booking lifecycle: provisional creation, payment application, failure, expiry, refund, cancellation.

"""
Booking Aggregate Manager

WHY: A booking is touched by the checkout request, by provider webhooks
(possibly retried, possibly out of order), by admins recording cash and
by parents cancelling. Each of those paths must leave the booking, the
session counters and the coupon counter consistent.

DESIGN PRINCIPLES:
- Money is append-only: every payment is a Payment row
- payment_status is re-derived from the sum of paid Payment rows
- A provider payment id is stored on the Payment row with a unique
  constraint, so the same payment can never be applied twice
- Seats and coupon redemption are side effects of the first transition
  into a confirmed status, each guarded on its own
- Narrow status updates (success/failure/expiry events) are conditional
  UPDATEs that only move the booking out of the statuses they name
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import date, datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Booking, Payment, PaymentLink, PaymentPlan
from ..validation import (
    ConflictError,
    ValidationError,
    clean_str,
    parse_email,
    parse_optional_datetime,
    require_fields,
)
from academy.time_utils import utcnow
from . import capacity_ledger, discount_service
from .concurrency import run_with_retry
from .status_rules import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    PAYMENT_CONFIRMED_STATUSES,
    PAYMENT_EXPIRED,
    PAYMENT_FAILED,
    PAYMENT_OPEN_STATUSES,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_PENDING,
    PAYMENT_REFUNDABLE_STATUSES,
    can_transition,
    derive_payment_status,
    refund_status,
)
from .store import get_for_update, get_or_404


BOOKING_REF_PREFIX = "TTNTS-"
# No 0/O or 1/I/L: refs get read out over the phone
BOOKING_REF_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
BOOKING_REF_LENGTH = 6

METHOD_CARD = "card"
METHOD_PAYMENT_LINK = "payment_link"
METHOD_CASH = "cash"
METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_COUPON = "coupon"
MANUAL_PAYMENT_METHODS = (METHOD_CASH, METHOD_BANK_TRANSFER)

PAYMENT_TYPE_FULL = "full"
PAYMENT_TYPE_DEPOSIT = "deposit"
PAYMENT_TYPE_BALANCE = "balance"
PAYMENT_TYPES = (PAYMENT_TYPE_FULL, PAYMENT_TYPE_DEPOSIT, PAYMENT_TYPE_BALANCE)

AGE_GROUPS = (
    (4, 5, "mini-kickers"),
    (6, 7, "juniors"),
    (8, 9, "seniors"),
    (10, 11, "advanced"),
)

REQUIRED_CUSTOMER_FIELDS = (
    "childFirstName",
    "childLastName",
    "parentFirstName",
    "parentLastName",
    "parentEmail",
)


@dataclass
class PaymentApplied:
    """
    Outcome of applying a payment.

    applied is False when the provider payment had already been recorded
    (a retried webhook); callers use it to decide whether to notify.
    """
    booking: Booking
    applied: bool
    previous_status: str
    payment: Payment | None = None
    newly_enrolled: bool = False

    @property
    def newly_confirmed(self) -> bool:
        return self.applied and self.previous_status not in PAYMENT_CONFIRMED_STATUSES \
            and self.booking.payment_status in PAYMENT_CONFIRMED_STATUSES


# =============================================================================
# CREATION
# =============================================================================

def generate_booking_ref() -> str:
    suffix = "".join(secrets.choice(BOOKING_REF_ALPHABET) for _ in range(BOOKING_REF_LENGTH))
    return f"{BOOKING_REF_PREFIX}{suffix}"


def calculate_age(dob: date, today: date | None = None) -> int:
    today = today or utcnow().date()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def age_group_for(dob: date | None, today: date | None = None) -> str | None:
    if dob is None:
        return None
    age = calculate_age(dob, today)
    for low, high, name in AGE_GROUPS:
        if low <= age <= high:
            return name
    return "unknown"


def _parse_dob(value) -> date | None:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError("childDOB must be in YYYY-MM-DD format")


def create_pending_booking(
    customer: dict,
    session_ids: list[int],
    *,
    subtotal: int,
    discount: int = 0,
    coupon=None,
    payment_plan: PaymentPlan | None = None,
    program_id: int | None = None,
) -> Booking:
    """
    Write a provisional booking before the customer is sent to pay.

    amount = subtotal - discount (never negative). payment_status starts
    "pending" and status stays NULL until a payment confirms it.
    """
    customer = require_fields(customer, REQUIRED_CUSTOMER_FIELDS)
    if not session_ids:
        raise ValidationError("At least one session is required")
    if discount < 0 or subtotal < 0:
        raise ValidationError("Amounts cannot be negative")

    dob = _parse_dob(customer.get("childDOB"))
    emergency = customer.get("emergencyContact") or {}
    if not isinstance(emergency, dict):
        raise ValidationError("emergencyContact must be an object")

    booking = Booking(
        booking_ref=generate_booking_ref(),
        session_ids=[int(s) for s in session_ids],
        program_id=program_id,
        child_first_name=clean_str(customer["childFirstName"], 120),
        child_last_name=clean_str(customer["childLastName"], 120),
        child_dob=dob,
        age_group=age_group_for(dob),
        medical_conditions=clean_str(customer.get("medicalConditions"), 4000),
        parent_first_name=clean_str(customer["parentFirstName"], 120),
        parent_last_name=clean_str(customer["parentLastName"], 120),
        parent_email=parse_email(customer["parentEmail"], "parentEmail"),
        parent_phone=clean_str(customer.get("parentPhone"), 32),
        emergency_contact_name=clean_str(emergency.get("name")),
        emergency_contact_phone=clean_str(emergency.get("phone"), 32),
        emergency_contact_relationship=clean_str(emergency.get("relationship"), 64),
        photo_consent=bool(customer.get("photoConsent")),
        terms_accepted=bool(customer.get("termsAccepted")),
        marketing_consent=bool(customer.get("marketingConsent")),
        subtotal=subtotal,
        discount_amount=discount,
        amount=max(subtotal - discount, 0),
        coupon_id=coupon.id if coupon is not None else None,
        coupon_code=coupon.code if coupon is not None else None,
        payment_status=PAYMENT_PENDING,
        payment_type=PAYMENT_TYPE_DEPOSIT if payment_plan is not None else PAYMENT_TYPE_FULL,
        payment_plan_id=payment_plan.id if payment_plan is not None else None,
    )
    db.session.add(booking)
    try:
        db.session.commit()
    except IntegrityError:
        # Ref collision: 32^6 space, so one retry is plenty
        db.session.rollback()
        booking.booking_ref = generate_booking_ref()
        db.session.add(booking)
        db.session.commit()

    current_app.logger.info("Created pending booking %s (%s pence)", booking.booking_ref, booking.amount)
    return booking


def attach_checkout_session(booking_id: int, checkout_session_id: str, *, balance_due: int | None = None,
                            balance_due_date: date | None = None) -> None:
    values = {Booking.stripe_session_id: checkout_session_id, Booking.updated_at: utcnow()}
    if balance_due is not None:
        values[Booking.balance_due] = balance_due
    if balance_due_date is not None:
        values[Booking.balance_due_date] = balance_due_date
    db.session.query(Booking).filter(Booking.id == booking_id).update(values, synchronize_session=False)
    db.session.commit()


# =============================================================================
# PAYMENT APPLICATION
# =============================================================================

def total_paid(booking_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.booking_id == booking_id, Payment.status == PAYMENT_PAID)
        .scalar()
    )
    return int(total or 0)


def _claim_payment_link(link_id: int) -> bool:
    """Conditional UPDATE active/expired -> completed, uncommitted."""
    rows = (
        db.session.query(PaymentLink)
        .filter(
            PaymentLink.id == link_id,
            PaymentLink.status.in_((PaymentLink.STATUS_ACTIVE, PaymentLink.STATUS_EXPIRED)),
        )
        .update(
            {PaymentLink.status: PaymentLink.STATUS_COMPLETED, PaymentLink.paid_at: utcnow()},
            synchronize_session=False,
        )
    )
    return rows == 1


def _apply_payment(
    booking_id: int,
    *,
    amount: int | None,
    method: str,
    reference: str | None,
    payment_type: str,
    checkout_session_id: str | None = None,
    payment_intent_id: str | None = None,
    payment_link_id: str | None = None,
    claim_link_id: int | None = None,
    balance_due_date: date | None = None,
    notes: str | None = None,
    received_at: datetime | None = None,
    recorded_by_user_id: int | None = None,
    allow_cancelled: bool = True,
) -> PaymentApplied:
    """
    Shared path for every payment source.

    One transaction: claim the payment link (if any), insert Payment,
    re-derive status, apply enrolment and coupon redemption on
    confirmation. A concurrent duplicate of the same provider payment
    trips the unique reference and is reported as not applied. A failure
    rolls the link claim back with everything else, so a replay can
    still apply it.
    """
    def _op():
        booking = get_for_update(Booking, booking_id, "Booking")
        previous = booking.payment_status

        if reference:
            seen = db.session.query(Payment.id).filter_by(reference=reference).first()
            if seen is not None:
                return PaymentApplied(booking=booking, applied=False, previous_status=previous)

        if claim_link_id is not None and not _claim_payment_link(claim_link_id):
            current_app.logger.info("Payment link %s already completed", payment_link_id)
            return PaymentApplied(booking=booking, applied=False, previous_status=previous)

        if not allow_cancelled and booking.status == BOOKING_CANCELLED:
            raise ConflictError("Cannot record a payment against a cancelled booking")

        paid_so_far = total_paid(booking.id)
        value = max(booking.amount - paid_so_far, 0) if amount is None else amount
        if value < 0:
            raise ValidationError("Payment amount cannot be negative")

        new_status = derive_payment_status(paid_so_far + value, booking.amount)
        if not can_transition(previous, new_status):
            raise ConflictError(f"Cannot apply a payment to a booking with payment status '{previous}'")

        now = utcnow()
        payment = Payment(
            booking_id=booking.id,
            amount=value,
            method=method,
            status=PAYMENT_PAID,
            payment_type=payment_type,
            reference=reference,
            stripe_payment_link_id=payment_link_id,
            notes=notes,
            recorded_by_user_id=recorded_by_user_id,
            received_at=received_at or now,
            created_at=now,
        )
        db.session.add(payment)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.info("Payment %s for booking %s already recorded", reference, booking_id)
            booking = get_or_404(Booking, booking_id, "Booking")
            return PaymentApplied(booking=booking, applied=False, previous_status=booking.payment_status)

        booking.payment_status = new_status
        booking.payment_method = method
        booking.failure_reason = None
        booking.updated_at = now
        if checkout_session_id:
            booking.stripe_session_id = checkout_session_id
        if payment_intent_id:
            booking.stripe_payment_intent_id = payment_intent_id

        paid_after = paid_so_far + value
        if new_status == PAYMENT_PARTIAL:
            if payment_type == PAYMENT_TYPE_DEPOSIT:
                booking.payment_type = PAYMENT_TYPE_DEPOSIT
                booking.deposit_paid = (booking.deposit_paid or 0) + value
            booking.balance_due = booking.amount - paid_after
            if balance_due_date is not None:
                booking.balance_due_date = balance_due_date
        elif new_status == PAYMENT_PAID:
            if previous == PAYMENT_PARTIAL:
                booking.balance_paid_at = now
            booking.balance_due = 0

        newly_enrolled = False
        if new_status in PAYMENT_CONFIRMED_STATUSES and booking.status != BOOKING_CANCELLED:
            booking.status = BOOKING_CONFIRMED
            db.session.flush()
            newly_enrolled = capacity_ledger.apply_booking_enrollment(booking)
            if booking.coupon_id is not None:
                discount_service.record_coupon_use(
                    booking.coupon_id, booking.coupon_code, booking.id, booking.discount_amount,
                )

        try:
            db.session.commit()
        except IntegrityError:
            # Lost a race on coupon_uses or payments.reference
            db.session.rollback()
            current_app.logger.info("Concurrent duplicate payment for booking %s", booking_id)
            booking = get_or_404(Booking, booking_id, "Booking")
            return PaymentApplied(booking=booking, applied=False, previous_status=booking.payment_status)

        current_app.logger.info(
            "Booking %s: %s payment of %s pence via %s (%s -> %s)",
            booking.booking_ref, payment_type, value, method, previous, new_status,
        )
        return PaymentApplied(
            booking=booking,
            applied=True,
            previous_status=previous,
            payment=payment,
            newly_enrolled=newly_enrolled,
        )

    return run_with_retry(_op)


def mark_paid(
    booking_id: int,
    payment_reference: str,
    *,
    amount: int | None = None,
    payment_type: str = PAYMENT_TYPE_FULL,
    checkout_session_id: str | None = None,
    payment_intent_id: str | None = None,
    balance_due_date: date | None = None,
    method: str = METHOD_CARD,
) -> PaymentApplied:
    """
    Confirm a provider payment against a booking.

    Idempotent on payment_reference: the second call for the same
    reference changes nothing and returns applied=False. amount defaults
    to whatever is still owed.
    """
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"Invalid payment type: {payment_type}")
    return _apply_payment(
        booking_id,
        amount=amount,
        method=method,
        reference=payment_reference,
        payment_type=payment_type,
        checkout_session_id=checkout_session_id,
        payment_intent_id=payment_intent_id,
        balance_due_date=balance_due_date,
    )


def record_payment_link_payment(
    booking_id: int,
    amount: int,
    reference: str,
    payment_link_id: str,
    *,
    link_row_id: int | None = None,
) -> PaymentApplied:
    """
    Apply a paid payment link to its booking.

    With link_row_id the link is marked completed in the same
    transaction as the Payment row; an already completed link is
    reported as not applied.
    """
    return _apply_payment(
        booking_id,
        amount=amount,
        method=METHOD_PAYMENT_LINK,
        reference=reference,
        payment_type=PAYMENT_TYPE_FULL,
        payment_link_id=payment_link_id,
        claim_link_id=link_row_id,
    )


def record_manual_payment(
    booking_id: int,
    amount: int,
    method: str,
    *,
    notes: str | None = None,
    date_received=None,
    recorded_by_user_id: int | None = None,
) -> PaymentApplied:
    """
    Record cash or a bank transfer taken by an admin.

    Status is re-derived from all payments: paid when the total covers
    the booking amount, partial when something has been paid.
    """
    if method not in MANUAL_PAYMENT_METHODS:
        raise ValidationError("Payment method must be 'cash' or 'bank_transfer'")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount must be greater than 0")

    return _apply_payment(
        booking_id,
        amount=amount,
        method=method,
        reference=None,
        payment_type=PAYMENT_TYPE_FULL,
        notes=clean_str(notes, 2000),
        received_at=parse_optional_datetime(date_received, "dateReceived"),
        recorded_by_user_id=recorded_by_user_id,
        allow_cancelled=False,
    )


# =============================================================================
# NARROW STATUS UPDATES (provider events)
# =============================================================================

def mark_payment_succeeded(booking_id: int, payment_intent_id: str, payment_type: str = PAYMENT_TYPE_FULL) -> bool:
    """
    Status-only update for a succeeded payment intent.

    Only moves bookings out of pending/failed, so a late or repeated event
    never overwrites a refund. The money, seats and coupon are recorded
    when the checkout session completes.
    """
    new_status = PAYMENT_PARTIAL if payment_type == PAYMENT_TYPE_DEPOSIT else PAYMENT_PAID
    rows = (
        db.session.query(Booking)
        .filter(Booking.id == booking_id, Booking.payment_status.in_(PAYMENT_OPEN_STATUSES))
        .update(
            {
                Booking.payment_status: new_status,
                Booking.stripe_payment_intent_id: payment_intent_id,
                Booking.failure_reason: None,
                Booking.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.session.commit()
    return rows == 1


def mark_failed(booking_id: int, reason: str | None = None) -> bool:
    """pending/failed -> failed. Returns True when the booking moved."""
    rows = (
        db.session.query(Booking)
        .filter(Booking.id == booking_id, Booking.payment_status.in_(PAYMENT_OPEN_STATUSES))
        .update(
            {
                Booking.payment_status: PAYMENT_FAILED,
                Booking.failure_reason: clean_str(reason) or "Payment failed",
                Booking.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.session.commit()
    return rows == 1


def mark_expired(booking_id: int) -> bool:
    """pending -> expired when the customer abandons checkout."""
    rows = (
        db.session.query(Booking)
        .filter(Booking.id == booking_id, Booking.payment_status == PAYMENT_PENDING)
        .update({Booking.payment_status: PAYMENT_EXPIRED, Booking.updated_at: utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return rows == 1


def record_refund(payment_intent_id: str, amount_refunded: int, amount_charged: int) -> Booking | None:
    """
    Reflect a provider refund on the booking paid by payment_intent_id.

    amount_refunded is the cumulative refunded total reported by the
    provider. Returns the booking when it changed, else None. Seats are
    left alone: a refund is money, attendance is cancel_booking's call.
    """
    booking = db.session.query(Booking).filter_by(stripe_payment_intent_id=payment_intent_id).first()
    if booking is None:
        current_app.logger.warning("Refund for unknown payment intent %s", payment_intent_id)
        return None

    new_status = refund_status(amount_refunded, amount_charged)
    rows = (
        db.session.query(Booking)
        .filter(
            Booking.id == booking.id,
            Booking.payment_status.in_(PAYMENT_REFUNDABLE_STATUSES),
            Booking.refunded_amount < amount_refunded,
        )
        .update(
            {
                Booking.payment_status: new_status,
                Booking.refunded_amount: amount_refunded,
                Booking.refunded_at: utcnow(),
                Booking.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.session.commit()
    if rows != 1:
        return None
    current_app.logger.info("Booking %s %s (%s pence)", booking.booking_ref, new_status, amount_refunded)
    return booking


# =============================================================================
# CANCELLATION & QUERIES
# =============================================================================

def cancel_booking(booking_id: int, reason: str | None = None) -> Booking:
    """Cancel and give the seats back. Money is refunded separately."""
    def _op():
        booking = get_for_update(Booking, booking_id, "Booking")
        if booking.status == BOOKING_CANCELLED:
            raise ConflictError("Booking is already cancelled")

        booking.status = BOOKING_CANCELLED
        booking.cancelled_at = utcnow()
        booking.cancellation_reason = clean_str(reason)
        db.session.flush()
        capacity_ledger.release_booking_enrollment(booking)
        db.session.commit()
        current_app.logger.info("Cancelled booking %s", booking.booking_ref)
        return booking

    return run_with_retry(_op)


def get_booking(booking_id: int) -> Booking:
    return get_or_404(Booking, booking_id, "Booking")


def list_bookings(
    *,
    payment_status: str | None = None,
    status: str | None = None,
    session_id: int | None = None,
    parent_email: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Booking]:
    q = db.session.query(Booking)
    if payment_status:
        q = q.filter(Booking.payment_status == payment_status)
    if status:
        q = q.filter(Booking.status == status)
    if parent_email:
        q = q.filter(Booking.parent_email == parent_email.strip().lower())
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(
            Booking.booking_ref.ilike(like)
            | Booking.child_first_name.ilike(like)
            | Booking.child_last_name.ilike(like)
            | Booking.parent_email.ilike(like)
        )
    q = q.order_by(Booking.created_at.desc(), Booking.id.desc())

    if session_id is None:
        return q.offset(offset).limit(limit).all()

    # session_ids is a JSON list; filter in Python to stay portable
    matches = [b for b in q.all() if session_id in [int(s) for s in (b.session_ids or [])]]
    return matches[offset:offset + limit]


def payment_summary(booking: Booking) -> dict:
    payments = (
        db.session.query(Payment)
        .filter_by(booking_id=booking.id)
        .order_by(Payment.received_at.asc(), Payment.id.asc())
        .all()
    )
    paid = sum(p.amount for p in payments if p.status == PAYMENT_PAID)
    return {
        "bookingId": booking.id,
        "bookingRef": booking.booking_ref,
        "amount": booking.amount,
        "totalPaid": paid,
        "remaining": max(booking.amount - paid, 0),
        "paymentStatus": booking.payment_status,
        "payments": [p.to_dict() for p in payments],
    }

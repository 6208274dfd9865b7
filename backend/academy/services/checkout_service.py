# Overview: Cart pricing and hosted-checkout creation for new bookings and balance payments.

"""
Checkout

WHY: Turns a cart into a provisional booking and a hosted payment page.
Nothing here confirms a booking: that only happens when the payment
provider reports the money (webhook_service).

Full sessions are refused here. Once money has been taken the capacity
ledger counts the seat regardless.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..models import Booking, PaymentPlan, TrainingSession
from ..validation import ConflictError, NotFoundError, ValidationError
from . import booking_service, discount_service, notification_service
from .payment_gateway import LineItem, PaymentGatewayError, get_payment_gateway
from .status_rules import BOOKING_CANCELLED, PAYMENT_PARTIAL
from .store import coerce_id, get_many, get_or_404


@dataclass
class CheckoutResult:
    booking: Booking
    checkout_url: str
    checkout_session_id: str | None
    amount_due_now: int

    def to_dict(self) -> dict:
        return {
            "bookingId": self.booking.id,
            "bookingRef": self.booking.booking_ref,
            "checkoutUrl": self.checkout_url,
            "sessionId": self.checkout_session_id,
            "amountDueNow": self.amount_due_now,
        }


def _base_url() -> str:
    return current_app.config.get("PUBLIC_BASE_URL", "").rstrip("/")


def _cart_session_ids(items) -> list[int]:
    if not isinstance(items, list) or not items:
        raise ValidationError("No items in cart")
    ids = []
    for item in items:
        raw = item.get("sessionId") if isinstance(item, dict) else item
        session_id = coerce_id(raw, "sessionId")
        if session_id in ids:
            raise ValidationError("Each session can only be booked once per checkout")
        ids.append(session_id)
    return ids


def load_bookable_sessions(session_ids: list[int]) -> list[TrainingSession]:
    found = get_many(TrainingSession, session_ids)
    sessions = []
    for session_id in session_ids:
        session = found.get(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        if not session.is_active:
            raise ValidationError(f"{session.name} is not currently available for booking")
        if session.is_full:
            raise ConflictError(f"{session.name} is full")
        sessions.append(session)
    return sessions


def price_cart(items, coupon_code=None) -> dict:
    """Preview totals for a cart without writing anything."""
    session_ids = _cart_session_ids(items)
    sessions = load_bookable_sessions(session_ids)
    subtotal = sum(s.price for s in sessions)
    discount = 0
    coupon = None
    if coupon_code:
        result = discount_service.validate_coupon(coupon_code, subtotal, session_ids)
        if not result.valid:
            raise ValidationError(result.error)
        discount, coupon = result.discount, result.coupon
    return {
        "sessionIds": session_ids,
        "sessions": sessions,
        "subtotal": subtotal,
        "discount": discount,
        "coupon": coupon,
        "total": subtotal - discount,
    }


def start_checkout(items, customer: dict, *, coupon_code=None, payment_plan_id=None) -> CheckoutResult:
    """
    Price the cart, write a pending booking and open a hosted checkout.

    With a payment plan only the deposit (first instalment) is charged now.
    A fully discounted cart is confirmed straight away without the provider.

    Raises:
        ValidationError / NotFoundError / ConflictError: bad cart
        PaymentGatewayError: the provider refused to create the session
    """
    priced = price_cart(items, coupon_code)
    session_ids = priced["sessionIds"]
    sessions = priced["sessions"]
    total = priced["total"]

    plan = None
    schedule = None
    if payment_plan_id not in (None, ""):
        plan = get_or_404(PaymentPlan, coerce_id(payment_plan_id, "paymentPlanId"), "Payment plan")
        error = discount_service.plan_applies(plan, total, session_ids)
        if error:
            raise ValidationError(error)
        schedule = discount_service.deposit_schedule(plan, total)

    booking = booking_service.create_pending_booking(
        customer,
        session_ids,
        subtotal=priced["subtotal"],
        discount=priced["discount"],
        coupon=priced["coupon"],
        payment_plan=plan,
        program_id=sessions[0].program_id,
    )

    base = _base_url()
    if total == 0:
        outcome = booking_service.mark_paid(
            booking.id, f"free:{booking.booking_ref}", amount=0, method=booking_service.METHOD_COUPON,
        )
        if outcome.applied:
            notification_service.send_booking_confirmation(outcome.booking, total_paid=0)
        return CheckoutResult(
            booking=outcome.booking,
            checkout_url=f"{base}/checkout/success?booking_ref={booking.booking_ref}",
            checkout_session_id=None,
            amount_due_now=0,
        )

    if schedule is not None:
        names = ", ".join(s.name for s in sessions)
        line_items = [LineItem(name=f"Deposit: {names}", amount=schedule.deposit)]
        charge_now = schedule.deposit
    elif priced["discount"]:
        names = ", ".join(s.name for s in sessions)
        line_items = [LineItem(name=f"{names} (code {booking.coupon_code})", amount=total)]
        charge_now = total
    else:
        line_items = [LineItem(name=s.name, amount=s.price) for s in sessions]
        charge_now = total

    metadata = {
        "bookingId": booking.id,
        "bookingRef": booking.booking_ref,
        "paymentType": booking_service.PAYMENT_TYPE_DEPOSIT if schedule else booking_service.PAYMENT_TYPE_FULL,
        "sessionIds": ",".join(str(s) for s in session_ids),
    }
    if schedule is not None:
        metadata["depositAmount"] = schedule.deposit
        metadata["balanceDue"] = schedule.balance_due
        metadata["balanceDueDate"] = schedule.balance_due_date.isoformat()

    try:
        checkout = get_payment_gateway().create_checkout_session(
            line_items=line_items,
            customer_email=booking.parent_email,
            metadata=metadata,
            success_url=f"{base}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}&booking_ref={booking.booking_ref}",
            cancel_url=f"{base}/checkout?cancelled=true",
        )
    except PaymentGatewayError:
        booking_service.mark_failed(booking.id, "Checkout session could not be created")
        raise

    booking_service.attach_checkout_session(
        booking.id,
        checkout.id,
        balance_due=schedule.balance_due if schedule else None,
        balance_due_date=schedule.balance_due_date if schedule else None,
    )
    current_app.logger.info("Checkout %s opened for booking %s", checkout.id, booking.booking_ref)
    return CheckoutResult(booking=booking, checkout_url=checkout.url,
                          checkout_session_id=checkout.id, amount_due_now=charge_now)


def start_balance_checkout(booking: Booking) -> CheckoutResult:
    """Hosted checkout for the outstanding balance of a deposit booking."""
    if booking.status == BOOKING_CANCELLED:
        raise ConflictError("Booking is cancelled")
    if booking.payment_status != PAYMENT_PARTIAL:
        raise ValidationError("No balance due on this booking")
    balance = booking.amount - booking_service.total_paid(booking.id)
    if balance <= 0:
        raise ValidationError("No balance due")

    sessions = get_many(TrainingSession, [int(s) for s in booking.session_ids or []])
    names = ", ".join(s.name for s in sessions.values())
    base = _base_url()
    checkout = get_payment_gateway().create_checkout_session(
        line_items=[LineItem(name=f"Balance payment: {names}" if names else "Balance payment", amount=balance)],
        customer_email=booking.parent_email,
        metadata={
            "bookingId": booking.id,
            "bookingRef": booking.booking_ref,
            "paymentType": booking_service.PAYMENT_TYPE_BALANCE,
            "originalAmount": booking.amount,
            "depositPaid": booking.deposit_paid,
        },
        success_url=f"{base}/portal/bookings/{booking.id}?balance_paid=true",
        cancel_url=f"{base}/portal/bookings/{booking.id}?cancelled=true",
    )
    return CheckoutResult(booking=booking, checkout_url=checkout.url,
                          checkout_session_id=checkout.id, amount_due_now=balance)

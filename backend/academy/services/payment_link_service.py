# Overview: Admin-raised Stripe payment links and their completion.

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Booking, PaymentLink
from ..validation import ValidationError, clean_str, parse_email, parse_pence, require_fields
from academy.time_utils import utcnow
from . import booking_service, notification_service
from .booking_service import PaymentApplied
from .payment_gateway import get_payment_gateway
from .store import coerce_id, get_or_404

LINK_ACTIVE = PaymentLink.STATUS_ACTIVE
LINK_COMPLETED = PaymentLink.STATUS_COMPLETED
LINK_EXPIRED = PaymentLink.STATUS_EXPIRED
LINK_STATUSES = (LINK_ACTIVE, LINK_COMPLETED, LINK_EXPIRED)

DEFAULT_EXPIRY_DAYS = 7


def list_payment_links(status: str | None = None, limit: int = 50) -> list[dict]:
    q = db.session.query(PaymentLink)
    if status:
        if status not in LINK_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        q = q.filter_by(status=status)
    return [link.to_dict() for link in q.order_by(PaymentLink.created_at.desc()).limit(limit).all()]


def create_payment_link(data: dict, created_by_user_id: int | None = None) -> PaymentLink:
    """
    Create a hosted payment link and email it to the customer.

    A link tied to a booking is applied to that booking when paid.
    """
    data = require_fields(data, ("customerEmail", "amount", "description"))
    email = parse_email(data["customerEmail"], "customerEmail")
    amount = parse_pence(data["amount"], "amount", allow_zero=False)
    description = clean_str(data["description"])
    name = clean_str(data.get("customerName")) or email.split("@")[0]

    booking_id = None
    if data.get("bookingId") not in (None, ""):
        booking_id = get_or_404(Booking, coerce_id(data["bookingId"], "bookingId"), "Booking").id

    expiry_days = data.get("expiryDays", DEFAULT_EXPIRY_DAYS)
    if isinstance(expiry_days, bool) or not isinstance(expiry_days, int) or not 1 <= expiry_days <= 90:
        raise ValidationError("expiryDays must be between 1 and 90")

    hosted = get_payment_gateway().create_payment_link(
        name=description,
        amount=amount,
        metadata={
            "bookingId": booking_id or "",
            "customerName": name,
            "paymentType": booking_service.METHOD_PAYMENT_LINK,
        },
    )

    link = PaymentLink(
        booking_id=booking_id,
        customer_name=name,
        customer_email=email,
        description=description,
        amount=amount,
        stripe_payment_link_id=hosted.id,
        url=hosted.url,
        status=LINK_ACTIVE,
        expires_at=utcnow() + timedelta(days=expiry_days),
        created_by_user_id=created_by_user_id,
    )
    db.session.add(link)
    db.session.commit()
    current_app.logger.info("Payment link %s created for %s (%s pence)", link.stripe_payment_link_id, email, amount)

    notification_service.send_payment_link(link)
    return link


def complete_payment_link(stripe_link_id: str, reference: str, amount: int | None = None) -> PaymentApplied | None:
    """
    Mark a link paid and, when it belongs to a booking, record the payment.

    Only an active (or lapsed) link can complete, so a retried event does
    nothing. For a booking link the status change commits together with
    the payment, so a failed event can be replayed. Returns the booking
    outcome, or None for standalone links.
    """
    link = db.session.query(PaymentLink).filter_by(stripe_payment_link_id=stripe_link_id).first()
    if link is None:
        current_app.logger.warning("No payment link found for %s", stripe_link_id)
        return None

    if link.booking_id is not None:
        return booking_service.record_payment_link_payment(
            link.booking_id,
            link.amount if amount is None else amount,
            reference,
            stripe_link_id,
            link_row_id=link.id,
        )

    rows = (
        db.session.query(PaymentLink)
        .filter(PaymentLink.id == link.id, PaymentLink.status.in_((LINK_ACTIVE, LINK_EXPIRED)))
        .update({PaymentLink.status: LINK_COMPLETED, PaymentLink.paid_at: utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    if rows != 1:
        current_app.logger.info("Payment link %s already completed", stripe_link_id)
    else:
        current_app.logger.info("Standalone payment link %s completed", stripe_link_id)
    return None


def expire_payment_links(now=None) -> int:
    now = now or utcnow()
    rows = (
        db.session.query(PaymentLink)
        .filter(PaymentLink.status == LINK_ACTIVE, PaymentLink.expires_at.isnot(None), PaymentLink.expires_at < now)
        .update({PaymentLink.status: LINK_EXPIRED}, synchronize_session=False)
    )
    db.session.commit()
    return rows

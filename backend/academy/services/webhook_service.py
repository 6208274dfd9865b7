# Overview: Applies verified payment-provider events to bookings, once per event id.

"""
Payment Webhook Handler

WHY: The provider delivers events at least once, in any order, and
retries on anything but a 2xx. The handler must therefore be idempotent
per event and per payment, and must answer 2xx even when applying the
event fails (the failure is kept for review and replay instead).

FLOW:
1. Route verifies the signature (payment_gateway.verify_event)
2. process_event inserts a WebhookEvent row keyed by the event id and
   commits it before any side effect; a duplicate id stops here
3. The event is dispatched by type; unknown types are "ignored"
4. The row is marked processed / ignored / failed

Failed events keep their payload and can be replayed with replay_event.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Booking, WebhookEvent
from ..validation import ConflictError
from academy.time_utils import utcnow
from . import booking_service, notification_service, payment_link_service, stats_service
from .store import get_document, get_or_404


EVENT_PROCESSING = "processing"
EVENT_PROCESSED = "processed"
EVENT_IGNORED = "ignored"
EVENT_FAILED = "failed"
EVENT_DUPLICATE = "duplicate"

MAX_ERROR_LENGTH = 2000


@dataclass
class WebhookOutcome:
    event_id: str
    status: str
    error: str | None = None

    def to_dict(self) -> dict:
        data = {"eventId": self.event_id, "status": self.status}
        if self.error:
            data["error"] = self.error
        return data


# =============================================================================
# EVENT BOOKKEEPING
# =============================================================================

def _claim_event(event: dict) -> bool:
    """Insert the event row. False when this id was seen before."""
    row = WebhookEvent(
        id=str(event["id"]),
        event_type=str(event.get("type", "")),
        status=EVENT_PROCESSING,
        payload=json.dumps(event),
        attempts=1,
        received_at=utcnow(),
    )
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return False
    return True


def _finish_event(event_id: str, status: str, error: str | None = None) -> None:
    db.session.query(WebhookEvent).filter(WebhookEvent.id == event_id).update(
        {
            WebhookEvent.status: status,
            WebhookEvent.error: error[:MAX_ERROR_LENGTH] if error else None,
            WebhookEvent.processed_at: utcnow(),
        },
        synchronize_session=False,
    )
    db.session.commit()


def _run(event: dict) -> WebhookOutcome:
    event_id = str(event["id"])
    try:
        handled = dispatch_event(event)
    except Exception as exc:
        # Acknowledge anyway; the provider would otherwise retry forever
        db.session.rollback()
        current_app.logger.exception("Webhook %s (%s) failed", event_id, event.get("type"))
        _finish_event(event_id, EVENT_FAILED, f"{type(exc).__name__}: {exc}")
        return WebhookOutcome(event_id, EVENT_FAILED, str(exc))

    status = EVENT_PROCESSED if handled else EVENT_IGNORED
    _finish_event(event_id, status)
    if handled:
        stats_service.invalidate_dashboard_stats()
    return WebhookOutcome(event_id, status)


def process_event(event: dict) -> WebhookOutcome:
    """Apply a verified event at most once. Never raises for handler errors."""
    event_id = str(event["id"])
    if not _claim_event(event):
        current_app.logger.info("Webhook %s already received, skipping", event_id)
        return WebhookOutcome(event_id, EVENT_DUPLICATE)
    return _run(event)


def replay_event(event_id: str) -> WebhookOutcome:
    """Re-run a failed event from its stored payload."""
    row = get_or_404(WebhookEvent, event_id, "Webhook event")
    if row.status != EVENT_FAILED:
        raise ConflictError(f"Only failed events can be replayed (status is '{row.status}')")
    event = json.loads(row.payload)
    row.status = EVENT_PROCESSING
    row.attempts = (row.attempts or 0) + 1
    row.error = None
    db.session.commit()
    current_app.logger.info("Replaying webhook %s (attempt %s)", event_id, row.attempts)
    return _run(event)


def list_events(status: str | None = None, limit: int = 100) -> list[WebhookEvent]:
    q = db.session.query(WebhookEvent)
    if status:
        q = q.filter(WebhookEvent.status == status)
    return q.order_by(WebhookEvent.received_at.desc()).limit(limit).all()


# =============================================================================
# DISPATCH
# =============================================================================

def dispatch_event(event: dict) -> bool:
    """Run the handler for event["type"]. False when the type is not handled."""
    handler = EVENT_HANDLERS.get(event.get("type"))
    if handler is None:
        current_app.logger.info("Unhandled webhook event type: %s", event.get("type"))
        return False
    obj = (event.get("data") or {}).get("object") or {}
    handler(obj)
    return True


def _metadata(obj: dict) -> dict:
    meta = obj.get("metadata")
    return meta if isinstance(meta, dict) else {}


def _booking_id(obj: dict) -> int | None:
    raw = _metadata(obj).get("bookingId")
    if raw in (None, ""):
        current_app.logger.warning("Webhook object %s has no bookingId metadata", obj.get("id"))
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        current_app.logger.warning("Webhook object %s has a malformed bookingId %r", obj.get("id"), raw)
        return None


def _int_or_none(value) -> int | None:
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _date_or_none(value):
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _on_checkout_completed(obj: dict) -> None:
    if obj.get("payment_link"):
        _on_payment_link_completed(obj)
        return

    booking_id = _booking_id(obj)
    if booking_id is None:
        return

    meta = _metadata(obj)
    payment_type = meta.get("paymentType") or booking_service.PAYMENT_TYPE_FULL
    if payment_type not in booking_service.PAYMENT_TYPES:
        payment_type = booking_service.PAYMENT_TYPE_FULL
    intent_id = obj.get("payment_intent")
    amount = _int_or_none(obj.get("amount_total"))
    if payment_type == booking_service.PAYMENT_TYPE_DEPOSIT and amount is None:
        amount = _int_or_none(meta.get("depositAmount"))

    outcome = booking_service.mark_paid(
        booking_id,
        intent_id or obj.get("id"),
        amount=amount,
        payment_type=payment_type,
        checkout_session_id=obj.get("id") if payment_type != booking_service.PAYMENT_TYPE_BALANCE else None,
        payment_intent_id=intent_id if payment_type != booking_service.PAYMENT_TYPE_BALANCE else None,
        balance_due_date=_date_or_none(meta.get("balanceDueDate")),
    )
    if not outcome.applied:
        current_app.logger.info("Checkout %s for booking %s already applied", obj.get("id"), booking_id)
        return

    if payment_type == booking_service.PAYMENT_TYPE_DEPOSIT:
        notification_service.send_deposit_confirmation(outcome.booking)
    elif payment_type == booking_service.PAYMENT_TYPE_BALANCE:
        notification_service.send_balance_paid_confirmation(outcome.booking)
    else:
        notification_service.send_booking_confirmation(outcome.booking)


def _on_payment_link_completed(obj: dict) -> None:
    outcome = payment_link_service.complete_payment_link(
        obj["payment_link"],
        obj.get("payment_intent") or obj.get("id"),
        _int_or_none(obj.get("amount_total")),
    )
    if outcome is not None and outcome.newly_confirmed:
        notification_service.send_booking_confirmation(outcome.booking)


def _on_payment_succeeded(obj: dict) -> None:
    booking_id = _booking_id(obj)
    if booking_id is None:
        return
    payment_type = _metadata(obj).get("paymentType") or booking_service.PAYMENT_TYPE_FULL
    if payment_type not in (booking_service.PAYMENT_TYPE_FULL, booking_service.PAYMENT_TYPE_DEPOSIT):
        # Balance and payment-link amounts are applied by checkout.session.completed
        current_app.logger.info("Intent %s (%s) left to checkout completion", obj.get("id"), payment_type)
        return
    booking_service.mark_payment_succeeded(booking_id, obj.get("id"), payment_type)


def _on_payment_failed(obj: dict) -> None:
    booking_id = _booking_id(obj)
    if booking_id is None:
        return
    error = obj.get("last_payment_error") or {}
    reason = error.get("message") if isinstance(error, dict) else None
    if booking_service.mark_failed(booking_id, reason or "Payment declined"):
        booking = get_document(Booking, booking_id)
        if booking is not None:
            notification_service.send_payment_failed(booking)


def _on_charge_refunded(obj: dict) -> None:
    intent_id = obj.get("payment_intent")
    if not intent_id:
        current_app.logger.warning("Refunded charge %s has no payment intent", obj.get("id"))
        return
    refunded = _int_or_none(obj.get("amount_refunded")) or 0
    charged = _int_or_none(obj.get("amount")) or 0
    booking = booking_service.record_refund(intent_id, refunded, charged)
    if booking is not None:
        notification_service.send_refund_confirmation(booking, refunded, charged)

def _on_checkout_expired(obj: dict) -> None:
    booking_id = _booking_id(obj)
    if booking_id is None:
        return
    if booking_service.mark_expired(booking_id):
        booking = get_document(Booking, booking_id)
        if booking is not None:
            notification_service.send_checkout_abandoned(booking)


EVENT_HANDLERS = {
    "checkout.session.completed": _on_checkout_completed,
    "payment_intent.succeeded": _on_payment_succeeded,
    "payment_intent.payment_failed": _on_payment_failed,
    "charge.refunded": _on_charge_refunded,
    "checkout.session.expired": _on_checkout_expired,
}

# Overview: Shared seat and session counters: session enrolment and block-booking credits.

"""
Capacity Ledger

WHY: sessions.enrolled and block_bookings.remaining_sessions are read and
written by concurrent requests (webhooks, admins, parents). A
read-modify-write would lose updates, so every change is a server-side
`column = column + delta`, and decrements carry a guard in the WHERE
clause so a counter can never go negative.

DESIGN PRINCIPLES:
- Enrolment for a booking is applied at most once, recorded on
  bookings.enrollment_applied_at by a conditional update
- No capacity check at payment time: money already taken wins over the
  counter (checkout is where full sessions are refused)
- A block-booking deduction is one usage row per (date, slot); the
  unique constraint backs the duplicate check under concurrency
- Usage and refund rows are append-only
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import BlockBooking, BlockBookingRefund, BlockBookingUsage, Booking, TrainingSession
from ..validation import ConflictError, ValidationError
from academy.time_utils import utcnow
from .concurrency import atomic_add, run_with_retry
from .status_rules import (
    BLOCK_ACTIVE,
    BLOCK_CANCELLED,
    BLOCK_REFUNDED,
    derive_block_booking_status,
)
from .store import get_for_update


DUPLICATE_DEDUCTION_MESSAGE = "Session already deducted for this date"


@dataclass
class DeductResult:
    remaining_sessions: int
    status: str
    usage: BlockBookingUsage


@dataclass
class RefundResult:
    sessions_refunded: int
    amount_refunded: int
    remaining_sessions: int
    status: str
    requires_provider_refund: bool
    refund: BlockBookingRefund


# =============================================================================
# SESSION ENROLMENT
# =============================================================================

def increment_enrollment(session_id: int, by: int = 1) -> bool:
    """enrolled += by. Returns False when the session does not exist."""
    rows = atomic_add(
        TrainingSession, session_id, TrainingSession.enrolled, by,
        extra_values={TrainingSession.updated_at: utcnow()},
    )
    return rows == 1


def decrement_enrollment(session_id: int, by: int = 1) -> bool:
    """enrolled -= by, only while enrolled >= by (floor at zero)."""
    rows = atomic_add(
        TrainingSession, session_id, TrainingSession.enrolled, -by,
        where=[TrainingSession.enrolled >= by],
        extra_values={TrainingSession.updated_at: utcnow()},
    )
    return rows == 1


def _booking_session_ids(booking: Booking) -> list[int]:
    ids = []
    for raw in booking.session_ids or []:
        try:
            ids.append(int(raw))
        except (TypeError, ValueError):
            current_app.logger.warning("Booking %s has a malformed session id %r", booking.booking_ref, raw)
    return ids


def apply_booking_enrollment(booking: Booking) -> bool:
    """
    Count the booking's seats into every session it covers.

    Claims bookings.enrollment_applied_at first; if another path already
    claimed it nothing happens and False is returned. No commit.
    """
    claimed = (
        db.session.query(Booking)
        .filter(Booking.id == booking.id, Booking.enrollment_applied_at.is_(None))
        .update({Booking.enrollment_applied_at: utcnow()}, synchronize_session=False)
    )
    if not claimed:
        return False

    for session_id in _booking_session_ids(booking):
        if not increment_enrollment(session_id):
            current_app.logger.warning(
                "Booking %s references missing session %s; enrolment not counted",
                booking.booking_ref, session_id,
            )
    return True


def release_booking_enrollment(booking: Booking) -> bool:
    """Reverse of apply_booking_enrollment. No commit."""
    released = (
        db.session.query(Booking)
        .filter(Booking.id == booking.id, Booking.enrollment_applied_at.isnot(None))
        .update({Booking.enrollment_applied_at: None}, synchronize_session=False)
    )
    if not released:
        return False

    for session_id in _booking_session_ids(booking):
        if not decrement_enrollment(session_id):
            current_app.logger.warning(
                "Enrolment for session %s already at zero while releasing booking %s",
                session_id, booking.booking_ref,
            )
    return True


# =============================================================================
# BLOCK BOOKING CREDITS
# =============================================================================

def deduct_block_session(
    block_booking_id: int,
    session_date: date,
    *,
    timetable_slot_id: str | None = None,
    coach_id: str | None = None,
    coach_name: str | None = None,
    notes: str | None = None,
    deducted_by_user_id: int | None = None,
) -> DeductResult:
    """
    Consume one session credit for an attended session.

    A deduction without a slot conflicts with any usage on that date; a
    deduction with a slot only conflicts with the same date and slot.

    Raises:
        NotFoundError: unknown block booking
        ValidationError: not active, or nothing left
        ConflictError: already deducted for this date/slot
    """
    slot = (timetable_slot_id or "").strip()

    def _op():
        block = get_for_update(BlockBooking, block_booking_id, "Block booking")

        if block.status != BLOCK_ACTIVE:
            raise ValidationError(f"Cannot deduct from a block booking with status '{block.status}'")
        if block.remaining_sessions <= 0:
            raise ValidationError("No remaining sessions to deduct")

        duplicate = db.session.query(BlockBookingUsage).filter_by(
            block_booking_id=block.id, session_date=session_date,
        )
        if slot:
            duplicate = duplicate.filter_by(timetable_slot_id=slot)
        if duplicate.first() is not None:
            raise ConflictError(DUPLICATE_DEDUCTION_MESSAGE)

        remaining_before = block.remaining_sessions
        rows = atomic_add(
            BlockBooking, block.id, BlockBooking.remaining_sessions, -1,
            where=[BlockBooking.status == BLOCK_ACTIVE, BlockBooking.remaining_sessions > 0],
            extra_values={BlockBooking.updated_at: utcnow()},
        )
        if rows != 1:
            db.session.rollback()
            raise ValidationError("No remaining sessions to deduct")

        usage = BlockBookingUsage(
            block_booking_id=block.id,
            session_date=session_date,
            timetable_slot_id=slot,
            coach_id=coach_id,
            coach_name=coach_name,
            notes=notes,
            deducted_by_user_id=deducted_by_user_id,
            used_at=utcnow(),
        )
        db.session.add(usage)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(DUPLICATE_DEDUCTION_MESSAGE)

        remaining = remaining_before - 1
        new_status = derive_block_booking_status(remaining, block.expires_at, block.status)
        if new_status != block.status:
            db.session.query(BlockBooking).filter(BlockBooking.id == block.id).update(
                {BlockBooking.status: new_status}, synchronize_session=False,
            )

        db.session.commit()
        current_app.logger.info(
            "Deducted session %s from block booking %s (%s left, %s)",
            session_date.isoformat(), block.id, remaining, new_status,
        )
        return DeductResult(remaining_sessions=remaining, status=new_status, usage=usage)

    return run_with_retry(_op)


def refund_block_sessions(
    block_booking_id: int,
    *,
    sessions_to_refund: int | None = None,
    refund_amount: int | None = None,
    reason: str | None = None,
    refunded_by_user_id: int | None = None,
) -> RefundResult:
    """
    Return unused session credits.

    sessions_to_refund defaults to all remaining; refund_amount defaults
    to sessions * price_per_session and may not exceed the value of the
    remaining sessions. The status only becomes "refunded" once nothing
    is left. Card-paid bundles are flagged for a manual provider refund.
    """
    def _op():
        block = get_for_update(BlockBooking, block_booking_id, "Block booking")

        if block.status == BLOCK_REFUNDED:
            raise ConflictError("Block booking has already been refunded")
        if block.status == BLOCK_CANCELLED:
            raise ConflictError("Cannot refund a cancelled block booking")

        remaining = block.remaining_sessions
        count = remaining if sessions_to_refund is None else sessions_to_refund
        if count <= 0:
            raise ValidationError("No sessions available to refund")
        if count > remaining:
            raise ValidationError(f"Cannot refund {count} sessions. Only {remaining} remaining.")

        amount = count * block.price_per_session if refund_amount is None else refund_amount
        if amount < 0:
            raise ValidationError("Refund amount cannot be negative")
        max_refundable = remaining * block.price_per_session
        if amount > max_refundable:
            raise ValidationError(f"Refund amount exceeds the remaining value of {max_refundable} pence")

        remaining_after = remaining - count
        new_status = BLOCK_REFUNDED if remaining_after == 0 else block.status

        rows = atomic_add(
            BlockBooking, block.id, BlockBooking.remaining_sessions, -count,
            where=[BlockBooking.remaining_sessions >= count],
            extra_values={BlockBooking.status: new_status, BlockBooking.updated_at: utcnow()},
        )
        if rows != 1:
            db.session.rollback()
            raise ConflictError("Block booking changed while refunding, please retry")

        refund = BlockBookingRefund(
            block_booking_id=block.id,
            sessions_refunded=count,
            amount_refunded=amount,
            reason=reason,
            requires_provider_refund=bool(block.stripe_payment_intent_id),
            refunded_by_user_id=refunded_by_user_id,
            refunded_at=utcnow(),
        )
        db.session.add(refund)
        db.session.commit()

        current_app.logger.info(
            "Refunded %s sessions (%s pence) from block booking %s",
            count, amount, block.id,
        )
        return RefundResult(
            sessions_refunded=count,
            amount_refunded=amount,
            remaining_sessions=remaining_after,
            status=new_status,
            requires_provider_refund=refund.requires_provider_refund,
            refund=refund,
        )

    return run_with_retry(_op)

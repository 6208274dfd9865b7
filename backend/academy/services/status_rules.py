"""
Status derivation for bookings and block bookings.

Pure functions: no database access. Services read the current numbers,
derive the new status here, and write it with a conditional update.
"""

from __future__ import annotations

from datetime import datetime

from academy.time_utils import utcnow


# =============================================================================
# BOOKING PAYMENT STATUS
# =============================================================================

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_PARTIAL = "partial"
PAYMENT_FAILED = "failed"
PAYMENT_EXPIRED = "expired"
PAYMENT_REFUNDED = "refunded"
PAYMENT_PARTIALLY_REFUNDED = "partially_refunded"

PAYMENT_STATUSES = (
    PAYMENT_PENDING,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_FAILED,
    PAYMENT_EXPIRED,
    PAYMENT_REFUNDED,
    PAYMENT_PARTIALLY_REFUNDED,
)

# A booking holding money (and therefore seats)
PAYMENT_CONFIRMED_STATUSES = (PAYMENT_PAID, PAYMENT_PARTIAL)

# Statuses a success/failure event may still move
PAYMENT_OPEN_STATUSES = (PAYMENT_PENDING, PAYMENT_FAILED)

PAYMENT_REFUNDABLE_STATUSES = (PAYMENT_PAID, PAYMENT_PARTIAL, PAYMENT_PARTIALLY_REFUNDED)

_PAYMENT_TRANSITIONS = {
    PAYMENT_PENDING: {PAYMENT_PAID, PAYMENT_PARTIAL, PAYMENT_FAILED, PAYMENT_EXPIRED},
    PAYMENT_FAILED: {PAYMENT_PAID, PAYMENT_PARTIAL, PAYMENT_EXPIRED},
    # Money can still arrive for an abandoned checkout (payment link, cash)
    PAYMENT_EXPIRED: {PAYMENT_PAID, PAYMENT_PARTIAL},
    PAYMENT_PARTIAL: {PAYMENT_PAID, PAYMENT_REFUNDED, PAYMENT_PARTIALLY_REFUNDED},
    PAYMENT_PAID: {PAYMENT_REFUNDED, PAYMENT_PARTIALLY_REFUNDED},
    PAYMENT_PARTIALLY_REFUNDED: {PAYMENT_REFUNDED},
    PAYMENT_REFUNDED: set(),
}

BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"
BOOKING_WAITLIST = "waitlist"


def derive_payment_status(total_paid: int, amount: int) -> str:
    """
    Status implied by money received so far.

    total_paid >= amount -> paid (this includes fully-discounted bookings)
    0 < total_paid < amount -> partial
    otherwise -> pending
    """
    if total_paid >= amount:
        return PAYMENT_PAID
    if total_paid > 0:
        return PAYMENT_PARTIAL
    return PAYMENT_PENDING


def can_transition(current: str | None, new: str) -> bool:
    """Staying put is always allowed (idempotent re-derivation)."""
    current = current or PAYMENT_PENDING
    if current == new:
        return True
    return new in _PAYMENT_TRANSITIONS.get(current, set())


def refund_status(refunded_amount: int, charged_amount: int) -> str:
    if charged_amount and refunded_amount < charged_amount:
        return PAYMENT_PARTIALLY_REFUNDED
    return PAYMENT_REFUNDED


# =============================================================================
# BLOCK BOOKING STATUS
# =============================================================================

BLOCK_ACTIVE = "active"
BLOCK_COMPLETED = "completed"
BLOCK_EXPIRED = "expired"
BLOCK_REFUNDED = "refunded"
BLOCK_CANCELLED = "cancelled"

BLOCK_STATUSES = (BLOCK_ACTIVE, BLOCK_COMPLETED, BLOCK_EXPIRED, BLOCK_REFUNDED, BLOCK_CANCELLED)

# Set by an admin action, never re-derived
BLOCK_STICKY_STATUSES = (BLOCK_REFUNDED, BLOCK_CANCELLED)


def derive_block_booking_status(
    remaining_sessions: int,
    expires_at: datetime | None,
    current_status: str,
    now: datetime | None = None,
) -> str:
    if current_status in BLOCK_STICKY_STATUSES:
        return current_status
    if remaining_sessions <= 0:
        return BLOCK_COMPLETED
    now = now or utcnow()
    if expires_at is not None and expires_at < now:
        return BLOCK_EXPIRED
    return BLOCK_ACTIVE

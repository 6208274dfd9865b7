# Overview: Pre-paid session bundles: creation, listing and detail. Credit changes live in capacity_ledger.

from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from ..models import BlockBooking
from ..validation import (
    ValidationError,
    clean_str,
    parse_email,
    parse_optional_datetime,
    parse_pence,
    parse_positive_int,
    require_fields,
)
from academy.time_utils import utcnow
from .status_rules import BLOCK_STATUSES, derive_block_booking_status
from .store import get_or_404


EXPIRING_SOON_DAYS = 30
SORT_FIELDS = ("purchasedAt", "remainingSessions", "studentName")
MAX_LIST_LIMIT = 500


def is_expiring_soon(expires_at: datetime | None, now: datetime | None = None,
                     days: int = EXPIRING_SOON_DAYS) -> bool:
    if expires_at is None:
        return False
    now = now or utcnow()
    return now <= expires_at <= now + timedelta(days=days)


def summary(block: BlockBooking, now: datetime | None = None) -> dict:
    data = block.to_dict()
    last_usage = block.usages[-1] if block.usages else None
    data["lastUsedAt"] = last_usage.to_dict()["usedAt"] if last_usage else None
    data["isExpiringSoon"] = is_expiring_soon(block.expires_at, now)
    return data


def detail(block: BlockBooking, now: datetime | None = None) -> dict:
    now = now or utcnow()
    data = block.to_dict(include_history=True)
    data["isExpiringSoon"] = is_expiring_soon(block.expires_at, now)
    data["daysUntilExpiry"] = (block.expires_at - now).days if block.expires_at else None
    return data


def create_block_booking(data: dict, created_by_user_id: int | None = None) -> BlockBooking:
    """
    price_per_session defaults to total_paid / total_sessions rounded
    half-up. remaining_sessions starts at total_sessions.
    """
    data = require_fields(data, ("studentName", "parentName", "parentEmail", "totalSessions", "totalPaid"))
    total_sessions = parse_positive_int(data["totalSessions"], "totalSessions")
    total_paid = parse_pence(data["totalPaid"], "totalPaid")

    if data.get("pricePerSession") not in (None, "", 0):
        price_per_session = parse_pence(data["pricePerSession"], "pricePerSession")
    else:
        price_per_session = (total_paid * 2 + total_sessions) // (2 * total_sessions)

    purchased_at = parse_optional_datetime(data.get("purchasedAt"), "purchasedAt") or utcnow()
    expires_at = parse_optional_datetime(data.get("expiresAt"), "expiresAt")
    if expires_at is not None and expires_at <= purchased_at:
        raise ValidationError("expiresAt must be after purchasedAt")

    block = BlockBooking(
        student_name=clean_str(data["studentName"]),
        parent_name=clean_str(data["parentName"]),
        parent_email=parse_email(data["parentEmail"], "parentEmail"),
        parent_phone=clean_str(data.get("parentPhone"), 32),
        total_sessions=total_sessions,
        remaining_sessions=total_sessions,
        total_paid=total_paid,
        price_per_session=price_per_session,
        payment_method=clean_str(data.get("paymentMethod"), 32),
        stripe_payment_intent_id=clean_str(data.get("stripePaymentIntentId")),
        status="active",
        purchased_at=purchased_at,
        expires_at=expires_at,
        notes=clean_str(data.get("notes"), 4000),
        created_by_user_id=created_by_user_id,
    )
    db.session.add(block)
    db.session.commit()
    return block


def refresh_status(block: BlockBooking, now: datetime | None = None) -> bool:
    """Persist the derived status (e.g. lapsed expiry). True when it changed."""
    derived = derive_block_booking_status(block.remaining_sessions, block.expires_at, block.status, now)
    if derived == block.status:
        return False
    block.status = derived
    return True


def list_block_bookings(
    *,
    status: str | None = None,
    student_name: str | None = None,
    parent_email: str | None = None,
    has_remaining: bool | None = None,
    sort_by: str = "purchasedAt",
    sort_order: str = "desc",
    limit: int = 100,
    offset: int = 0,
) -> dict:
    if status and status not in BLOCK_STATUSES:
        raise ValidationError(f"Invalid status: {status}")
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"sortBy must be one of {list(SORT_FIELDS)}")
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    now = utcnow()
    blocks = db.session.query(BlockBooking).order_by(BlockBooking.created_at.desc()).all()
    changed = False
    for block in blocks:
        changed = refresh_status(block, now) or changed
    if changed:
        db.session.commit()

    if status:
        blocks = [b for b in blocks if b.status == status]
    if student_name:
        term = student_name.strip().lower()
        blocks = [b for b in blocks if term in b.student_name.lower()]
    if parent_email:
        blocks = [b for b in blocks if b.parent_email == parent_email.strip().lower()]
    if has_remaining is True:
        blocks = [b for b in blocks if b.remaining_sessions > 0]
    elif has_remaining is False:
        blocks = [b for b in blocks if b.remaining_sessions == 0]

    keys = {
        "purchasedAt": lambda b: b.purchased_at,
        "remainingSessions": lambda b: b.remaining_sessions,
        "studentName": lambda b: b.student_name.lower(),
    }
    blocks.sort(key=keys[sort_by], reverse=(sort_order == "desc"))

    total = len(blocks)
    page = blocks[offset:offset + limit]
    return {
        "blockBookings": [summary(b, now) for b in page],
        "total": total,
        "hasMore": offset + limit < total,
    }


def get_block_booking(block_booking_id: int) -> BlockBooking:
    block = get_or_404(BlockBooking, block_booking_id, "Block booking")
    if refresh_status(block):
        db.session.commit()
    return block

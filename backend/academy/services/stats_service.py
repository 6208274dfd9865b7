# Overview: Admin dashboard figures, memoized per app for a short TTL.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import BlockBooking, Booking, Payment, TrainingSession
from academy.time_utils import utcnow
from .status_rules import BLOCK_ACTIVE, PAYMENT_CONFIRMED_STATUSES, PAYMENT_PAID

CACHE_KEY = "dashboard_stats_cache"
RECENT_BOOKINGS = 5


def _compute() -> dict:
    now = utcnow()
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    bookings_this_month = (
        db.session.query(func.count(Booking.id))
        .filter(Booking.payment_status.in_(PAYMENT_CONFIRMED_STATUSES), Booking.created_at >= start_of_month)
        .scalar()
    )
    revenue_this_month = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(Payment.status == PAYMENT_PAID, Payment.received_at >= start_of_month)
        .scalar()
    )
    by_status = dict(
        db.session.query(Booking.payment_status, func.count(Booking.id))
        .group_by(Booking.payment_status)
        .all()
    )

    today = now.date()
    sessions = db.session.query(TrainingSession).filter(TrainingSession.is_active.is_(True)).all()
    upcoming = [s for s in sessions if s.end_date is None or s.end_date >= today]

    active_blocks, block_credits = (
        db.session.query(func.count(BlockBooking.id), func.coalesce(func.sum(BlockBooking.remaining_sessions), 0))
        .filter(BlockBooking.status == BLOCK_ACTIVE)
        .one()
    )

    recent = (
        db.session.query(Booking)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .limit(RECENT_BOOKINGS)
        .all()
    )

    return {
        "totalBookings": int(bookings_this_month or 0),
        "totalRevenue": int(revenue_this_month or 0),
        "bookingsByPaymentStatus": {k: int(v) for k, v in by_status.items()},
        "upcomingSessions": len(upcoming),
        "sessionFill": [
            {
                "sessionId": s.id,
                "name": s.name,
                "capacity": s.capacity,
                "enrolled": s.enrolled,
                "spotsLeft": s.spots_left,
            }
            for s in upcoming
        ],
        "activeBlockBookings": int(active_blocks or 0),
        "blockSessionsOutstanding": int(block_credits or 0),
        "recentBookings": [
            {
                "id": b.id,
                "bookingRef": b.booking_ref,
                "childFirstName": b.child_first_name,
                "childLastName": b.child_last_name,
                "parentEmail": b.parent_email,
                "paymentStatus": b.payment_status,
                "amount": b.amount,
                "createdAt": b.to_dict()["createdAt"],
            }
            for b in recent
        ],
        "generatedAt": now.isoformat() + "Z",
    }


def get_dashboard_stats(force_refresh: bool = False) -> dict:
    ttl = current_app.config.get("DASHBOARD_STATS_TTL_SECONDS", 300)
    cached = current_app.extensions.get(CACHE_KEY)
    if cached and not force_refresh and cached[0] > time.monotonic():
        return cached[1]

    stats = _compute()
    current_app.extensions[CACHE_KEY] = (time.monotonic() + ttl, stats)
    return stats


def invalidate_dashboard_stats() -> None:
    current_app.extensions.pop(CACHE_KEY, None)

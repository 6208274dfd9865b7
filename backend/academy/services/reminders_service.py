# Overview: Scheduled parent reminders (balance due, session tomorrow), run from the CLI.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from flask import current_app

from ..extensions import db
from ..models import Booking, TrainingSession
from academy.time_utils import utcnow
from . import notification_service
from .status_rules import BOOKING_CONFIRMED, PAYMENT_CONFIRMED_STATUSES, PAYMENT_PARTIAL

# Days before the balance due date on which a reminder goes out
BALANCE_REMINDER_DAYS = (7, 3, 1, 0)


@dataclass
class ReminderRun:
    processed: int = 0
    sent: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"processed": self.processed, "emailsSent": self.sent, "errors": list(self.errors)}


def send_balance_reminders(today: date | None = None) -> ReminderRun:
    today = today or utcnow().date()
    run = ReminderRun()
    bookings = (
        db.session.query(Booking)
        .filter(Booking.payment_status == PAYMENT_PARTIAL, Booking.balance_due_date.isnot(None))
        .all()
    )
    for booking in bookings:
        if booking.status != BOOKING_CONFIRMED or booking.balance_due <= 0:
            continue
        days_until_due = (booking.balance_due_date - today).days
        if days_until_due not in BALANCE_REMINDER_DAYS:
            continue
        run.processed += 1
        result = notification_service.send_balance_reminder(booking, days_until_due)
        if result.success:
            run.sent += 1
        else:
            run.errors.append(f"{booking.booking_ref}: {result.error}")
    current_app.logger.info("Balance reminders: %s processed, %s sent", run.processed, run.sent)
    return run


def _runs_on(session: TrainingSession, day: date) -> bool:
    if session.start_date and day < session.start_date:
        return False
    if session.end_date and day > session.end_date:
        return False
    # Sessions store 0-6 as Sunday-Saturday
    weekday = (day.weekday() + 1) % 7
    days = session.days_of_week or ([session.day_of_week] if session.day_of_week is not None else [])
    return weekday in days


def send_session_reminders(today: date | None = None) -> ReminderRun:
    """Email every confirmed booking with a session running tomorrow."""
    tomorrow = (today or utcnow().date()) + timedelta(days=1)
    run = ReminderRun()

    sessions = {
        s.id: s
        for s in db.session.query(TrainingSession).filter(TrainingSession.is_active.is_(True)).all()
        if _runs_on(s, tomorrow)
    }
    if not sessions:
        return run

    bookings = (
        db.session.query(Booking)
        .filter(Booking.status == BOOKING_CONFIRMED, Booking.payment_status.in_(PAYMENT_CONFIRMED_STATUSES))
        .all()
    )
    for booking in bookings:
        for raw in booking.session_ids or []:
            session = sessions.get(int(raw))
            if session is None:
                continue
            run.processed += 1
            result = notification_service.send_session_reminder(booking, session, tomorrow)
            if result.success:
                run.sent += 1
            else:
                run.errors.append(f"{booking.booking_ref}: {result.error}")
    current_app.logger.info("Session reminders for %s: %s processed, %s sent", tomorrow, run.processed, run.sent)
    return run

# Overview: Sends parent-facing emails through Resend. Never raises into the caller.

"""
Notification Dispatcher

WHY: Emails follow state changes that are already committed (a payment,
a refund, an expired checkout). A mail outage must not undo or fail
those, so every send_* function reports a SendResult and logs instead of
raising.

Without RESEND_API_KEY the mailer runs in dev mode: the message is
logged and reported as sent with id "dev-mode".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

import resend
from flask import current_app

from .. import email_templates as templates
from ..email_templates import Brand, SessionLine
from ..models import Booking, PaymentLink, Program, TrainingSession
from .store import get_many


@dataclass
class SendResult:
    success: bool
    id: str | None = None
    error: str | None = None


class Mailer:
    def __init__(self, api_key: str, from_address: str):
        self.api_key = api_key
        self.from_address = from_address

    @property
    def dev_mode(self) -> bool:
        return not self.api_key

    def send(self, to: str, subject: str, html: str, cc: list[str] | None = None) -> SendResult:
        if self.dev_mode:
            current_app.logger.info("Email (dev mode, not sent) to=%s subject=%s", to, subject)
            return SendResult(success=True, id="dev-mode")

        params = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if cc:
            params["cc"] = cc
        try:
            resend.api_key = self.api_key
            response = resend.Emails.send(params)
        except Exception as exc:
            # resend raises its own errors as well as transport errors
            current_app.logger.warning("Email to %s failed: %s", to, exc)
            return SendResult(success=False, error=str(exc))

        email_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        current_app.logger.info("Email sent to %s (%s): %s", to, email_id, subject)
        return SendResult(success=True, id=email_id)


def init_mailer(app) -> Mailer:
    mailer = Mailer(app.config.get("RESEND_API_KEY", ""), app.config.get("EMAIL_FROM", ""))
    app.extensions["mailer"] = mailer
    return mailer


def get_mailer() -> Mailer:
    return current_app.extensions["mailer"]


def _brand() -> Brand:
    cfg = current_app.config
    return Brand(
        name=cfg.get("ACADEMY_NAME", ""),
        short_name=cfg.get("ACADEMY_SHORT_NAME", ""),
        email=cfg.get("ACADEMY_EMAIL", ""),
        phone=cfg.get("ACADEMY_PHONE", ""),
    )


def _public_url(path: str) -> str:
    return f"{current_app.config.get('PUBLIC_BASE_URL', '').rstrip('/')}{path}"


def session_lines(booking: Booking) -> list[SessionLine]:
    ids = []
    for raw in booking.session_ids or []:
        try:
            ids.append(int(raw))
        except (TypeError, ValueError):
            continue
    sessions = get_many(TrainingSession, ids)
    program_ids = {s.program_id for s in sessions.values() if s.program_id}
    programs = get_many(Program, program_ids)

    lines = []
    for session_id in ids:
        s = sessions.get(session_id)
        if s is None:
            continue
        program = programs.get(s.program_id)
        lines.append(SessionLine(
            name=s.name,
            day=templates.day_name(s.day_of_week),
            start_time=s.start_time or "",
            end_time=s.end_time or "",
            location=(program.location if program else "") or "",
        ))
    return lines


def _dispatch(kind: str, to: str, build) -> SendResult:
    """Build and send; any failure is logged and returned, never raised."""
    try:
        content = build()
        result = get_mailer().send(to, content.subject, content.html)
    except Exception as exc:
        current_app.logger.exception("Failed to send %s email to %s", kind, to)
        return SendResult(success=False, error=str(exc))
    if not result.success:
        current_app.logger.warning("%s email to %s not delivered: %s", kind, to, result.error)
    return result


# =============================================================================
# BOOKING LIFECYCLE
# =============================================================================

def send_booking_confirmation(booking: Booking, total_paid: int | None = None) -> SendResult:
    return _dispatch("booking confirmation", booking.parent_email, lambda: templates.booking_confirmation(
        _brand(),
        parent_first_name=booking.parent_first_name,
        child_first_name=booking.child_first_name,
        booking_ref=booking.booking_ref,
        sessions=session_lines(booking),
        total_paid=booking.amount if total_paid is None else total_paid,
    ))


def send_deposit_confirmation(booking: Booking) -> SendResult:
    return _dispatch("deposit confirmation", booking.parent_email, lambda: templates.deposit_confirmation(
        _brand(),
        parent_first_name=booking.parent_first_name,
        child_first_name=booking.child_first_name,
        booking_ref=booking.booking_ref,
        sessions=session_lines(booking),
        deposit=booking.deposit_paid,
        balance_due=booking.balance_due,
        balance_due_date=booking.balance_due_date,
        pay_balance_url=_public_url(f"/portal/bookings/{booking.id}"),
    ))


def send_balance_paid_confirmation(booking: Booking) -> SendResult:
    return _dispatch("balance paid", booking.parent_email, lambda: templates.balance_paid_confirmation(
        _brand(),
        parent_first_name=booking.parent_first_name,
        child_first_name=booking.child_first_name,
        booking_ref=booking.booking_ref,
        sessions=session_lines(booking),
        total_paid=booking.amount,
    ))


def send_payment_failed(booking: Booking) -> SendResult:
    return _dispatch("payment failed", booking.parent_email, lambda: templates.payment_failed(
        _brand(),
        parent_first_name=booking.parent_first_name,
        child_first_name=booking.child_first_name,
        booking_ref=booking.booking_ref,
        sessions=session_lines(booking),
        amount=booking.amount,
        retry_url=_public_url("/book"),
        failure_reason=booking.failure_reason,
    ))


def send_refund_confirmation(booking: Booking, refund_amount: int, original_amount: int) -> SendResult:
    return _dispatch("refund", booking.parent_email, lambda: templates.refund_confirmation(
        _brand(),
        parent_first_name=booking.parent_first_name,
        child_first_name=booking.child_first_name,
        booking_ref=booking.booking_ref,
        refund_amount=refund_amount,
        original_amount=original_amount,
        is_partial=refund_amount < original_amount,
    ))


def send_checkout_abandoned(booking: Booking) -> SendResult:
    return _dispatch("abandoned checkout", booking.parent_email, lambda: templates.checkout_abandoned(
        _brand(),
        parent_first_name=booking.parent_first_name,
        child_first_name=booking.child_first_name,
        sessions=session_lines(booking),
        amount=booking.amount,
        checkout_url=_public_url("/book"),
    ))


def send_cancellation_confirmation(booking: Booking) -> SendResult:
    return _dispatch("cancellation", booking.parent_email, lambda: templates.cancellation_confirmation(
        _brand(),
        parent_first_name=booking.parent_first_name,
        child_first_name=booking.child_first_name,
        booking_ref=booking.booking_ref,
        sessions=session_lines(booking),
    ))


# =============================================================================
# ADMIN-INITIATED
# =============================================================================

def send_payment_link(link: PaymentLink) -> SendResult:
    return _dispatch("payment link", link.customer_email, lambda: templates.payment_link(
        _brand(),
        customer_name=link.customer_name,
        amount=link.amount,
        description=link.description,
        url=link.url,
        expires_on=link.expires_at.date() if link.expires_at else None,
    ))


def send_manual_payment_received(booking: Booking, amount: int, method: str) -> SendResult:
    return _dispatch("manual payment", booking.parent_email, lambda: templates.manual_payment_received(
        _brand(),
        customer_name=booking.parent_first_name,
        child_first_name=booking.child_first_name,
        booking_ref=booking.booking_ref,
        amount=amount,
        method=method,
        fully_paid=booking.payment_status == "paid",
    ))


# =============================================================================
# REMINDERS
# =============================================================================

def send_balance_reminder(booking: Booking, days_until_due: int) -> SendResult:
    return _dispatch("balance reminder", booking.parent_email, lambda: templates.balance_reminder(
        _brand(),
        parent_first_name=booking.parent_first_name,
        child_first_name=booking.child_first_name,
        booking_ref=booking.booking_ref,
        sessions=session_lines(booking),
        balance_due=booking.balance_due,
        balance_due_date=booking.balance_due_date,
        days_until_due=days_until_due,
        pay_balance_url=_public_url(f"/portal/bookings/{booking.id}"),
    ))


def send_session_reminder(booking: Booking, session: TrainingSession, session_date: date) -> SendResult:
    def build():
        program = session.program
        line = SessionLine(
            name=session.name,
            day=templates.day_name(session.day_of_week),
            start_time=session.start_time or "",
            end_time=session.end_time or "",
            location=(program.location if program else "") or "",
        )
        return templates.session_reminder(
            _brand(),
            parent_first_name=booking.parent_first_name,
            child_first_name=booking.child_first_name,
            session=line,
            session_date=session_date,
        )

    return _dispatch("session reminder", booking.parent_email, build)

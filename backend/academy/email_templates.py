# Overview: Parent-facing email bodies. Pure functions returning (subject, html).

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import NamedTuple

from markupsafe import escape

from academy.time_utils import format_long_date


DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

BASE_STYLES = """
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #1a1a1a; }
  .container { max-width: 600px; margin: 0 auto; padding: 20px; }
  .header { background: #000; color: #fff; padding: 30px; text-align: center; }
  .header h1 { margin: 0; font-size: 24px; text-transform: uppercase; letter-spacing: 2px; }
  .content { padding: 30px; background: #fff; }
  .footer { padding: 20px; text-align: center; font-size: 12px; color: #666; background: #f5f5f5; }
  .button { display: inline-block; padding: 12px 24px; background: #000; color: #fff !important; text-decoration: none; font-weight: bold; text-transform: uppercase; letter-spacing: 1px; }
  .highlight { background: #f5f5f5; padding: 15px; margin: 20px 0; }
  .highlight p { margin: 5px 0; }
"""

WHAT_TO_BRING = """
        <h3>What to Bring:</h3>
        <ul>
          <li>Football boots or trainers</li>
          <li>Shin pads (recommended)</li>
          <li>Water bottle</li>
          <li>Weather-appropriate clothing</li>
        </ul>
"""


class EmailContent(NamedTuple):
    subject: str
    html: str


@dataclass
class Brand:
    name: str
    short_name: str
    email: str
    phone: str


@dataclass
class SessionLine:
    name: str
    day: str = ""
    start_time: str = ""
    end_time: str = ""
    location: str = ""


def format_price(pence: int | None) -> str:
    pence = pence or 0
    sign = "-" if pence < 0 else ""
    pence = abs(pence)
    return f"{sign}£{pence // 100}.{pence % 100:02d}"


def day_name(day_of_week: int | None) -> str:
    if day_of_week is None or not 0 <= day_of_week <= 6:
        return ""
    return DAY_NAMES[day_of_week]


def wrap_template(content: str, brand: Brand) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>{BASE_STYLES}</style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>{escape(brand.short_name)}</h1>
    </div>
    {content}
    <div class="footer">
      <p>{escape(brand.name)}</p>
      <p>Email: {escape(brand.email)} | Phone: {escape(brand.phone)}</p>
    </div>
  </div>
</body>
</html>"""


def _session_blocks(sessions: list[SessionLine]) -> str:
    blocks = []
    for s in sessions:
        when = f"{escape(s.day)}, {escape(s.start_time)} - {escape(s.end_time)}" if s.day else ""
        blocks.append(
            '<div class="highlight">'
            f"<p><strong>{escape(s.name)}</strong></p>"
            + (f"<p>{when}</p>" if when else "")
            + (f"<p>Location: {escape(s.location)}</p>" if s.location else "")
            + "</div>"
        )
    return "\n".join(blocks)


def _session_list(sessions: list[SessionLine]) -> str:
    items = []
    for s in sessions:
        label = f"{escape(s.name)} - {escape(s.day)}" if s.day else str(escape(s.name))
        items.append(f"<li>{label}</li>")
    return "".join(items)


def _sign_off(brand: Brand, pitch: bool = True) -> str:
    line = "<p>See you on the pitch!</p>" if pitch else ""
    return f"{line}<p><strong>The {escape(brand.short_name)} Team</strong></p>"


def _button(url: str, label: str) -> str:
    return f'<p style="text-align: center; margin: 30px 0;"><a href="{escape(url)}" class="button">{escape(label)}</a></p>'


# =============================================================================
# BOOKING LIFECYCLE
# =============================================================================

def booking_confirmation(brand: Brand, *, parent_first_name: str, child_first_name: str, booking_ref: str,
                         sessions: list[SessionLine], total_paid: int) -> EmailContent:
    body = f"""
      <div class="content">
        <h2>Booking Confirmed!</h2>
        <p>Hi {escape(parent_first_name)},</p>
        <p>Great news! {escape(child_first_name)}'s booking has been confirmed.</p>
        <div class="highlight" style="background: #e8f5e9;">
          <p><strong>Booking Reference:</strong> {escape(booking_ref)}</p>
          <p><strong>Total Paid:</strong> {format_price(total_paid)}</p>
        </div>
        <h3>Session Details:</h3>
        {_session_blocks(sessions)}
        {WHAT_TO_BRING}
        <p>If you need to make any changes or have questions, please get in touch.</p>
        {_sign_off(brand)}
      </div>"""
    return EmailContent(f"Booking Confirmed - {booking_ref}", wrap_template(body, brand))


def deposit_confirmation(brand: Brand, *, parent_first_name: str, child_first_name: str, booking_ref: str,
                         sessions: list[SessionLine], deposit: int, balance_due: int,
                         balance_due_date: date | None, pay_balance_url: str) -> EmailContent:
    due = format_long_date(balance_due_date)
    body = f"""
      <div class="content">
        <h2>Deposit Confirmed!</h2>
        <p>Hi {escape(parent_first_name)},</p>
        <p>Great news! We've received your deposit for {escape(child_first_name)}'s booking. Your spot is now secured!</p>
        <div class="highlight" style="background: #e8f5e9;">
          <p><strong>Booking Reference:</strong> {escape(booking_ref)}</p>
          <p><strong>Deposit Paid:</strong> {format_price(deposit)}</p>
        </div>
        <h3>Session Details:</h3>
        {_session_blocks(sessions)}
        <div class="highlight" style="background: #fff3cd; border-left: 4px solid #ffc107;">
          <p><strong>Balance Due</strong></p>
          <p><strong>Amount:</strong> {format_price(balance_due)}</p>
          <p><strong>Due Date:</strong> {escape(due)}</p>
        </div>
        <p>Please complete your payment before the due date to avoid losing your spot.</p>
        {_button(pay_balance_url, "Pay Balance Now")}
        <p>We'll send you a reminder before the due date.</p>
        {WHAT_TO_BRING}
        {_sign_off(brand)}
      </div>"""
    return EmailContent(f"Deposit Received - {booking_ref}", wrap_template(body, brand))


def balance_paid_confirmation(brand: Brand, *, parent_first_name: str, child_first_name: str, booking_ref: str,
                              sessions: list[SessionLine], total_paid: int) -> EmailContent:
    body = f"""
      <div class="content">
        <h2>Payment Complete!</h2>
        <p>Hi {escape(parent_first_name)},</p>
        <p>Excellent! Your full payment for {escape(child_first_name)}'s booking has been completed. You're all set!</p>
        <div class="highlight" style="background: #e8f5e9;">
          <p><strong>Booking Reference:</strong> {escape(booking_ref)}</p>
          <p><strong>Total Paid:</strong> {format_price(total_paid)}</p>
          <p><strong>Status:</strong> Fully Paid</p>
        </div>
        <h3>Session Details:</h3>
        {_session_blocks(sessions)}
        {_sign_off(brand)}
      </div>"""
    return EmailContent(f"Payment Complete - {booking_ref}", wrap_template(body, brand))


def payment_failed(brand: Brand, *, parent_first_name: str, child_first_name: str, booking_ref: str,
                   sessions: list[SessionLine], amount: int, retry_url: str,
                   failure_reason: str | None = None) -> EmailContent:
    reason = f"<p><strong>Reason:</strong> {escape(failure_reason)}</p>" if failure_reason else ""
    body = f"""
      <div class="content">
        <h2>Payment Unsuccessful</h2>
        <p>Hi {escape(parent_first_name)},</p>
        <p>Unfortunately, we were unable to process your payment for {escape(child_first_name)}'s booking.</p>
        <div class="highlight" style="background: #ffebee;">
          <p><strong>Booking Reference:</strong> {escape(booking_ref)}</p>
          <p><strong>Amount:</strong> {format_price(amount)}</p>
          {reason}
        </div>
        <h3>Sessions:</h3>
        <ul>{_session_list(sessions)}</ul>
        <p>Please try again with a different payment method:</p>
        {_button(retry_url, "Complete Payment")}
        <p>If you continue to experience issues, please get in touch and we'll help sort it out.</p>
        {_sign_off(brand, pitch=False)}
      </div>"""
    return EmailContent(f"Payment Issue - {booking_ref}", wrap_template(body, brand))


def refund_confirmation(brand: Brand, *, parent_first_name: str, child_first_name: str, booking_ref: str,
                        refund_amount: int, original_amount: int, is_partial: bool) -> EmailContent:
    original = f"<p><strong>Original Amount:</strong> {format_price(original_amount)}</p>" if is_partial else ""
    body = f"""
      <div class="content">
        <h2>Refund Confirmed</h2>
        <p>Hi {escape(parent_first_name)},</p>
        <p>We've processed a {"partial " if is_partial else ""}refund for {escape(child_first_name)}'s booking.</p>
        <div class="highlight" style="background: #e3f2fd;">
          <p><strong>Booking Reference:</strong> {escape(booking_ref)}</p>
          <p><strong>Refund Amount:</strong> {format_price(refund_amount)}</p>
          {original}
        </div>
        <p>The refund will be credited back to your original payment method within 5-10 business days, depending on your bank.</p>
        <p>If you have any questions about this refund, please don't hesitate to get in touch.</p>
        {_sign_off(brand, pitch=False)}
      </div>"""
    return EmailContent(f"Refund Processed - {booking_ref}", wrap_template(body, brand))


def checkout_abandoned(brand: Brand, *, parent_first_name: str, child_first_name: str,
                       sessions: list[SessionLine], amount: int, checkout_url: str) -> EmailContent:
    body = f"""
      <div class="content">
        <h2>Finish Your Booking</h2>
        <p>Hi {escape(parent_first_name)},</p>
        <p>We noticed you didn't complete your booking for {escape(child_first_name)}.</p>
        <div class="highlight">
          <p><strong>Sessions:</strong></p>
          <ul>{_session_list(sessions)}</ul>
          <p><strong>Total:</strong> {format_price(amount)}</p>
        </div>
        <p>Spots are filling up fast. Complete your booking now to secure {escape(child_first_name)}'s place:</p>
        {_button(checkout_url, "Complete Booking")}
        {_sign_off(brand)}
      </div>"""
    return EmailContent(f"Complete Your Booking for {child_first_name}", wrap_template(body, brand))


def cancellation_confirmation(brand: Brand, *, parent_first_name: str, child_first_name: str,
                              booking_ref: str, sessions: list[SessionLine]) -> EmailContent:
    body = f"""
      <div class="content">
        <h2>Booking Cancelled</h2>
        <p>Hi {escape(parent_first_name)},</p>
        <p>{escape(child_first_name)}'s booking has been cancelled.</p>
        <div class="highlight">
          <p><strong>Booking Reference:</strong> {escape(booking_ref)}</p>
          <ul>{_session_list(sessions)}</ul>
        </div>
        <p>If a refund is due we will process it separately and email you when it has been sent.</p>
        {_sign_off(brand, pitch=False)}
      </div>"""
    return EmailContent(f"Booking Cancellation Confirmed - {booking_ref}", wrap_template(body, brand))


# =============================================================================
# ADMIN-INITIATED PAYMENTS
# =============================================================================

def payment_link(brand: Brand, *, customer_name: str, amount: int, description: str,
                 url: str, expires_on: date | None) -> EmailContent:
    expiry = ""
    if expires_on is not None:
        expiry = (f"<p><strong>Important:</strong> This payment link will expire on "
                  f"<strong>{escape(format_long_date(expires_on))}</strong>.</p>")
    body = f"""
      <div class="content">
        <h2>Payment Request</h2>
        <p>Hi {escape(customer_name)},</p>
        <p>We've created a secure payment link for you:</p>
        <div class="highlight">
          <p><strong>Description:</strong> {escape(description)}</p>
          <p><strong>Amount:</strong> {format_price(amount)}</p>
        </div>
        {_button(url, "Pay Now")}
        {expiry}
        {_sign_off(brand, pitch=False)}
      </div>"""
    return EmailContent(f"Payment Request - {description}", wrap_template(body, brand))


def manual_payment_received(brand: Brand, *, customer_name: str, child_first_name: str, booking_ref: str,
                            amount: int, method: str, fully_paid: bool) -> EmailContent:
    method_display = "Cash" if method == "cash" else "Bank Transfer"
    status_line = (
        "Your booking is now confirmed." if fully_paid
        else "We'll be in touch about the remaining balance."
    )
    body = f"""
      <div class="content">
        <h2>Payment Received</h2>
        <p>Hi {escape(customer_name)},</p>
        <p>We've received your payment for {escape(child_first_name)}'s booking. Thank you!</p>
        <div class="highlight" style="background: #e8f5e9;">
          <p><strong>Booking Reference:</strong> {escape(booking_ref)}</p>
          <p><strong>Amount:</strong> {format_price(amount)}</p>
          <p><strong>Payment Method:</strong> {method_display}</p>
        </div>
        <p>{status_line}</p>
        {_sign_off(brand, pitch=False)}
      </div>"""
    return EmailContent(f"Payment Received - {booking_ref}", wrap_template(body, brand))


# =============================================================================
# REMINDERS
# =============================================================================

def balance_reminder(brand: Brand, *, parent_first_name: str, child_first_name: str, booking_ref: str,
                     sessions: list[SessionLine], balance_due: int, balance_due_date: date | None,
                     days_until_due: int, pay_balance_url: str) -> EmailContent:
    due = format_long_date(balance_due_date)
    if days_until_due <= 0:
        urgency = "Your balance is due today!"
    elif days_until_due == 1:
        urgency = "Your balance is due tomorrow!"
    elif days_until_due <= 3:
        urgency = f"Your balance is due in {days_until_due} days!"
    else:
        urgency = f"Your balance is due on {due}."
    style = (
        "background: #ffebee; border-left: 4px solid #f44336;" if days_until_due <= 3
        else "background: #fff3cd; border-left: 4px solid #ffc107;"
    )
    body = f"""
      <div class="content">
        <h2>Balance Payment Reminder</h2>
        <p>Hi {escape(parent_first_name)},</p>
        <p>This is a friendly reminder about the outstanding balance for {escape(child_first_name)}'s booking.</p>
        <div class="highlight" style="{style}">
          <p><strong>{escape(urgency)}</strong></p>
          <p><strong>Balance Due:</strong> {format_price(balance_due)}</p>
          <p><strong>Due Date:</strong> {escape(due)}</p>
        </div>
        <div class="highlight">
          <p><strong>Booking Reference:</strong> {escape(booking_ref)}</p>
          <ul>{_session_list(sessions)}</ul>
        </div>
        {_button(pay_balance_url, "Pay Balance Now")}
        {_sign_off(brand)}
      </div>"""
    subject = (
        f"REMINDER: Balance Due Soon - {booking_ref}" if days_until_due <= 3
        else f"Balance Reminder - {booking_ref}"
    )
    return EmailContent(subject, wrap_template(body, brand))


def session_reminder(brand: Brand, *, parent_first_name: str, child_first_name: str,
                     session: SessionLine, session_date: date) -> EmailContent:
    body = f"""
      <div class="content">
        <h2>See You Tomorrow!</h2>
        <p>Hi {escape(parent_first_name)},</p>
        <p>Just a quick reminder that {escape(child_first_name)} has a session tomorrow:</p>
        <div class="highlight">
          <p><strong>Session:</strong> {escape(session.name)}</p>
          <p><strong>Date:</strong> {escape(format_long_date(session_date))}</p>
          <p><strong>Time:</strong> {escape(session.start_time)} - {escape(session.end_time)}</p>
          <p><strong>Location:</strong> {escape(session.location or "TBC")}</p>
        </div>
        {WHAT_TO_BRING}
        {_sign_off(brand)}
      </div>"""
    return EmailContent(f"Reminder: {session.name} Tomorrow", wrap_template(body, brand))

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Iterable

from academy.time_utils import parse_iso_datetime


# Maximum amount: £9,999,999.99 (999,999,999 pence)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_PENCE = 999_999_999

SESSION_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class DomainError(ValueError):
    """Base for errors that map onto an HTTP status in the JSON envelope."""
    status_code = 400


class ValidationError(DomainError):
    """400-level input problem."""
    status_code = 400


class NotFoundError(DomainError):
    """404-level unknown id."""
    status_code = 404


class ConflictError(DomainError):
    """409-level business rule conflict (e.g., refunding twice)."""
    status_code = 409


def require_fields(payload: dict | None, fields: Iterable[str]) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload


def parse_pence(value: Any, field: str, *, allow_zero: bool = True) -> int:
    """
    Coerce a money amount in pence. Strict: rejects floats, decimals,
    scientific notation and booleans.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer amount in pence")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer amount in pence")
        try:
            amount = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer amount in pence")
    else:
        raise ValidationError(f"{field} must be an integer amount in pence")

    if amount < 0:
        raise ValidationError(f"{field} cannot be negative")
    if amount == 0 and not allow_zero:
        raise ValidationError(f"{field} must be greater than 0")
    if amount > MAX_AMOUNT_PENCE:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_PENCE}")
    return amount


def parse_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{field} must be a whole number")
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"{field} must be a whole number")
    if number <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return number


def parse_session_date(value: Any, field: str = "sessionDate") -> date:
    """Dates of attended sessions travel as plain YYYY-MM-DD strings."""
    if not isinstance(value, str) or not SESSION_DATE_RE.match(value.strip()):
        raise ValidationError(f"{field} must be in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"{field} is not a valid date")


def parse_optional_datetime(value: Any, field: str) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_email(value: Any, field: str = "email") -> str:
    if not isinstance(value, str) or not EMAIL_RE.match(value.strip()):
        raise ValidationError(f"{field} must be a valid email address")
    return value.strip().lower()


def clean_str(value: Any, max_length: int = 255) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_length]

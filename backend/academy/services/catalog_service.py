# Overview: Programs and bookable sessions (the timetable admins maintain).

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Program, TrainingSession
from ..validation import ValidationError, clean_str, parse_pence, require_fields
from .store import coerce_id, get_or_404


TIME_FORMAT_HINT = "HH:MM"

SESSION_FIELDS = (
    "programId", "name", "description", "dayOfWeek", "daysOfWeek", "startTime", "endTime",
    "startDate", "endDate", "ageMin", "ageMax", "price", "capacity", "waitlistEnabled",
    "coaches", "isActive",
)


def _parse_date(value, field: str) -> date | None:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be in YYYY-MM-DD format")


def _parse_time(value, field: str) -> str | None:
    if value in (None, ""):
        return None
    text = str(value).strip()
    parts = text.split(":")
    if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
        raise ValidationError(f"{field} must be {TIME_FORMAT_HINT}")
    if int(parts[0]) > 23 or int(parts[1]) > 59:
        raise ValidationError(f"{field} must be {TIME_FORMAT_HINT}")
    return text


def _parse_small_int(value, field: str, low: int, high: int) -> int | None:
    if value in (None, ""):
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise ValidationError(f"{field} must be a whole number between {low} and {high}")
    return value


# =============================================================================
# PROGRAMS
# =============================================================================

def list_programs(active_only: bool = False) -> list[dict]:
    q = db.session.query(Program)
    if active_only:
        q = q.filter_by(is_active=True)
    return [p.to_dict() for p in q.order_by(Program.created_at.desc(), Program.id.desc()).all()]


def create_program(data: dict) -> Program:
    data = require_fields(data, ("name",))
    program = Program(
        name=clean_str(data["name"]),
        description=clean_str(data.get("description"), 4000),
        location=clean_str(data.get("location")),
        service_type=clean_str(data.get("serviceType"), 32),
        start_date=_parse_date(data.get("startDate"), "startDate"),
        end_date=_parse_date(data.get("endDate"), "endDate"),
        is_active=bool(data.get("isActive", True)),
    )
    db.session.add(program)
    db.session.commit()
    return program


# =============================================================================
# SESSIONS
# =============================================================================

def list_sessions(program_id: int | None = None, active_only: bool = False) -> list[dict]:
    q = db.session.query(TrainingSession)
    if program_id is not None:
        q = q.filter_by(program_id=program_id)
    if active_only:
        q = q.filter_by(is_active=True)
    return [s.to_dict() for s in q.order_by(TrainingSession.day_of_week, TrainingSession.start_time).all()]


def _session_values(data: dict) -> dict:
    values = {}
    if "programId" in data:
        values["program_id"] = (
            None if data["programId"] in (None, "")
            else get_or_404(Program, coerce_id(data["programId"], "programId"), "Program").id
        )
    if "name" in data:
        values["name"] = clean_str(data["name"])
        if not values["name"]:
            raise ValidationError("name is required")
    if "description" in data:
        values["description"] = clean_str(data["description"], 4000)
    if "dayOfWeek" in data:
        values["day_of_week"] = _parse_small_int(data["dayOfWeek"], "dayOfWeek", 0, 6)
    if "daysOfWeek" in data:
        days = data["daysOfWeek"] or []
        if not isinstance(days, list):
            raise ValidationError("daysOfWeek must be a list")
        values["days_of_week"] = [_parse_small_int(d, "daysOfWeek", 0, 6) for d in days] or None
    if "startTime" in data:
        values["start_time"] = _parse_time(data["startTime"], "startTime")
    if "endTime" in data:
        values["end_time"] = _parse_time(data["endTime"], "endTime")
    if "startDate" in data:
        values["start_date"] = _parse_date(data["startDate"], "startDate")
    if "endDate" in data:
        values["end_date"] = _parse_date(data["endDate"], "endDate")
    if "ageMin" in data:
        values["age_min"] = _parse_small_int(data["ageMin"], "ageMin", 0, 25)
    if "ageMax" in data:
        values["age_max"] = _parse_small_int(data["ageMax"], "ageMax", 0, 25)
    if "price" in data:
        values["price"] = parse_pence(data["price"], "price")
    if "capacity" in data:
        values["capacity"] = _parse_small_int(data["capacity"], "capacity", 0, 10_000) or 0
    if "waitlistEnabled" in data:
        values["waitlist_enabled"] = bool(data["waitlistEnabled"])
    if "coaches" in data:
        coaches = data["coaches"] or []
        if not isinstance(coaches, list):
            raise ValidationError("coaches must be a list")
        values["coaches"] = coaches
    if "isActive" in data:
        values["is_active"] = bool(data["isActive"])
    return values


def create_session(data: dict) -> TrainingSession:
    data = require_fields(data, ("name", "price", "capacity"))
    session = TrainingSession(enrolled=0, **_session_values(data))
    db.session.add(session)
    db.session.commit()
    return session


def update_session(session_id: int, data: dict) -> TrainingSession:
    """enrolled is owned by the capacity ledger and cannot be edited here."""
    session = get_or_404(TrainingSession, session_id, "Session")
    if "enrolled" in data:
        raise ValidationError("enrolled cannot be edited directly")
    values = _session_values({k: v for k, v in data.items() if k in SESSION_FIELDS})
    if "capacity" in values and values["capacity"] < session.enrolled:
        raise ValidationError(f"capacity cannot be below current enrolment ({session.enrolled})")
    for attr, value in values.items():
        setattr(session, attr, value)
    db.session.commit()
    return session

from __future__ import annotations

from ..extensions import db
from academy.time_utils import to_iso_date, to_utc_z


class Program(db.Model):
    """A category of sessions, e.g. "After School Club - Spring 2026"."""
    __tablename__ = "programs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(255), nullable=True)
    service_type = db.Column(db.String(32), nullable=True)  # after-school, group-session, half-term, ...
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "serviceType": self.service_type,
            "startDate": to_iso_date(self.start_date),
            "endDate": to_iso_date(self.end_date),
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
        }


class TrainingSession(db.Model):
    """
    A bookable coaching slot (recurring weekly, or dated).

    `enrolled` is a shared counter: only ever changed with server-side
    increments (see services/capacity_ledger.py), never read-add-write.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.CheckConstraint("enrolled >= 0", name="ck_sessions_enrolled_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey("programs.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # 0-6 (Sunday-Saturday); days_of_week for multi-day camps
    day_of_week = db.Column(db.Integer, nullable=True)
    days_of_week = db.Column(db.JSON, nullable=True)
    start_time = db.Column(db.String(5), nullable=True)  # "15:30"
    end_time = db.Column(db.String(5), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    age_min = db.Column(db.Integer, nullable=True)
    age_max = db.Column(db.Integer, nullable=True)
    price = db.Column(db.Integer, nullable=False, default=0)  # pence

    capacity = db.Column(db.Integer, nullable=False, default=0)
    enrolled = db.Column(db.Integer, nullable=False, default=0)
    waitlist_enabled = db.Column(db.Boolean, nullable=False, default=False)

    coaches = db.Column(db.JSON, nullable=True)  # list of coach user ids
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    program = db.relationship("Program", backref=db.backref("sessions", lazy=True))

    @property
    def spots_left(self) -> int:
        return max((self.capacity or 0) - (self.enrolled or 0), 0)

    @property
    def is_full(self) -> bool:
        return (self.enrolled or 0) >= (self.capacity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "programId": self.program_id,
            "name": self.name,
            "description": self.description,
            "dayOfWeek": self.day_of_week,
            "daysOfWeek": self.days_of_week or [],
            "startTime": self.start_time,
            "endTime": self.end_time,
            "startDate": to_iso_date(self.start_date),
            "endDate": to_iso_date(self.end_date),
            "ageMin": self.age_min,
            "ageMax": self.age_max,
            "price": self.price,
            "capacity": self.capacity,
            "enrolled": self.enrolled,
            "spotsLeft": self.spots_left,
            "waitlistEnabled": self.waitlist_enabled,
            "coaches": self.coaches or [],
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

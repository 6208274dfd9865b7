# Overview: Thin accessors over the document collections (typed rows keyed by id).

"""
Document Store Client

Every collection in the academy (sessions, bookings, coupons, block
bookings, ...) is a SQLAlchemy model. This module holds the few lookups
every service needs so "not found" is reported the same way everywhere.

Writes go through db.session directly in the owning service; the shared
counters (sessions.enrolled, coupons.used_count,
block_bookings.remaining_sessions) are only ever changed with
concurrency.atomic_add.
"""

from __future__ import annotations

from typing import Iterable, Type, TypeVar

from ..extensions import db
from ..validation import NotFoundError, ValidationError
from .concurrency import lock_for_update

T = TypeVar("T")


def get_document(model: Type[T], doc_id) -> T | None:
    """Fetch one row by primary key, or None."""
    if doc_id is None:
        return None
    return db.session.get(model, doc_id)


def get_or_404(model: Type[T], doc_id, label: str | None = None) -> T:
    doc = get_document(model, doc_id)
    if doc is None:
        raise NotFoundError(f"{label or model.__name__} not found")
    return doc


def get_for_update(model: Type[T], doc_id, label: str | None = None) -> T:
    """Fetch one row under SELECT ... FOR UPDATE (a no-op on SQLite)."""
    doc = lock_for_update(db.session.query(model).filter(model.id == doc_id)).first()
    if doc is None:
        raise NotFoundError(f"{label or model.__name__} not found")
    return doc


def get_many(model: Type[T], doc_ids: Iterable) -> dict:
    """Batch fetch by id. Missing ids are simply absent from the result."""
    ids = list(doc_ids)
    if not ids:
        return {}
    rows = db.session.query(model).filter(model.id.in_(ids)).all()
    return {row.id: row for row in rows}


def coerce_id(value, field: str = "id") -> int:
    """Ids arrive as ints or numeric strings (JSON bodies, provider metadata)."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id")
    try:
        doc_id = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id")
    if doc_id <= 0:
        raise ValidationError(f"{field} must be an integer id")
    return doc_id

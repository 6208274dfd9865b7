# Overview: Shared helpers for row locking, atomic counters and retrying transactions.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def atomic_add(model, row_id: int, column, delta: int, *, where=None, extra_values=None) -> int:
    """
    Server-side `column = column + delta` for a single row.

    Optional `where` clauses turn this into a conditional update
    (e.g. `remaining_sessions > 0`). Returns the number of rows matched,
    so 0 means the guard failed or the row does not exist.
    """
    values = {column: column + delta}
    if extra_values:
        values.update(extra_values)
    query = db.session.query(model).filter(model.id == row_id)
    for clause in where or ():
        query = query.filter(clause)
    return query.update(values, synchronize_session=False)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc

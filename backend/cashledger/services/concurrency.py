# Overview: Local-store commit retries, row locking and backoff arithmetic shared by the ledger and the outbox.

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


def backoff_delay(attempt: int, *, base: float, cap: float | None = None) -> float:
    """Exponential backoff: base * 2**attempt, optionally capped."""
    delay = base * (2 ** attempt)
    if cap is not None:
        delay = min(delay, cap)
    return delay


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (database locked) and StaleDataError.
    Business-rule errors raised by func propagate immediately.
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
            time.sleep(backoff_delay(attempt, base=backoff_base))
    if last_exc:
        raise last_exc

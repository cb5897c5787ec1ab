# Overview: Locking and retry helpers shared by the workflow and stock services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Rows with a version_id column still get compare-and-swap semantics.
    Locked rows are always re-read from the database, never served stale
    from the identity map.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (version_id mismatch: another request changed the row first).
    The retried callable must re-read and re-validate its rows.
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


def commit_unit(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func() and commit its work as one retriable unit.

    A failed commit rolls the whole session back, so the retry re-runs func
    instead of committing an empty transaction. Once attempts are exhausted
    the error propagates and nothing from func is stored.
    """
    def _unit():
        result = func()
        db.session.commit()
        return result
    return run_with_retry(_unit, attempts=attempts, backoff_base=backoff_base)

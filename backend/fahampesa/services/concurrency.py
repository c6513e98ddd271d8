# Overview: Row locking and retry helpers for writes that race on the same rows.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns still catch lost updates there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). `func` must flush its own writes so
    version conflicts surface inside the retry loop, and must re-read the
    rows it changes so each attempt works on fresh state.
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


def commit_with_retry(work, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of work and commit it, retrying both together.

    A failed commit rolls the session back, which discards everything the
    work flushed, so the retry has to run `work` again before committing.
    Returns whatever `work` returns from the attempt that committed.
    """
    def _op():
        result = work()
        db.session.commit()
        return result
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)

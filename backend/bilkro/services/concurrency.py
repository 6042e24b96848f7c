# Overview: Row locking and retry for the cart, checkout, debt and expenditure write paths.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on dialects that support it.

    SQLite ignores the clause; carts, debts and reports also carry a
    version_id column, so a lost update there surfaces as StaleDataError.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run ``func`` (which owns its commit), retrying storage conflicts.

    A version mismatch (StaleDataError), a lock timeout or a deadlock
    (OperationalError) rolls back and retries with exponential backoff.
    Service errors and anything else roll back and propagate on the first
    occurrence.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                current_app.logger.error("Giving up after %s attempts: %s", attempts, exc)
                raise
            current_app.logger.warning(
                "Storage conflict on attempt %s/%s, retrying: %s", attempt, attempts, exc.__class__.__name__
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
        except Exception:
            db.session.rollback()
            raise

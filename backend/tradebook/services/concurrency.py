# Overview: Transaction helpers shared by every write service; row locks, retry on contention, rollback on domain errors.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..exceptions import ConflictError, TradebookError
from ..extensions import db


def lock_for_update(query):
    """
    Lock the selected item / invoice / broker rows until commit.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id columns on those rows still catch lost updates there
    (StaleDataError on flush).
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one unit of work (a closure that ends in commit) with retries.

    WHY: Two clerks saving against the same item or invoice must never both
    win. A lost race shows up as:
    - OperationalError: lock wait / deadlock
    - StaleDataError: the row's version_id moved under us
    - IntegrityError: a racing insert took the same unique name or number

    The session is rolled back and the closure re-run, so it re-reads
    current state and re-validates. When the retries run out the caller
    gets a ConflictError (409) instead of a driver exception.

    Domain errors (TradebookError) roll back and propagate immediately.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except TradebookError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError, IntegrityError) as exc:
            db.session.rollback()
            current_app.logger.warning(
                "Write conflict on attempt %d/%d: %s", attempt, attempts, exc.__class__.__name__
            )
            if attempt == attempts:
                raise ConflictError(
                    "The record was changed by someone else at the same time; reload and try again"
                ) from exc
            time.sleep(backoff_base * (2 ** (attempt - 1)))

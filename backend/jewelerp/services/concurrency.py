# Overview: Transaction helpers shared by every service: row locks and retry on lock/version conflicts.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Lock the selected rows until commit (stock, balances, sequences).

    SQLite ignores FOR UPDATE; its single writer lock serialises the
    transaction instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func as one unit of work.

    Any exception rolls the session back before it propagates, so a failed
    invoice, loan or sync step never leaves half its writes (or its outbox
    rows) pending. Lock timeouts and version conflicts are retried with
    exponential backoff; func must therefore be safe to call again.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Retrying %s after %s (attempt %s of %s)",
                getattr(func, "__qualname__", "operation"), type(exc).__name__, attempt, attempts,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
        except Exception:
            db.session.rollback()
            raise

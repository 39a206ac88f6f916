# Overview: Row locking and retry helpers for stock-affecting writes.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Lock waits/deadlocks and Product.version_id mismatches
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE that also overwrites identity-map copies.

    Stock checks must see the row as it is now, not as it was when the
    session first loaded it. SQLite ignores the lock clause.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Call func() until it succeeds or attempts run out.

    The session is rolled back between tries, so func must redo all of its
    reads. Delay doubles each time: backoff_base, 2*backoff_base, ...
    """
    attempt = 1
    while True:
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts:
                current_app.logger.error("Giving up after %s attempts: %s", attempt, type(exc).__name__)
                raise
            current_app.logger.warning(
                "Concurrent write conflict (%s), retry %s of %s",
                type(exc).__name__, attempt, attempts - 1,
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
            attempt += 1

# Overview: Transaction helpers shared by every mutating ledger operation.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Lock the parent row (order, stock-take, inventory record) being changed.

    SQLite has no row locks and ignores this; the version column on
    InventoryRecord catches concurrent writers there instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run `func` as one unit of work and return its result.

    `func` commits on success. Lock timeouts and stale inventory versions
    are retried with exponential backoff; every other exception rolls the
    session back and propagates, so a failing operation leaves no partial
    writes behind.
    """
    attempt = 1
    while True:
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts:
                logger.warning("Giving up after %d attempts: %s", attempts, type(exc).__name__)
                raise
            logger.warning("Retrying after %s (attempt %d of %d)", type(exc).__name__, attempt, attempts)
            time.sleep(backoff_base * (2 ** (attempt - 1)))
            attempt += 1
        except Exception:
            db.session.rollback()
            raise

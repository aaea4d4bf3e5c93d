# Overview: Row locking and conflict retry for balance-carrying rows (accounts, stock items, debts).

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)

RETRYABLE = (OperationalError, StaleDataError)


def lock_for_update(query):
    """Mark a parent-row lookup as FOR UPDATE (a no-op on SQLite)."""
    return query.with_for_update()


def run_with_retry(store, func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Run func, which writes a ledger entry plus its parent row, until it
    commits cleanly or attempts run out.

    A StaleDataError means another writer bumped version_id on the parent
    between read and flush. The store is rolled back so the next attempt
    sees the fresh balance.
    """
    attempt = 0
    while True:
        try:
            return func()
        except RETRYABLE as exc:
            store.rollback()
            attempt += 1
            if attempt >= attempts:
                logger.error("Giving up after %d conflicting writes (%s)", attempt, type(exc).__name__)
                raise
            logger.warning("Write conflict on parent row (%s); retry %d of %d", type(exc).__name__, attempt, attempts - 1)
            time.sleep(backoff_base * (2 ** (attempt - 1)))

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from aqualink.config import settings
from aqualink.services.errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar('T')


def commit_with_retry(db: Session, operation: Callable[[], T], *, retries: int | None = None) -> T:
    """Run ``operation`` and commit, replaying it when a revision check fails.

    Rows carrying a ``revision`` column reject writes based on a stale read, so
    a lost race shows up here as ``StaleDataError``. The session is rolled back
    and the operation re-reads current state on the next attempt.
    """
    attempts = max(1, settings.stock_conflict_retries if retries is None else retries)
    attempt = 0
    while True:
        attempt += 1
        try:
            result = operation()
            db.commit()
            return result
        except StaleDataError as exc:
            db.rollback()
            logger.warning('Revision conflict on attempt %s/%s: %s', attempt, attempts, exc)
            if attempt >= attempts:
                raise ConcurrencyConflict('The record was changed by another request. Please retry.') from exc

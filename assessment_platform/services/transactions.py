"""Bounded retry for writes that can lose a concurrent race."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError

from assessment_platform.core.exceptions import ConcurrencyConflictError
from assessment_platform.models import db

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StaleWriteError(Exception):
    """A compare-and-swap UPDATE matched no row: another request moved first."""


def retry_attempts() -> int:
    return max(1, int(current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3)))


def run_with_retry(operation: str, fn: Callable[[], T], **log_extra) -> T:
    """Run *fn* (which commits) until it succeeds or the attempts run out.

    Lost races (stale compare-and-swap, unique-constraint collision,
    serialization / lock failure) roll back and run *fn* again from scratch.
    Any other exception rolls back and propagates unchanged.
    """
    attempts = retry_attempts()
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except (StaleWriteError, IntegrityError, OperationalError) as exc:
            db.session.rollback()
            logger.warning(
                "%s lost a concurrent update (attempt %d/%d): %s",
                operation, attempt, attempts, exc.__class__.__name__,
                extra={"event_type": "transaction_retry", **log_extra},
            )
        except Exception:
            db.session.rollback()
            raise
    raise ConcurrencyConflictError(operation, attempts)

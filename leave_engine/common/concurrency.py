"""Optimistic-concurrency retry loop for read-modify-write units of work.

Leave requests and balances carry a ``version_id_col``; every ORM UPDATE is
conditional on the version that was read. A write that lost the race raises
``StaleDataError`` at flush time. Inserting a row that another writer created
first surfaces as ``WriteConflict``. ``run_atomic`` rolls the session back,
re-runs the whole unit from a fresh read, and gives up with
``ConcurrentModificationError`` after a fixed number of attempts.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from leave_engine.common.exceptions import ConcurrentModificationError
from leave_engine.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WriteConflict(Exception):
    """Another transaction created the row this unit of work tried to insert."""


RETRYABLE = (StaleDataError, WriteConflict)


async def run_atomic(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    entity_type: str,
    entity_id: Any,
    attempts: Optional[int] = None,
) -> T:
    """Run *operation* and flush it as one unit, retrying on version conflicts.

    *operation* must re-read everything it mutates; it is invoked again from
    scratch after a rollback. Application errors raised by the operation
    propagate unchanged on the first occurrence.
    """
    max_attempts = attempts or settings.TRANSITION_MAX_ATTEMPTS

    for attempt in range(1, max_attempts + 1):
        try:
            result = await operation()
            await db.flush()
            return result
        except RETRYABLE as exc:
            await db.rollback()
            logger.warning(
                "Write conflict on %s %s (attempt %d/%d): %s",
                entity_type, entity_id, attempt, max_attempts, type(exc).__name__,
            )

    raise ConcurrentModificationError(entity_type, entity_id, max_attempts)

"""
fulfillment_services.retry -- Whole-operation retry on transaction conflicts.

Responsibility:
    Translate database-level serialization failures and deadlocks into
    ``ConflictRetryableError`` and re-run a complete unit of work, from a
    fresh session, when one is raised.

Architecture position:
    Services -- imperative shell.  Used by callers that sit above the
    orchestrators (request handlers, batch jobs).  The orchestrators
    themselves never retry; they roll back and raise.

Invariants enforced:
    - A retried unit starts from scratch in a new transaction.  Nothing
      from the failed attempt is visible, because the failed attempt was
      rolled back before the retry.
    - Only ConflictRetryableError is retried.  Every other error, and in
      particular ConsistencyViolationError, propagates on the first attempt.

Failure modes:
    - ConflictRetryableError after ``max_attempts`` attempts.

Usage:
    from fulfillment_services.retry import run_with_retry

    result = run_with_retry(
        get_session_factory(),
        lambda session: OrderFulfillmentService(session, ...).approve(order_id, actor_id),
        operation="approve_order",
    )
"""

from __future__ import annotations

import time
from decimal import Decimal
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from fulfillment_kernel.exceptions import ConflictRetryableError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")

# PostgreSQL SQLSTATEs that mean "run the whole transaction again".
RETRYABLE_SQLSTATES = {
    "40001": "serialization_failure",
    "40P01": "deadlock_detected",
    "55P03": "lock_not_available",
}

# SQLite reports lock contention only through the message text.
_SQLITE_BUSY_MARKERS = ("database is locked", "database table is locked")


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_retryable_db_error(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) in RETRYABLE_SQLSTATES:
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _SQLITE_BUSY_MARKERS)


def translate_db_error(exc: BaseException, operation: str) -> BaseException:
    """
    Map a driver error to ConflictRetryableError when it is a conflict.

    Returns the original exception unchanged otherwise, so callers can
    ``raise translate_db_error(exc, op) from exc`` without branching.
    """
    if not is_retryable_db_error(exc):
        return exc
    sqlstate = _sqlstate(exc)
    logger.warning(
        "transaction_conflict_detected",
        extra={
            "operation": operation,
            "sqlstate": sqlstate,
            "reason": RETRYABLE_SQLSTATES.get(sqlstate or "", "database_locked"),
        },
    )
    return ConflictRetryableError(operation, sqlstate)


def run_with_retry(
    session_factory: Callable[[], Session],
    work: Callable[[Session], T],
    operation: str = "unit_of_work",
    max_attempts: int = 3,
    backoff_seconds: Decimal | float = Decimal("0.05"),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``work`` in a fresh session, retrying on ConflictRetryableError.

    ``work`` may commit itself (orchestrators do).  Whatever it leaves
    uncommitted is committed here.  The session is always closed.

    Backoff grows linearly: attempt n waits ``n * backoff_seconds``.

    Raises:
        ConflictRetryableError: Still conflicting after ``max_attempts``.
        Exception: Any non-retryable error from ``work``, unchanged.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        session = session_factory()
        try:
            try:
                result = work(session)
                session.commit()
            except DBAPIError as exc:
                session.rollback()
                translated = translate_db_error(exc, operation)
                if translated is exc:
                    raise
                raise translated from exc
            if attempt > 1:
                logger.info(
                    "operation_retry_succeeded",
                    extra={"operation": operation, "attempt": attempt},
                )
            return result
        except ConflictRetryableError as exc:
            session.rollback()
            if attempt >= max_attempts:
                logger.error(
                    "operation_retry_exhausted",
                    extra={
                        "operation": operation,
                        "attempts": attempt,
                        "sqlstate": exc.sqlstate,
                    },
                )
                raise
            delay = float(backoff_seconds) * attempt
            logger.warning(
                "operation_retry_scheduled",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_seconds": delay,
                },
            )
            sleep(delay)
        finally:
            session.close()

    # Loop always returns or raises.
    raise AssertionError("unreachable")

"""
Transaction boundary shared by the fulfillment orchestrators.

Every public orchestrator operation is one database transaction: commit on
success, roll back on any exception and re-raise.  Driver-level conflicts
are re-raised as ConflictRetryableError so callers can use
``fulfillment_services.retry.run_with_retry``.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator
from uuid import uuid4

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from fulfillment_kernel.exceptions import FulfillmentError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_services.retry import translate_db_error

logger = get_logger("services.boundary")


@contextmanager
def transaction_boundary(
    session: Session,
    operation: str,
    auto_commit: bool = True,
    actor_id: Any = None,
    order_id: Any = None,
    shipment_id: Any = None,
    **fields: Any,
) -> Iterator[None]:
    """
    Bind log context, time the unit, and own commit / rollback.

    With ``auto_commit=False`` the caller owns the transaction; the body
    still runs inside the same log context and failures are still logged.
    """
    with LogContext.bind(
        correlation_id=LogContext.get_all().get("correlation_id") or str(uuid4()),
        actor_id=actor_id,
        order_id=order_id,
        shipment_id=shipment_id,
    ):
        extra = {k: str(v) for k, v in fields.items() if v is not None}
        logger.info(f"{operation}_started", extra=extra)
        t0 = time.monotonic()
        try:
            yield
            if auto_commit:
                session.commit()
        except DBAPIError as exc:
            if auto_commit:
                session.rollback()
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            translated = translate_db_error(exc, operation)
            logger.error(
                f"{operation}_failed",
                extra={"duration_ms": duration_ms, **extra},
                exc_info=True,
            )
            if translated is exc:
                raise
            raise translated from exc
        except FulfillmentError as exc:
            if auto_commit:
                session.rollback()
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.warning(
                f"{operation}_rejected",
                extra={"duration_ms": duration_ms, "error_code": exc.code, **extra},
            )
            raise
        except Exception:
            if auto_commit:
                session.rollback()
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.error(
                f"{operation}_failed",
                extra={"duration_ms": duration_ms, **extra},
                exc_info=True,
            )
            raise

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(f"{operation}_completed", extra={"duration_ms": duration_ms, **extra})

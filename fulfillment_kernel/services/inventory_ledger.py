"""
InventoryLedger -- sole writer of stock balances and the stock ledger.

Responsibility:
    Owns the authoritative (warehouse, batch) -> {quantity, reserved_quantity}
    state and appends one InventoryTransaction for every physical movement.
    Exposes exactly four mutations: reserve, release, dispatch, receive.

Architecture position:
    Kernel > Services.  Called by the orchestrators in
    ``fulfillment_services``; never commits.

Invariants enforced:
    RESERVATION_BOUNDS -- 0 <= reserved_quantity <= quantity after every
        mutation (checked here before flush, and by DB check constraints).
    LEDGER_RECONCILIATION -- every change to quantity is paired with an
        InventoryTransaction of the same signed amount.
    SINGLE_WRITER -- no other module assigns quantity or reserved_quantity.

Locking discipline:
    Every mutation loads its InventoryRecord with SELECT ... FOR UPDATE and
    ``populate_existing`` so the values it validates are the committed,
    locked values, not a stale identity-map copy.  The lock is held until
    the caller's transaction ends.

Failure modes:
    - InventoryRecordNotFoundError: no row for the pair (reserve, release,
      dispatch, and any movement that would create a row with a decrease).
    - InsufficientCapacityError: reserve beyond available, or a decrease
      that would push quantity below what is reserved.
    - InvalidStateError: release of more than is reserved.
    - ConsistencyViolationError: dispatch of more than is reserved, or any
      post-mutation invariant failure.  Logged at CRITICAL.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment_kernel.db.types import ZERO, positive_quantity, round_quantity, to_quantity
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.exceptions import (
    ConsistencyViolationError,
    InsufficientCapacityError,
    InvalidQuantityError,
    InvalidStateError,
    InventoryRecordNotFoundError,
)
from fulfillment_kernel.invariants import KernelInvariant
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.inventory import (
    InventoryRecord,
    InventoryTransaction,
    InventoryTransactionType,
)
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


@dataclass(frozen=True)
class LedgerCheck:
    """Result of reconciling one InventoryRecord against its transactions."""

    warehouse_id: UUID
    batch_id: UUID
    quantity: Decimal
    reserved_quantity: Decimal
    ledger_sum: Decimal

    @property
    def balanced(self) -> bool:
        return self.quantity == self.ledger_sum

    @property
    def within_bounds(self) -> bool:
        return ZERO <= self.reserved_quantity <= self.quantity


class InventoryLedger(BaseService[InventoryRecord]):
    """
    Reservation-aware stock ledger.

    Contract:
        All four operations run inside the caller's transaction with the
        InventoryRecord row locked.  Quantities are Decimal, normalized to
        ``decimal_places``; floats are rejected.

    Guarantees:
        - reserve/release touch only reserved_quantity and write no ledger
          row (a reservation is not a physical movement).
        - dispatch and receive write exactly one InventoryTransaction whose
          quantity_change equals the change applied to quantity.

    Non-goals:
        - Does not choose batches (FefoAllocator does).
        - Does not commit or roll back.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        decimal_places: int = 2,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._places = decimal_places

    # =========================================================================
    # Row access
    # =========================================================================

    def _select_locked(self, warehouse_id: UUID, batch_id: UUID) -> InventoryRecord | None:
        return self.session.execute(
            select(InventoryRecord)
            .where(
                InventoryRecord.warehouse_id == warehouse_id,
                InventoryRecord.batch_id == batch_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_record(self, warehouse_id: UUID, batch_id: UUID) -> InventoryRecord:
        record = self._select_locked(warehouse_id, batch_id)
        if record is None:
            raise InventoryRecordNotFoundError(warehouse_id, batch_id)
        return record

    def _lock_or_create_record(self, warehouse_id: UUID, batch_id: UUID) -> InventoryRecord:
        """Upsert: lock the row, creating an empty one on first movement."""
        record = self._select_locked(warehouse_id, batch_id)
        if record is not None:
            return record

        # Another transaction may insert the same pair concurrently.
        savepoint = self.session.begin_nested()
        try:
            record = InventoryRecord(
                warehouse_id=warehouse_id,
                batch_id=batch_id,
                quantity=ZERO,
                reserved_quantity=ZERO,
            )
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            logger.debug(
                "inventory_record_created",
                extra={"warehouse_id": str(warehouse_id), "batch_id": str(batch_id)},
            )
            return record
        except IntegrityError:
            logger.debug(
                "inventory_record_race_retry",
                extra={"warehouse_id": str(warehouse_id), "batch_id": str(batch_id)},
            )
            savepoint.rollback()
            return self._lock_record(warehouse_id, batch_id)

    # =========================================================================
    # Invariant checks
    # =========================================================================

    def _check_invariants(self, record: InventoryRecord, operation: str) -> None:
        """Halt the transaction if a mutation left the row out of bounds."""
        problem = None
        if record.quantity < ZERO:
            problem = f"quantity {record.quantity} is negative"
        elif record.reserved_quantity < ZERO:
            problem = f"reserved_quantity {record.reserved_quantity} is negative"
        elif record.reserved_quantity > record.quantity:
            problem = (
                f"reserved_quantity {record.reserved_quantity} exceeds "
                f"quantity {record.quantity}"
            )
        if problem is not None:
            self._violation(
                KernelInvariant.RESERVATION_BOUNDS,
                problem,
                record,
                operation,
            )

    def _violation(
        self,
        invariant: KernelInvariant,
        detail: str,
        record: InventoryRecord,
        operation: str,
    ):
        logger.critical(
            "consistency_violation",
            extra={
                "invariant": invariant.value,
                "operation": operation,
                "detail": detail,
                "warehouse_id": str(record.warehouse_id),
                "batch_id": str(record.batch_id),
                "quantity": str(record.quantity),
                "reserved_quantity": str(record.reserved_quantity),
            },
        )
        raise ConsistencyViolationError(
            invariant.value,
            detail,
            operation=operation,
            warehouse_id=record.warehouse_id,
            batch_id=record.batch_id,
        )

    def _touch(self, record: InventoryRecord) -> None:
        record.updated_at = self._clock.now()

    def _append(
        self,
        record: InventoryRecord,
        transaction_type: InventoryTransactionType,
        quantity_change: Decimal,
        actor_id: UUID,
        reference_id: str | None,
        reason: str | None,
    ) -> InventoryTransaction:
        tx = InventoryTransaction(
            warehouse_id=record.warehouse_id,
            batch_id=record.batch_id,
            transaction_type=transaction_type.value,
            quantity_change=quantity_change,
            reference_id=str(reference_id) if reference_id is not None else None,
            reason=reason,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(tx)
        return tx

    # =========================================================================
    # Mutations
    # =========================================================================

    def reserve(
        self,
        warehouse_id: UUID,
        batch_id: UUID,
        quantity: Decimal,
        reference_id: str | None = None,
    ) -> InventoryRecord:
        """
        Hold ``quantity`` of unreserved stock.

        Preconditions: quantity > 0.
        Postconditions: reserved_quantity increased by quantity.

        Raises:
            InventoryRecordNotFoundError: No stock row for the pair.
            InsufficientCapacityError: quantity exceeds quantity - reserved.
        """
        qty = positive_quantity(quantity, self._places)
        record = self._lock_record(warehouse_id, batch_id)

        available = record.quantity - record.reserved_quantity
        if qty > available:
            logger.warning(
                "inventory_reserve_rejected",
                extra={
                    "warehouse_id": str(warehouse_id),
                    "batch_id": str(batch_id),
                    "requested": str(qty),
                    "available": str(available),
                },
            )
            raise InsufficientCapacityError(warehouse_id, batch_id, qty, available)

        record.reserved_quantity = round_quantity(record.reserved_quantity + qty, self._places)
        self._touch(record)
        self._check_invariants(record, "reserve")
        self.session.flush()

        logger.info(
            "inventory_reserved",
            extra={
                "warehouse_id": str(warehouse_id),
                "batch_id": str(batch_id),
                "quantity": str(qty),
                "reserved_quantity": str(record.reserved_quantity),
                "reference_id": reference_id,
            },
        )
        return record

    def release(
        self,
        warehouse_id: UUID,
        batch_id: UUID,
        quantity: Decimal,
        reference_id: str | None = None,
    ) -> InventoryRecord:
        """
        Return ``quantity`` of reserved stock to available.

        Raises:
            InventoryRecordNotFoundError: No stock row for the pair.
            InvalidStateError: quantity exceeds reserved_quantity.
        """
        qty = positive_quantity(quantity, self._places)
        record = self._lock_record(warehouse_id, batch_id)

        if qty > record.reserved_quantity:
            raise InvalidStateError(
                "InventoryRecord",
                record.id,
                f"cannot release {qty}; only {record.reserved_quantity} reserved",
            )

        record.reserved_quantity = round_quantity(record.reserved_quantity - qty, self._places)
        self._touch(record)
        self._check_invariants(record, "release")
        self.session.flush()

        logger.info(
            "inventory_released",
            extra={
                "warehouse_id": str(warehouse_id),
                "batch_id": str(batch_id),
                "quantity": str(qty),
                "reserved_quantity": str(record.reserved_quantity),
                "reference_id": reference_id,
            },
        )
        return record

    def dispatch(
        self,
        warehouse_id: UUID,
        batch_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        reference_id: str | None = None,
        reason: str = "Order Dispatch",
    ) -> InventoryTransaction:
        """
        Physically remove reserved stock: quantity and reserved both drop.

        Postconditions: one EXPORT transaction with quantity_change = -quantity.

        Raises:
            InventoryRecordNotFoundError: No stock row for the pair.
            ConsistencyViolationError: quantity exceeds reserved_quantity,
                which means a reservation was lost.
        """
        qty = positive_quantity(quantity, self._places)
        record = self._lock_record(warehouse_id, batch_id)

        if qty > record.reserved_quantity:
            self._violation(
                KernelInvariant.RESERVATION_BOUNDS,
                f"dispatch of {qty} exceeds reserved {record.reserved_quantity}",
                record,
                "dispatch",
            )

        record.quantity = round_quantity(record.quantity - qty, self._places)
        record.reserved_quantity = round_quantity(record.reserved_quantity - qty, self._places)
        self._touch(record)
        self._check_invariants(record, "dispatch")
        tx = self._append(
            record,
            InventoryTransactionType.EXPORT,
            -qty,
            actor_id,
            reference_id,
            reason,
        )
        self.session.flush()

        logger.info(
            "inventory_dispatched",
            extra={
                "warehouse_id": str(warehouse_id),
                "batch_id": str(batch_id),
                "quantity": str(qty),
                "remaining_quantity": str(record.quantity),
                "reference_id": reference_id,
            },
        )
        return tx

    def receive(
        self,
        warehouse_id: UUID,
        batch_id: UUID,
        quantity: Decimal,
        transaction_type: InventoryTransactionType,
        actor_id: UUID,
        reference_id: str | None = None,
        reason: str | None = None,
    ) -> InventoryTransaction:
        """
        Apply a physical movement that is not a dispatch.

        IMPORT adds ``quantity`` (creating the row on first movement).
        WASTE removes ``quantity``.  ADJUSTMENT applies the signed
        ``quantity``.  reserved_quantity is never touched.

        Raises:
            InvalidQuantityError: Non-positive import/waste, or zero adjustment.
            InventoryRecordNotFoundError: Decrease on a pair with no row.
            InsufficientCapacityError: Decrease below what is reserved.
        """
        transaction_type = InventoryTransactionType(transaction_type)
        if transaction_type == InventoryTransactionType.EXPORT:
            raise InvalidQuantityError(quantity, "exports go through dispatch()")

        if transaction_type == InventoryTransactionType.ADJUSTMENT:
            change = to_quantity(quantity, self._places)
            if change == ZERO:
                raise InvalidQuantityError(quantity, "adjustment must be non-zero")
        elif transaction_type == InventoryTransactionType.WASTE:
            change = -positive_quantity(quantity, self._places)
        else:
            change = positive_quantity(quantity, self._places)

        if change > ZERO:
            record = self._lock_or_create_record(warehouse_id, batch_id)
        else:
            record = self._lock_record(warehouse_id, batch_id)
            unreserved = record.quantity - record.reserved_quantity
            if -change > unreserved:
                raise InsufficientCapacityError(
                    warehouse_id, batch_id, -change, unreserved
                )

        record.quantity = round_quantity(record.quantity + change, self._places)
        self._touch(record)
        self._check_invariants(record, transaction_type.value)
        tx = self._append(
            record,
            transaction_type,
            change,
            actor_id,
            reference_id,
            reason,
        )
        self.session.flush()

        logger.info(
            "inventory_received",
            extra={
                "warehouse_id": str(warehouse_id),
                "batch_id": str(batch_id),
                "transaction_type": transaction_type.value,
                "quantity_change": str(change),
                "quantity": str(record.quantity),
                "reference_id": reference_id,
            },
        )
        return tx

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def verify_record(self, warehouse_id: UUID, batch_id: UUID) -> LedgerCheck:
        """
        Compare the stored balance with the sum of its ledger rows.

        Read-only; does not lock.

        Raises:
            InventoryRecordNotFoundError: No stock row for the pair.
        """
        record = self.session.execute(
            select(InventoryRecord)
            .where(
                InventoryRecord.warehouse_id == warehouse_id,
                InventoryRecord.batch_id == batch_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise InventoryRecordNotFoundError(warehouse_id, batch_id)

        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryTransaction.quantity_change), 0))
            .where(
                InventoryTransaction.warehouse_id == warehouse_id,
                InventoryTransaction.batch_id == batch_id,
            )
        ).scalar_one()

        return LedgerCheck(
            warehouse_id=warehouse_id,
            batch_id=batch_id,
            quantity=round_quantity(Decimal(record.quantity), self._places),
            reserved_quantity=round_quantity(Decimal(record.reserved_quantity), self._places),
            ledger_sum=round_quantity(Decimal(str(total)), self._places),
        )

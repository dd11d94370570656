"""
fulfillment_services.shipment_dispatch -- Shipment Dispatch & Replacement.

Responsibility:
    Turn a preparing shipment's reservations into physical stock movements
    (finalize_dispatch), record arrival at the store (mark_delivered), swap
    a batch found damaged during picking for fresh FEFO stock
    (report_damaged_batch), and support the picker with a picking list and
    FEFO scan validation.

Architecture position:
    Services -- imperative shell, owns transaction boundaries.

Invariants enforced:
    - finalize_dispatch runs only from preparing; a second call fails with
      InvalidTransitionError before any stock moves.
    - Dispatch consumes exactly the reserved quantity of every item.
    - Replacement is all-or-nothing.  When the replacement stock does not
      cover the damaged quantity the whole transaction rolls back and the
      damaged batch keeps its ShipmentItem and reservation.
    - Replacement never picks a batch already rejected for the same
      shipment and product.

Failure modes:
    - ShipmentNotFoundError, ShipmentItemNotFoundError, BatchNotFoundError.
    - InvalidTransitionError: dispatch from a non-preparing shipment, an
      order that cannot move to delivering, or delivery of a shipment that
      is not in transit.
    - InvalidStateError: replacement on a non-preparing shipment.
    - InsufficientReplacementError.
    - FefoViolationError: scanned batch expires after an earlier one.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_config.schema import EngineSettings
from fulfillment_engines.fefo import FefoCandidate, FefoPick, earliest_candidate
from fulfillment_kernel.db.types import ZERO, round_quantity
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.lifecycles import ORDER_WORKFLOW, SHIPMENT_WORKFLOW
from fulfillment_kernel.domain.workflow import require_transition
from fulfillment_kernel.exceptions import (
    BatchNotFoundError,
    FefoViolationError,
    InsufficientReplacementError,
    InvalidStateError,
    ShipmentItemNotFoundError,
    ShipmentNotFoundError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.batch import Batch
from fulfillment_kernel.models.catalog import Product
from fulfillment_kernel.models.order import Order, OrderStatus
from fulfillment_kernel.models.shipment import (
    Shipment,
    ShipmentBatchRejection,
    ShipmentItem,
    ShipmentStatus,
)
from fulfillment_kernel.selectors.stock_selector import StockSelector
from fulfillment_kernel.services.inventory_ledger import InventoryLedger
from fulfillment_services._boundary import transaction_boundary
from fulfillment_services.allocator import FefoAllocator

logger = get_logger("services.shipment_dispatch")

DISPATCH_REASON = "Order Dispatch"


@dataclass(frozen=True)
class ReplacementResult:
    shipment_id: UUID
    rejected_batch_id: UUID
    product_id: UUID
    quantity: Decimal
    replacements: tuple[FefoPick, ...]


@dataclass(frozen=True)
class PickingLine:
    batch_id: UUID
    batch_code: str
    expiry_date: date
    quantity: Decimal


@dataclass(frozen=True)
class PickingGroup:
    product_id: UUID
    sku: str
    name: str
    base_unit: str
    lines: tuple[PickingLine, ...]

    @property
    def total_quantity(self) -> Decimal:
        return sum((line.quantity for line in self.lines), ZERO)


@dataclass(frozen=True)
class PickingList:
    shipment_id: UUID
    order_id: UUID
    status: str
    groups: tuple[PickingGroup, ...]


class ShipmentDispatchService:
    """
    Contract:
        Mutating methods are one transaction each (commit on success,
        rollback and re-raise on failure) unless ``auto_commit=False``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._ledger = InventoryLedger(session, self._clock, self._settings.quantity_decimal_places)
        self._allocator = FefoAllocator(
            session, self._ledger, decimal_places=self._settings.quantity_decimal_places
        )
        self._auto_commit = auto_commit

    def _lock_shipment(self, shipment_id: UUID) -> Shipment:
        shipment = self._session.execute(
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if shipment is None:
            raise ShipmentNotFoundError(shipment_id)
        return shipment

    def _lock_order(self, order_id: UUID) -> Order:
        return self._session.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

    # =========================================================================
    # Dispatch
    # =========================================================================

    def finalize_dispatch(self, shipment_id: UUID, actor_id: UUID) -> Shipment:
        """
        Ship every reserved item.

        Postconditions:
            - For each item: central quantity and reserved_quantity drop by
              the item quantity; one EXPORT transaction per item.
            - Shipment is in_transit with ship_date = now.
            - Order is delivering.
        """
        with transaction_boundary(
            self._session,
            "shipment_dispatch",
            self._auto_commit,
            actor_id=actor_id,
            shipment_id=shipment_id,
        ):
            shipment = self._lock_shipment(shipment_id)
            require_transition(SHIPMENT_WORKFLOW, shipment.id, shipment.status, ShipmentStatus.IN_TRANSIT)
            order = self._lock_order(shipment.order_id)
            require_transition(ORDER_WORKFLOW, order.id, order.status, OrderStatus.DELIVERING)

            reference = str(shipment.id)
            total = ZERO
            for item in sorted(shipment.items, key=lambda i: str(i.batch_id)):
                self._ledger.dispatch(
                    shipment.from_warehouse_id,
                    item.batch_id,
                    item.quantity,
                    actor_id,
                    reference_id=reference,
                    reason=DISPATCH_REASON,
                )
                total += Decimal(item.quantity)

            now = self._clock.now()
            shipment.status = ShipmentStatus.IN_TRANSIT.value
            shipment.ship_date = now
            shipment.updated_by_id = actor_id
            order.status = OrderStatus.DELIVERING.value
            order.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "shipment_dispatched",
                extra={
                    "order_id": str(order.id),
                    "item_count": len(shipment.items),
                    "total_quantity": str(round_quantity(total, self._settings.quantity_decimal_places)),
                },
            )
        return shipment

    def mark_delivered(self, shipment_id: UUID, actor_id: UUID) -> Shipment:
        """Record the truck's arrival at the store; no stock moves until receipt."""
        with transaction_boundary(
            self._session,
            "shipment_delivery",
            self._auto_commit,
            actor_id=actor_id,
            shipment_id=shipment_id,
        ):
            shipment = self._lock_shipment(shipment_id)
            require_transition(SHIPMENT_WORKFLOW, shipment.id, shipment.status, ShipmentStatus.DELIVERED)

            shipment.status = ShipmentStatus.DELIVERED.value
            shipment.delivered_at = self._clock.now()
            shipment.updated_by_id = actor_id
            self._session.flush()

            logger.info("shipment_delivered", extra={"order_id": str(shipment.order_id)})
        return shipment

    # =========================================================================
    # Damaged batch replacement
    # =========================================================================

    def _rejected_batch_ids(self, shipment_id: UUID, product_id: UUID) -> set[str]:
        rows = self._session.execute(
            select(ShipmentBatchRejection.batch_id).where(
                ShipmentBatchRejection.shipment_id == shipment_id,
                ShipmentBatchRejection.product_id == product_id,
            )
        ).scalars()
        return {str(batch_id) for batch_id in rows}

    def report_damaged_batch(
        self,
        shipment_id: UUID,
        batch_id: UUID,
        actor_id: UUID,
        reason: str = "damaged",
    ) -> ReplacementResult:
        """
        Replace a damaged batch on a preparing shipment with fresh stock.

        Raises:
            InsufficientReplacementError: Replacement stock does not cover
                the damaged quantity.  Nothing changes.
        """
        with transaction_boundary(
            self._session,
            "batch_replacement",
            self._auto_commit,
            actor_id=actor_id,
            shipment_id=shipment_id,
            batch_id=batch_id,
        ):
            shipment = self._lock_shipment(shipment_id)
            if shipment.status != ShipmentStatus.PREPARING.value:
                raise InvalidStateError(
                    "Shipment",
                    shipment_id,
                    f"batches can only be replaced while preparing, not {shipment.status}",
                )

            item = next(
                (i for i in shipment.items if str(i.batch_id) == str(batch_id)),
                None,
            )
            if item is None:
                raise ShipmentItemNotFoundError(shipment_id, batch_id)
            batch = self._session.get(Batch, batch_id)
            if batch is None:
                raise BatchNotFoundError(batch_id)

            warehouse_id = shipment.from_warehouse_id
            product_id = batch.product_id
            quantity = round_quantity(Decimal(item.quantity), self._settings.quantity_decimal_places)
            reference = str(shipment.id)

            excluded = self._rejected_batch_ids(shipment.id, product_id)
            excluded.add(str(batch_id))

            shipment.items.remove(item)
            self._session.flush()
            self._ledger.release(warehouse_id, batch_id, quantity, reference_id=reference)

            allocation = self._allocator.allocate(
                product_id,
                warehouse_id,
                quantity,
                exclude_batch_ids=[UUID(b) for b in excluded],
            )
            if not allocation.is_complete:
                logger.warning(
                    "batch_replacement_failed",
                    extra={
                        "product_id": str(product_id),
                        "required": str(quantity),
                        "replacement_available": str(allocation.allocated),
                    },
                )
                raise InsufficientReplacementError(
                    shipment_id, batch_id, quantity, allocation.allocated
                )

            existing = {str(i.batch_id): i for i in shipment.items}
            for pick in allocation.picks:
                self._ledger.reserve(warehouse_id, pick.batch_id, pick.quantity, reference_id=reference)
                current = existing.get(str(pick.batch_id))
                if current is not None:
                    current.quantity = round_quantity(
                        Decimal(current.quantity) + pick.quantity,
                        self._settings.quantity_decimal_places,
                    )
                else:
                    shipment.items.append(ShipmentItem(batch_id=pick.batch_id, quantity=pick.quantity))

            self._session.add(
                ShipmentBatchRejection(
                    shipment_id=shipment.id,
                    product_id=product_id,
                    batch_id=batch_id,
                    quantity=quantity,
                    reason=reason,
                    rejected_at=self._clock.now(),
                    rejected_by_id=actor_id,
                )
            )
            shipment.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "batch_replaced",
                extra={
                    "product_id": str(product_id),
                    "quantity": str(quantity),
                    "replacement_batches": [str(p.batch_id) for p in allocation.picks],
                    "excluded_count": len(excluded),
                },
            )
            result = ReplacementResult(
                shipment_id=shipment.id,
                rejected_batch_id=batch_id,
                product_id=product_id,
                quantity=quantity,
                replacements=allocation.picks,
            )
        return result

    # =========================================================================
    # Picking support (read-only)
    # =========================================================================

    def picking_list(self, shipment_id: UUID) -> PickingList:
        """Shipment items grouped by product, batches in FEFO order."""
        shipment = self._session.get(Shipment, shipment_id)
        if shipment is None:
            raise ShipmentNotFoundError(shipment_id)

        rows = self._session.execute(
            select(ShipmentItem, Batch, Product)
            .join(Batch, Batch.id == ShipmentItem.batch_id)
            .join(Product, Product.id == Batch.product_id)
            .where(ShipmentItem.shipment_id == shipment_id)
            .order_by(Product.sku, Batch.expiry_date, Batch.id)
        ).all()

        grouped: OrderedDict[str, tuple[Product, list[PickingLine]]] = OrderedDict()
        for item, batch, product in rows:
            _, lines = grouped.setdefault(str(product.id), (product, []))
            lines.append(
                PickingLine(
                    batch_id=batch.id,
                    batch_code=batch.batch_code,
                    expiry_date=batch.expiry_date,
                    quantity=round_quantity(Decimal(item.quantity), self._settings.quantity_decimal_places),
                )
            )

        return PickingList(
            shipment_id=shipment.id,
            order_id=shipment.order_id,
            status=str(getattr(shipment.status, "value", shipment.status)),
            groups=tuple(
                PickingGroup(
                    product_id=product.id,
                    sku=product.sku,
                    name=product.name,
                    base_unit=product.base_unit,
                    lines=tuple(lines),
                )
                for product, lines in grouped.values()
            ),
        )

    def validate_pick(self, warehouse_id: UUID, product_id: UUID, batch_code: str) -> FefoCandidate:
        """
        Check a scanned batch against FEFO.

        A batch with the same expiry as the earliest one is accepted.

        Raises:
            BatchNotFoundError: The code is not a stocked batch of the product
                in this warehouse.
            FefoViolationError: An earlier-expiring batch is on hand.
        """
        stock = StockSelector(self._session, self._settings.quantity_decimal_places)
        positions = [p for p in stock.batch_positions(warehouse_id, product_id) if p.quantity > ZERO]
        candidates = [
            FefoCandidate(
                batch_id=p.batch_id,
                expiry_date=p.expiry_date,
                available=p.quantity,
                batch_code=p.batch_code,
            )
            for p in positions
        ]
        scanned = next((c for c in candidates if c.batch_code == batch_code), None)
        if scanned is None:
            raise BatchNotFoundError(batch_code)

        expected = earliest_candidate(candidates)
        if expected is not None and scanned.expiry_date > expected.expiry_date:
            logger.warning(
                "fefo_violation_scanned",
                extra={
                    "warehouse_id": str(warehouse_id),
                    "product_id": str(product_id),
                    "scanned_batch_code": batch_code,
                    "expected_batch_code": expected.batch_code,
                },
            )
            raise FefoViolationError(batch_code, expected.batch_code or str(expected.batch_id))
        return scanned

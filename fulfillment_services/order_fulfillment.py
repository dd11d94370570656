"""
fulfillment_services.order_fulfillment -- Order Fulfillment Orchestrator.

Responsibility:
    Drive an order through pending -> approved | rejected | cancelled and
    approved -> picking.  Approval allocates every line FEFO against the
    central warehouse, reserves the picks, records quantity_approved and
    creates the order's single shipment.

Architecture position:
    Services -- imperative shell, owns transaction boundaries.  Composes
    the catalog gateway, FefoAllocator and InventoryLedger.

Invariants enforced:
    - Order status changes follow ORDER_WORKFLOW.
    - approve is all-or-nothing: reservations, quantity_approved, the
      status change and the shipment commit together or not at all.
    - A shortfall is reported, never queued; quantity_approved is final.
    - ShipmentItems mirror the reserved (batch, quantity) picks exactly.

Failure modes:
    - OrderNotFoundError, InvalidTransitionError.
    - LowFillRateError: fill rate below ``min_fill_rate`` without confirm.
    - AccessDeniedError: cancel by a store that does not own the order.
    - ProductNotFoundError / InactiveProductError on create_order.

Usage:
    service = OrderFulfillmentService(session, clock=clock)
    order = service.create_order(store_id, date(2026, 2, 1),
                                 [OrderLineRequest(product_id, Decimal("30"))],
                                 actor_id=user_id)
    result = service.approve(order.id, actor_id=manager_id)
    result.lines[0].shortfall
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_config.schema import EngineSettings
from fulfillment_engines.fefo import FefoPick
from fulfillment_kernel.db.types import ZERO, positive_quantity, round_quantity
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.lifecycles import ORDER_WORKFLOW
from fulfillment_kernel.domain.workflow import require_transition
from fulfillment_kernel.exceptions import (
    AccessDeniedError,
    InactiveProductError,
    InvalidQuantityError,
    LowFillRateError,
    OrderNotFoundError,
    ValidationError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.order import Order, OrderItem, OrderStatus
from fulfillment_kernel.models.shipment import Shipment, ShipmentItem, ShipmentStatus
from fulfillment_kernel.selectors.stock_selector import StockSelector
from fulfillment_kernel.services.inventory_ledger import InventoryLedger
from fulfillment_services._boundary import transaction_boundary
from fulfillment_services.allocator import FefoAllocator
from fulfillment_services.catalog import CatalogGateway, SqlCatalog

logger = get_logger("services.order_fulfillment")

ZERO_FULFILLMENT_REASON = "all items out of stock"


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class ApprovalLine:
    product_id: UUID
    requested: Decimal
    approved: Decimal
    picks: tuple[FefoPick, ...] = ()

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.approved


@dataclass(frozen=True)
class ApprovalResult:
    """Outcome of ``approve``.  ``status`` is approved or rejected."""

    order_id: UUID
    status: OrderStatus
    shipment_id: UUID | None
    lines: tuple[ApprovalLine, ...]

    @property
    def total_requested(self) -> Decimal:
        return sum((line.requested for line in self.lines), ZERO)

    @property
    def total_approved(self) -> Decimal:
        return sum((line.approved for line in self.lines), ZERO)

    @property
    def fill_rate(self) -> Decimal:
        return _fill_rate(self.total_approved, self.total_requested)

    @property
    def has_shortfall(self) -> bool:
        return any(line.shortfall > ZERO for line in self.lines)


@dataclass(frozen=True)
class ReviewLine:
    product_id: UUID
    sku: str
    name: str
    requested: Decimal
    available: Decimal

    @property
    def can_fulfill(self) -> bool:
        return self.available >= self.requested

    @property
    def expected_shortfall(self) -> Decimal:
        return max(self.requested - self.available, ZERO)


@dataclass(frozen=True)
class OrderReview:
    order_id: UUID
    store_id: UUID
    status: str
    delivery_date: date
    lines: tuple[ReviewLine, ...]

    @property
    def can_fulfill_all(self) -> bool:
        return all(line.can_fulfill for line in self.lines)


def _fill_rate(approved: Decimal, requested: Decimal) -> Decimal:
    if requested <= ZERO:
        return ZERO
    return (approved / requested).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


class OrderFulfillmentService:
    """
    Contract:
        Each public mutating method is one transaction: commit on success,
        rollback and re-raise on failure (``auto_commit=True``).  With
        ``auto_commit=False`` the caller owns the transaction.

    Non-goals:
        - Authentication and role checks (the caller's transport layer).
        - Backorders: a shortfall is lost once the order is approved.
    """

    def __init__(
        self,
        session: Session,
        catalog: CatalogGateway | None = None,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._catalog = catalog or SqlCatalog(
            session,
            self._settings.central_warehouse_type,
            self._settings.store_warehouse_type,
        )
        self._ledger = InventoryLedger(session, self._clock, self._settings.quantity_decimal_places)
        self._allocator = FefoAllocator(
            session, self._ledger, decimal_places=self._settings.quantity_decimal_places
        )
        self._auto_commit = auto_commit

    def _lock_order(self, order_id: UUID) -> Order:
        order = self._session.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    # =========================================================================
    # Creation
    # =========================================================================

    def create_order(
        self,
        store_id: UUID,
        delivery_date: date,
        items: Sequence[OrderLineRequest],
        actor_id: UUID,
        note: str | None = None,
    ) -> Order:
        """
        Create a pending order.

        Duplicate product lines are merged.  Every product must exist and
        be active; every quantity must be positive.
        """
        with transaction_boundary(self._session, "order_create", self._auto_commit, actor_id=actor_id):
            if not items:
                raise InvalidQuantityError(0, "an order needs at least one item")
            if delivery_date < self._clock.today():
                raise ValidationError(f"delivery_date {delivery_date} is in the past")

            # Resolves the store's warehouse; fails for unknown stores.
            self._catalog.get_store_warehouse(store_id)

            places = self._settings.quantity_decimal_places
            merged: dict[str, tuple[UUID, Decimal]] = {}
            for line in items:
                qty = positive_quantity(line.quantity, places)
                product = self._catalog.get_product(line.product_id)
                if not product.is_active:
                    raise InactiveProductError(line.product_id)
                key = str(product.id)
                if key in merged:
                    qty = merged[key][1] + qty
                merged[key] = (product.id, qty)

            order = Order(
                store_id=store_id,
                status=OrderStatus.PENDING.value,
                delivery_date=delivery_date,
                note=note,
                created_by_id=actor_id,
            )
            for product_id, qty in merged.values():
                order.items.append(OrderItem(product_id=product_id, quantity_requested=qty))
            self._session.add(order)
            self._session.flush()

            logger.info(
                "order_created",
                extra={
                    "order_id": str(order.id),
                    "store_id": str(store_id),
                    "item_count": len(merged),
                    "delivery_date": str(delivery_date),
                },
            )
        return order

    # =========================================================================
    # Approval
    # =========================================================================

    def approve(self, order_id: UUID, actor_id: UUID, confirm: bool = False) -> ApprovalResult:
        """
        Allocate, reserve and create the shipment in one transaction.

        Preconditions:
            - Order is pending.

        Postconditions:
            - Every item has quantity_approved = sum of its picks.
            - Order is approved with exactly one preparing shipment whose
              items mirror the picks; or, when nothing could be allocated
              and ``reject_on_zero_fulfillment`` is set, the order is
              rejected with no reservation and no shipment.

        Raises:
            LowFillRateError: Overall fill rate below ``min_fill_rate`` and
                ``confirm`` is False.  Nothing persists.
        """
        with transaction_boundary(
            self._session,
            "order_approval",
            self._auto_commit,
            actor_id=actor_id,
            order_id=order_id,
        ):
            order = self._lock_order(order_id)
            require_transition(ORDER_WORKFLOW, order.id, order.status, OrderStatus.APPROVED)

            central = self._catalog.get_central_warehouse()
            store_warehouse = self._catalog.get_store_warehouse(order.store_id)
            reference = str(order.id)
            places = self._settings.quantity_decimal_places

            lines: list[ApprovalLine] = []
            for item in sorted(order.items, key=lambda i: str(i.product_id)):
                allocation = self._allocator.allocate_and_reserve(
                    item.product_id,
                    central.id,
                    item.quantity_requested,
                    reference_id=reference,
                )
                item.quantity_approved = round_quantity(allocation.allocated, places)
                lines.append(
                    ApprovalLine(
                        product_id=item.product_id,
                        requested=round_quantity(Decimal(item.quantity_requested), places),
                        approved=item.quantity_approved,
                        picks=allocation.picks,
                    )
                )

            total_requested = sum((line.requested for line in lines), ZERO)
            total_approved = sum((line.approved for line in lines), ZERO)

            if total_approved == ZERO and self._settings.reject_on_zero_fulfillment:
                require_transition(ORDER_WORKFLOW, order.id, order.status, OrderStatus.REJECTED)
                order.status = OrderStatus.REJECTED.value
                order.status_reason = ZERO_FULFILLMENT_REASON
                order.updated_by_id = actor_id
                self._session.flush()
                logger.warning(
                    "order_rejected_zero_fulfillment",
                    extra={"total_requested": str(total_requested)},
                )
                return_value = ApprovalResult(
                    order_id=order.id,
                    status=OrderStatus.REJECTED,
                    shipment_id=None,
                    lines=tuple(lines),
                )
            else:
                fill_rate = _fill_rate(total_approved, total_requested)
                if fill_rate < self._settings.min_fill_rate and not confirm:
                    raise LowFillRateError(order.id, fill_rate, self._settings.min_fill_rate)

                shipment = Shipment(
                    order_id=order.id,
                    from_warehouse_id=central.id,
                    to_warehouse_id=store_warehouse.id,
                    status=ShipmentStatus.PREPARING.value,
                    created_by_id=actor_id,
                )
                for line in lines:
                    for pick in line.picks:
                        shipment.items.append(
                            ShipmentItem(batch_id=pick.batch_id, quantity=pick.quantity)
                        )
                self._session.add(shipment)

                order.status = OrderStatus.APPROVED.value
                order.approved_at = self._clock.now()
                order.updated_by_id = actor_id
                self._session.flush()

                logger.info(
                    "order_approved",
                    extra={
                        "shipment_id": str(shipment.id),
                        "total_requested": str(total_requested),
                        "total_approved": str(total_approved),
                        "fill_rate": str(fill_rate),
                        "shipment_item_count": len(shipment.items),
                        "confirmed": confirm,
                    },
                )
                return_value = ApprovalResult(
                    order_id=order.id,
                    status=OrderStatus.APPROVED,
                    shipment_id=shipment.id,
                    lines=tuple(lines),
                )
        return return_value

    # =========================================================================
    # Reject / cancel / picking
    # =========================================================================

    def reject(self, order_id: UUID, reason: str, actor_id: UUID) -> Order:
        """pending -> rejected.  Nothing was reserved, so no stock moves."""
        with transaction_boundary(
            self._session, "order_rejection", self._auto_commit, actor_id=actor_id, order_id=order_id
        ):
            order = self._lock_order(order_id)
            require_transition(ORDER_WORKFLOW, order.id, order.status, OrderStatus.REJECTED)
            order.status = OrderStatus.REJECTED.value
            order.status_reason = reason
            order.updated_by_id = actor_id
            self._session.flush()
            logger.info("order_rejected", extra={"reason": reason})
        return order

    def cancel(
        self,
        order_id: UUID,
        reason: str,
        actor_id: UUID,
        store_id: UUID | None = None,
    ) -> Order:
        """
        pending -> cancelled.

        When ``store_id`` is given the order must belong to that store.
        """
        with transaction_boundary(
            self._session, "order_cancellation", self._auto_commit, actor_id=actor_id, order_id=order_id
        ):
            order = self._lock_order(order_id)
            if store_id is not None and str(order.store_id) != str(store_id):
                raise AccessDeniedError("Order", order_id, store_id)
            require_transition(ORDER_WORKFLOW, order.id, order.status, OrderStatus.CANCELLED)
            order.status = OrderStatus.CANCELLED.value
            order.status_reason = reason
            order.updated_by_id = actor_id
            self._session.flush()
            logger.info("order_cancelled", extra={"reason": reason})
        return order

    def start_picking(self, order_id: UUID, actor_id: UUID) -> Order:
        with transaction_boundary(
            self._session, "order_picking", self._auto_commit, actor_id=actor_id, order_id=order_id
        ):
            order = self._lock_order(order_id)
            require_transition(ORDER_WORKFLOW, order.id, order.status, OrderStatus.PICKING)
            order.status = OrderStatus.PICKING.value
            order.updated_by_id = actor_id
            self._session.flush()
            logger.info("order_picking_started")
        return order

    # =========================================================================
    # Review (read-only)
    # =========================================================================

    def review(self, order_id: UUID) -> OrderReview:
        """Requested vs currently available per item, without reserving."""
        order = self._session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        central = self._catalog.get_central_warehouse()
        stock = StockSelector(self._session, self._settings.quantity_decimal_places)
        places = self._settings.quantity_decimal_places
        lines = []
        for item in order.items:
            product = self._catalog.get_product(item.product_id)
            lines.append(
                ReviewLine(
                    product_id=item.product_id,
                    sku=product.sku,
                    name=product.name,
                    requested=round_quantity(Decimal(item.quantity_requested), places),
                    available=round_quantity(
                        stock.available_quantity(item.product_id, central.id), places
                    ),
                )
            )
        return OrderReview(
            order_id=order.id,
            store_id=order.store_id,
            status=str(getattr(order.status, "value", order.status)),
            delivery_date=order.delivery_date,
            lines=tuple(lines),
        )

"""
Module: fulfillment_kernel.selectors.reporting_selector
Responsibility: Derived, read-only views over orders, shipments and the
    stock ledger: fulfillment rate, on-time rate, waste, aging inputs, and
    ledger reconciliation.
Architecture position: Kernel > Selectors.  Read-only.  These views are
    not part of any write path.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import func, select

from fulfillment_kernel.db.types import ZERO, round_quantity
from fulfillment_kernel.models.batch import Batch, BatchStatus
from fulfillment_kernel.models.catalog import Product
from fulfillment_kernel.models.inventory import (
    InventoryRecord,
    InventoryTransaction,
    InventoryTransactionType,
)
from fulfillment_kernel.models.order import Order, OrderItem, OrderStatus
from fulfillment_kernel.models.shipment import Shipment
from fulfillment_kernel.selectors.base import BaseSelector

# Orders that went through allocation.
ALLOCATED_ORDER_STATUSES = (
    OrderStatus.APPROVED.value,
    OrderStatus.PICKING.value,
    OrderStatus.DELIVERING.value,
    OrderStatus.COMPLETED.value,
    OrderStatus.CLAIMED.value,
)


def _rate(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == ZERO:
        return ZERO
    return (numerator * Decimal("100") / denominator).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


@dataclass(frozen=True)
class FulfillmentRate:
    order_count: int
    total_requested: Decimal
    total_approved: Decimal

    @property
    def percent(self) -> Decimal:
        return _rate(self.total_approved, self.total_requested)


@dataclass(frozen=True)
class OnTimeRate:
    shipped_count: int
    on_time_count: int

    @property
    def percent(self) -> Decimal:
        return _rate(Decimal(self.on_time_count), Decimal(self.shipped_count))


@dataclass(frozen=True)
class WasteLine:
    transaction_id: UUID
    warehouse_id: UUID
    batch_id: UUID
    batch_code: str
    product_id: UUID
    quantity: Decimal
    reason: str | None
    created_at: datetime


@dataclass(frozen=True)
class WasteReport:
    lines: tuple[WasteLine, ...]

    @property
    def total_quantity(self) -> Decimal:
        return sum((line.quantity for line in self.lines), ZERO)

    def total_by_product(self) -> dict[UUID, Decimal]:
        totals: dict[UUID, Decimal] = {}
        for line in self.lines:
            totals[line.product_id] = totals.get(line.product_id, ZERO) + line.quantity
        return totals


@dataclass(frozen=True)
class AgingRow:
    batch_id: UUID
    batch_code: str
    product_id: UUID
    expiry_date: date
    shelf_life_days: int
    quantity: Decimal


@dataclass(frozen=True)
class ReconciliationRow:
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


class ReportingSelector(BaseSelector[Order]):
    """Aggregate read models."""

    def fulfillment_rate(self, start: date, end: date) -> FulfillmentRate:
        """Approved vs requested over allocated orders due in [start, end]."""
        row = self.session.execute(
            select(
                func.count(func.distinct(Order.id)),
                func.coalesce(func.sum(OrderItem.quantity_requested), 0),
                func.coalesce(func.sum(OrderItem.quantity_approved), 0),
            )
            .join(OrderItem, OrderItem.order_id == Order.id)
            .where(
                Order.status.in_(ALLOCATED_ORDER_STATUSES),
                Order.delivery_date >= start,
                Order.delivery_date <= end,
            )
        ).one()
        return FulfillmentRate(
            order_count=int(row[0]),
            total_requested=round_quantity(Decimal(str(row[1])), self.decimal_places),
            total_approved=round_quantity(Decimal(str(row[2])), self.decimal_places),
        )

    def on_time_rate(self, start: date, end: date) -> OnTimeRate:
        """Shipments whose ship date is on or before the order's delivery date."""
        rows = self.session.execute(
            select(Shipment.ship_date, Order.delivery_date)
            .join(Order, Order.id == Shipment.order_id)
            .where(
                Shipment.ship_date.is_not(None),
                Order.delivery_date >= start,
                Order.delivery_date <= end,
            )
        ).all()
        on_time = sum(1 for ship_date, due in rows if ship_date.date() <= due)
        return OnTimeRate(shipped_count=len(rows), on_time_count=on_time)

    def waste_report(
        self,
        warehouse_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> WasteReport:
        stmt = (
            select(InventoryTransaction, Batch)
            .join(Batch, Batch.id == InventoryTransaction.batch_id)
            .where(InventoryTransaction.transaction_type == InventoryTransactionType.WASTE.value)
            .order_by(InventoryTransaction.created_at, InventoryTransaction.id)
        )
        if warehouse_id is not None:
            stmt = stmt.where(InventoryTransaction.warehouse_id == warehouse_id)
        if start is not None:
            stmt = stmt.where(InventoryTransaction.created_at >= start)
        if end is not None:
            stmt = stmt.where(InventoryTransaction.created_at <= end)

        lines = tuple(
            WasteLine(
                transaction_id=tx.id,
                warehouse_id=tx.warehouse_id,
                batch_id=tx.batch_id,
                batch_code=batch.batch_code,
                product_id=batch.product_id,
                quantity=-Decimal(tx.quantity_change),
                reason=tx.reason,
                created_at=tx.created_at,
            )
            for tx, batch in self.session.execute(stmt).all()
        )
        return WasteReport(lines=lines)

    def aging_rows(self, warehouse_id: UUID) -> list[AgingRow]:
        """Available batches with stock on hand, joined to shelf life."""
        rows = self.session.execute(
            select(InventoryRecord, Batch, Product.shelf_life_days)
            .join(Batch, Batch.id == InventoryRecord.batch_id)
            .join(Product, Product.id == Batch.product_id)
            .where(
                InventoryRecord.warehouse_id == warehouse_id,
                InventoryRecord.quantity > 0,
                Batch.status == BatchStatus.AVAILABLE.value,
            )
            .order_by(Batch.expiry_date, Batch.id)
        ).all()
        return [
            AgingRow(
                batch_id=batch.id,
                batch_code=batch.batch_code,
                product_id=batch.product_id,
                expiry_date=batch.expiry_date,
                shelf_life_days=shelf_life,
                quantity=Decimal(record.quantity),
            )
            for record, batch, shelf_life in rows
        ]

    def reconciliation(self, warehouse_id: UUID | None = None) -> list[ReconciliationRow]:
        """Stored balance vs summed ledger for every stock row."""
        ledger = (
            select(
                InventoryTransaction.warehouse_id.label("warehouse_id"),
                InventoryTransaction.batch_id.label("batch_id"),
                func.sum(InventoryTransaction.quantity_change).label("total"),
            )
            .group_by(InventoryTransaction.warehouse_id, InventoryTransaction.batch_id)
            .subquery()
        )
        stmt = (
            select(InventoryRecord, func.coalesce(ledger.c.total, 0))
            .outerjoin(
                ledger,
                (ledger.c.warehouse_id == InventoryRecord.warehouse_id)
                & (ledger.c.batch_id == InventoryRecord.batch_id),
            )
            .order_by(InventoryRecord.warehouse_id, InventoryRecord.batch_id)
        )
        if warehouse_id is not None:
            stmt = stmt.where(InventoryRecord.warehouse_id == warehouse_id)

        return [
            ReconciliationRow(
                warehouse_id=record.warehouse_id,
                batch_id=record.batch_id,
                quantity=round_quantity(Decimal(record.quantity), self.decimal_places),
                reserved_quantity=round_quantity(Decimal(record.reserved_quantity), self.decimal_places),
                ledger_sum=round_quantity(Decimal(str(total)), self.decimal_places),
            )
            for record, total in self.session.execute(stmt).all()
        ]

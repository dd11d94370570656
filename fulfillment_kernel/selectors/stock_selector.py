"""
Module: fulfillment_kernel.selectors.stock_selector
Responsibility: Read-only stock projections: FEFO candidate rows, available
    quantity per product, stock summary with low-stock flag, and batch
    drill-down.
Architecture position: Kernel > Selectors.  Read-only.

The candidate statement built here is shared with the allocator, which adds
``FOR UPDATE OF inventory_records`` to it.  Both see the same filter and the
same (expiry_date, batch id) order.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, select

from fulfillment_kernel.db.types import ZERO, round_quantity
from fulfillment_kernel.models.batch import Batch, BatchStatus
from fulfillment_kernel.models.catalog import Product
from fulfillment_kernel.models.inventory import InventoryRecord
from fulfillment_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StockPosition:
    """One (warehouse, batch) balance joined to its batch."""

    warehouse_id: UUID
    batch_id: UUID
    batch_code: str
    product_id: UUID
    expiry_date: date
    quantity: Decimal
    reserved_quantity: Decimal

    @property
    def available(self) -> Decimal:
        return self.quantity - self.reserved_quantity


@dataclass(frozen=True)
class ProductStockSummary:
    product_id: UUID
    sku: str
    name: str
    base_unit: str
    quantity: Decimal
    reserved_quantity: Decimal
    min_stock_level: Decimal

    @property
    def available(self) -> Decimal:
        return self.quantity - self.reserved_quantity

    @property
    def is_low_stock(self) -> bool:
        return self.available < self.min_stock_level


def fefo_candidate_statement(product_id: UUID, warehouse_id: UUID) -> Select:
    """
    Stock rows eligible for allocation, in FEFO order.

    Only available batches of the product with unreserved stock > 0.
    """
    return (
        select(InventoryRecord, Batch)
        .join(Batch, Batch.id == InventoryRecord.batch_id)
        .where(
            Batch.product_id == product_id,
            InventoryRecord.warehouse_id == warehouse_id,
            Batch.status == BatchStatus.AVAILABLE.value,
            (InventoryRecord.quantity - InventoryRecord.reserved_quantity) > 0,
        )
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
    )


def _position(record: InventoryRecord, batch: Batch) -> StockPosition:
    return StockPosition(
        warehouse_id=record.warehouse_id,
        batch_id=batch.id,
        batch_code=batch.batch_code,
        product_id=batch.product_id,
        expiry_date=batch.expiry_date,
        quantity=Decimal(record.quantity),
        reserved_quantity=Decimal(record.reserved_quantity),
    )


class StockSelector(BaseSelector[InventoryRecord]):
    """Unlocked stock reads for review screens, picking and reports."""

    def fefo_candidates(self, product_id: UUID, warehouse_id: UUID) -> list[StockPosition]:
        rows = self.session.execute(
            fefo_candidate_statement(product_id, warehouse_id)
        ).all()
        return [_position(record, batch) for record, batch in rows]

    def available_quantity(self, product_id: UUID, warehouse_id: UUID) -> Decimal:
        """Sum of unreserved stock across FEFO candidates."""
        return sum(
            (p.available for p in self.fefo_candidates(product_id, warehouse_id)),
            ZERO,
        )

    def get_position(self, warehouse_id: UUID, batch_id: UUID) -> StockPosition | None:
        row = self.session.execute(
            select(InventoryRecord, Batch)
            .join(Batch, Batch.id == InventoryRecord.batch_id)
            .where(
                InventoryRecord.warehouse_id == warehouse_id,
                InventoryRecord.batch_id == batch_id,
            )
        ).first()
        if row is None:
            return None
        return _position(row[0], row[1])

    def stock_summary(self, warehouse_id: UUID) -> list[ProductStockSummary]:
        """Per-product totals for one warehouse, sorted by SKU."""
        rows = self.session.execute(
            select(
                Product,
                func.coalesce(func.sum(InventoryRecord.quantity), 0),
                func.coalesce(func.sum(InventoryRecord.reserved_quantity), 0),
            )
            .join(Batch, Batch.product_id == Product.id)
            .join(InventoryRecord, InventoryRecord.batch_id == Batch.id)
            .where(InventoryRecord.warehouse_id == warehouse_id)
            .group_by(Product.id)
            .order_by(Product.sku)
        ).all()
        return [
            ProductStockSummary(
                product_id=product.id,
                sku=product.sku,
                name=product.name,
                base_unit=product.base_unit,
                quantity=round_quantity(Decimal(str(qty)), self.decimal_places),
                reserved_quantity=round_quantity(Decimal(str(reserved)), self.decimal_places),
                min_stock_level=Decimal(product.min_stock_level),
            )
            for product, qty, reserved in rows
        ]

    def batch_positions(self, warehouse_id: UUID, product_id: UUID) -> list[StockPosition]:
        """Every batch of the product held by the warehouse, zero rows included."""
        rows = self.session.execute(
            select(InventoryRecord, Batch)
            .join(Batch, Batch.id == InventoryRecord.batch_id)
            .where(
                InventoryRecord.warehouse_id == warehouse_id,
                Batch.product_id == product_id,
            )
            .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        ).all()
        return [_position(record, batch) for record, batch in rows]

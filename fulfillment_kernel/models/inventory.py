"""
Module: fulfillment_kernel.models.inventory
Responsibility: ORM persistence for stock balances and the stock ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One InventoryRecord per (warehouse, batch) (UNIQUE constraint).
    - 0 <= reserved_quantity <= quantity (CHECK constraints, re-verified by
      InventoryLedger after every mutation).
    - InventoryTransaction rows are append-only (db/immutability.py and the
      PostgreSQL triggers).
    - Sum of quantity_change per (warehouse, batch) equals
      InventoryRecord.quantity.  Checked by InventoryLedger.verify_record().

Failure modes:
    - IntegrityError on a check constraint if a write bypasses the ledger.
    - ImmutabilityViolationError on UPDATE/DELETE of a transaction row.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, UUIDString
from fulfillment_kernel.models.batch import Batch


class InventoryTransactionType(str, Enum):
    """Kind of stock movement recorded in the ledger."""

    IMPORT = "import"
    EXPORT = "export"
    WASTE = "waste"
    ADJUSTMENT = "adjustment"


class InventoryRecord(Base):
    """
    Running stock balance for one (warehouse, batch) pair.

    Contract:
        Written exclusively by InventoryLedger.  Rows are never deleted;
        zero-quantity rows remain as history anchors.
    """

    __tablename__ = "inventory_records"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "batch_id", name="uq_inventory_warehouse_batch"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_nonnegative"),
        CheckConstraint("reserved_quantity >= 0", name="ck_inventory_reserved_nonnegative"),
        CheckConstraint("reserved_quantity <= quantity", name="ck_inventory_reserved_le_quantity"),
        Index("idx_inventory_batch", "batch_id"),
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    reserved_quantity: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    batch: Mapped[Batch] = relationship()

    @property
    def available_quantity(self) -> Decimal:
        return self.quantity - self.reserved_quantity

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord wh={self.warehouse_id} batch={self.batch_id} "
            f"qty={self.quantity} reserved={self.reserved_quantity}>"
        )


class InventoryTransaction(Base):
    """
    Append-only stock ledger entry.

    quantity_change is signed: positive for import, negative for export and
    waste, either sign for adjustment.
    """

    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index("idx_inv_tx_warehouse_batch", "warehouse_id", "batch_id"),
        Index("idx_inv_tx_type_created", "transaction_type", "created_at"),
        Index("idx_inv_tx_reference", "reference_id"),
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=False,
    )
    transaction_type: Mapped[InventoryTransactionType] = mapped_column(
        String(20),
        nullable=False,
    )
    quantity_change: Mapped[Decimal] = mapped_column(nullable=False)
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction {self.transaction_type} "
            f"{self.quantity_change} batch={self.batch_id}>"
        )

"""
Module: fulfillment_kernel.models.shipment
Responsibility: ORM persistence for shipments, their batch lines, and the
    batches rejected as damaged while a shipment was being prepared.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Exactly one shipment per order (UNIQUE order_id).
    - One ShipmentItem per (shipment, batch) (UNIQUE constraint); a
      replacement landing on a batch already in the shipment increases
      that row.
    - ShipmentItems change only while the shipment is preparing.
    - Every ShipmentItem quantity is backed by an equal reservation on the
      source warehouse until dispatch.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, TrackedBase, UUIDString
from fulfillment_kernel.models.batch import Batch

if TYPE_CHECKING:
    from fulfillment_kernel.models.order import Order


class ShipmentStatus(str, Enum):
    """Lifecycle status of a shipment.

    Contract: preparing -> in_transit -> [delivered ->] completed;
    preparing -> cancelled.  Receiving accepts in_transit or delivered.
    """

    PREPARING = "preparing"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Shipment(TrackedBase):
    """Goods moving from the central warehouse to one store."""

    __tablename__ = "shipments"
    __table_args__ = (
        UniqueConstraint("order_id", name="uq_shipment_order"),
        Index("idx_shipment_status", "status"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )
    from_warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )
    to_warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )
    status: Mapped[ShipmentStatus] = mapped_column(
        String(20),
        default=ShipmentStatus.PREPARING,
        nullable=False,
    )
    ship_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    order: Mapped["Order"] = relationship(back_populates="shipment")
    items: Mapped[list["ShipmentItem"]] = relationship(
        back_populates="shipment",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Shipment {self.id} {self.status}>"


class ShipmentItem(Base):
    """Quantity of one batch assigned to a shipment."""

    __tablename__ = "shipment_items"
    __table_args__ = (
        UniqueConstraint("shipment_id", "batch_id", name="uq_shipment_item_batch"),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipments.id"),
        nullable=False,
    )
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    shipment: Mapped[Shipment] = relationship(back_populates="items")
    batch: Mapped[Batch] = relationship()


class ShipmentBatchRejection(Base):
    """
    A batch pulled from a preparing shipment as damaged.

    Replacement allocation for the same shipment and product never picks a
    batch recorded here.
    """

    __tablename__ = "shipment_batch_rejections"
    __table_args__ = (
        Index("idx_rejection_shipment_product", "shipment_id", "product_id"),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipments.id"),
        nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    rejected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rejected_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

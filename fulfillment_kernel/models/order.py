"""
Module: fulfillment_kernel.models.order
Responsibility: ORM persistence for store replenishment orders.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Status changes follow ORDER_WORKFLOW (domain/lifecycles.py); the
      orchestrator checks every change with require_transition().
    - OrderItem.quantity_approved is NULL until approval and is written once.
    - One line per product per order (UNIQUE constraint).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from fulfillment_kernel.models.shipment import Shipment


class OrderStatus(str, Enum):
    """Lifecycle status of an order.

    Contract: pending -> {approved, rejected, cancelled};
    approved -> picking -> delivering -> {completed, claimed}.
    No backward transitions.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    PICKING = "picking"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    CLAIMED = "claimed"


class Order(TrackedBase):
    """A store's request for stock from the central warehouse."""

    __tablename__ = "orders"
    __table_args__ = (
        Index("idx_order_store_status", "store_id", "status"),
        Index("idx_order_delivery_date", "delivery_date"),
    )

    store_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        String(20),
        default=OrderStatus.PENDING,
        nullable=False,
    )
    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    note: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    # Reason recorded on reject / cancel
    status_reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.product_id",
    )
    shipment: Mapped["Shipment"] = relationship(
        back_populates="order",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status}>"


class OrderItem(Base):
    """One product line of an order."""

    __tablename__ = "order_items"
    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_order_item_product"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )
    quantity_requested: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_approved: Mapped[Decimal | None] = mapped_column(nullable=True)

    order: Mapped[Order] = relationship(back_populates="items")

    @property
    def shortfall(self) -> Decimal | None:
        if self.quantity_approved is None:
            return None
        return self.quantity_requested - self.quantity_approved

"""
Module: fulfillment_kernel.models.batch
Responsibility: ORM persistence for production batches.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - A batch belongs to exactly one product (NOT NULL FK).
    - batch_code is unique.
    - expiry_date and product_id are fixed at creation (ORM listener in
      db/immutability.py).
    - A batch is deletable only while pending with no ledger history
      (checked by the intake service).
"""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import TrackedBase, UUIDString
from fulfillment_kernel.models.catalog import Product


class BatchStatus(str, Enum):
    """Lifecycle status of a batch.

    Contract: PENDING -> AVAILABLE, one way.  Only AVAILABLE batches are
    allocation candidates.
    """

    PENDING = "pending"
    AVAILABLE = "available"


class Batch(TrackedBase):
    """A lot of one product sharing one expiry date."""

    __tablename__ = "batches"
    __table_args__ = (
        Index("idx_batch_product_expiry", "product_id", "expiry_date"),
        Index("idx_batch_status", "status"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )
    batch_code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    manufactured_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[BatchStatus] = mapped_column(
        String(20),
        default=BatchStatus.PENDING,
        nullable=False,
    )

    product: Mapped[Product] = relationship()

    def __repr__(self) -> str:
        return f"<Batch {self.batch_code} exp={self.expiry_date} {self.status}>"

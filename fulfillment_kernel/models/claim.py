"""
Module: fulfillment_kernel.models.claim
Responsibility: Storage for the claims collaborator: discrepancy claims
    raised against a shipment at or after receipt.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, TrackedBase, UUIDString


class ClaimStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Claim(TrackedBase):
    """A store's claim for goods that arrived missing or damaged."""

    __tablename__ = "claims"
    __table_args__ = (
        Index("idx_claim_shipment", "shipment_id"),
        Index("idx_claim_status", "status"),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipments.id"),
        nullable=False,
    )
    status: Mapped[ClaimStatus] = mapped_column(
        String(20),
        default=ClaimStatus.PENDING,
        nullable=False,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["ClaimItem"]] = relationship(
        back_populates="claim",
        cascade="all, delete-orphan",
    )


class ClaimItem(Base):
    """Per product (and batch) discrepancy on a claim."""

    __tablename__ = "claim_items"

    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("claims.id"),
        nullable=False,
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )
    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("batches.id"),
        nullable=True,
    )
    quantity_missing: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    quantity_damaged: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    evidence_urls: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    claim: Mapped[Claim] = relationship(back_populates="items")

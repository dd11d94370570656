"""
Module: fulfillment_kernel.models.catalog
Responsibility: Storage for the catalog collaborator: products and
    warehouses.  The engine reads these through a CatalogGateway and never
    edits them.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base, UUIDString


class WarehouseType(str, Enum):
    """Which side of the supply chain a warehouse sits on."""

    CENTRAL = "central"
    STORE_INTERNAL = "store_internal"


class Product(Base):
    """A stockable product.  Identity fields are immutable once stocked."""

    __tablename__ = "products"

    sku: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    shelf_life_days: Mapped[int] = mapped_column(Integer, nullable=False)
    min_stock_level: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Product {self.sku}>"


class Warehouse(Base):
    """
    A stock location.

    Central warehouses have no store; every store has exactly one
    store_internal warehouse.
    """

    __tablename__ = "warehouses"
    __table_args__ = (
        Index("idx_warehouse_store", "store_id"),
        Index("idx_warehouse_type", "warehouse_type"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    warehouse_type: Mapped[WarehouseType] = mapped_column(String(20), nullable=False)
    store_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Warehouse {self.name} ({self.warehouse_type})>"

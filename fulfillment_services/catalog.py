"""
fulfillment_services.catalog -- Catalog collaborator boundary.

Responsibility:
    Look up products and warehouses for the orchestrators.  The catalog
    owns product and warehouse lifecycles; this engine only reads them.

Architecture position:
    Services -- gateway.  ``CatalogGateway`` is the protocol the
    orchestrators depend on; ``SqlCatalog`` is the default implementation
    over the ``products`` / ``warehouses`` tables.

Failure modes:
    - ProductNotFoundError, WarehouseNotFoundError.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_kernel.exceptions import ProductNotFoundError, WarehouseNotFoundError
from fulfillment_kernel.models.catalog import Product, Warehouse


class CatalogGateway(Protocol):
    def get_product(self, product_id: UUID) -> Product: ...

    def get_central_warehouse(self) -> Warehouse: ...

    def get_store_warehouse(self, store_id: UUID) -> Warehouse: ...

    def get_warehouse(self, warehouse_id: UUID) -> Warehouse: ...


class SqlCatalog:
    """Catalog reads from the local tables."""

    def __init__(
        self,
        session: Session,
        central_warehouse_type: str = "central",
        store_warehouse_type: str = "store_internal",
    ):
        self._session = session
        self._central_type = central_warehouse_type
        self._store_type = store_warehouse_type

    def get_product(self, product_id: UUID) -> Product:
        product = self._session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def get_warehouse(self, warehouse_id: UUID) -> Warehouse:
        warehouse = self._session.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise WarehouseNotFoundError(warehouse_id)
        return warehouse

    def get_central_warehouse(self) -> Warehouse:
        warehouse = self._session.execute(
            select(Warehouse)
            .where(Warehouse.warehouse_type == self._central_type)
            .order_by(Warehouse.name, Warehouse.id)
            .limit(1)
        ).scalar_one_or_none()
        if warehouse is None:
            raise WarehouseNotFoundError(self._central_type)
        return warehouse

    def get_store_warehouse(self, store_id: UUID) -> Warehouse:
        warehouse = self._session.execute(
            select(Warehouse)
            .where(
                Warehouse.warehouse_type == self._store_type,
                Warehouse.store_id == store_id,
            )
            .limit(1)
        ).scalar_one_or_none()
        if warehouse is None:
            raise WarehouseNotFoundError(f"{self._store_type}:{store_id}")
        return warehouse

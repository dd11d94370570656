"""SQLAlchemy ORM models for the fulfillment kernel."""

from fulfillment_kernel.models.batch import Batch, BatchStatus
from fulfillment_kernel.models.catalog import Product, Warehouse, WarehouseType
from fulfillment_kernel.models.claim import Claim, ClaimItem, ClaimStatus
from fulfillment_kernel.models.inventory import (
    InventoryRecord,
    InventoryTransaction,
    InventoryTransactionType,
)
from fulfillment_kernel.models.order import Order, OrderItem, OrderStatus
from fulfillment_kernel.models.shipment import (
    Shipment,
    ShipmentBatchRejection,
    ShipmentItem,
    ShipmentStatus,
)

__all__ = [
    "Batch",
    "BatchStatus",
    "Claim",
    "ClaimItem",
    "ClaimStatus",
    "InventoryRecord",
    "InventoryTransaction",
    "InventoryTransactionType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Product",
    "Shipment",
    "ShipmentBatchRejection",
    "ShipmentItem",
    "ShipmentStatus",
    "Warehouse",
    "WarehouseType",
]

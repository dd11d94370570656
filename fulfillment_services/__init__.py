"""
Fulfillment services: orchestrators that own transaction boundaries.

Each public mutating operation is one database transaction.  Kernel
services below this layer only flush.
"""

from fulfillment_services.allocator import FefoAllocator
from fulfillment_services.catalog import CatalogGateway, SqlCatalog
from fulfillment_services.claims import (
    ClaimService,
    ClaimsGateway,
    Discrepancy,
    ManualClaimLine,
    SqlClaimsGateway,
)
from fulfillment_services.intake import StockIntakeService
from fulfillment_services.order_fulfillment import (
    ApprovalLine,
    ApprovalResult,
    OrderFulfillmentService,
    OrderLineRequest,
    OrderReview,
)
from fulfillment_services.receiving import ReceivingResult, ReceivingService
from fulfillment_services.reporting import ReportingService
from fulfillment_services.retry import run_with_retry, translate_db_error
from fulfillment_services.shipment_dispatch import (
    PickingList,
    ReplacementResult,
    ShipmentDispatchService,
)

__all__ = [
    "ApprovalLine",
    "ApprovalResult",
    "CatalogGateway",
    "ClaimService",
    "ClaimsGateway",
    "Discrepancy",
    "FefoAllocator",
    "ManualClaimLine",
    "OrderFulfillmentService",
    "OrderLineRequest",
    "OrderReview",
    "PickingList",
    "ReceivingResult",
    "ReceivingService",
    "ReplacementResult",
    "ReportingService",
    "ShipmentDispatchService",
    "SqlCatalog",
    "SqlClaimsGateway",
    "StockIntakeService",
    "run_with_retry",
    "translate_db_error",
]

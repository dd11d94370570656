"""Kernel write services.  Flush only; callers own the transaction."""

from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.inventory_ledger import InventoryLedger, LedgerCheck

__all__ = [
    "BaseService",
    "InventoryLedger",
    "LedgerCheck",
]

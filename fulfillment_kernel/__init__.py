"""
Fulfillment Kernel

Inventory allocation and fulfillment core for central-kitchen to store
replenishment:
- Quantities by (warehouse, batch) with reservations
- Append-only stock transaction ledger
- Pessimistic row locking for every stock mutation
- Order and shipment state machines
"""

__version__ = "0.1.0"

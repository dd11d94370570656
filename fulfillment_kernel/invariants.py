"""
Kernel Invariants Contract.

These invariants are structural law for stock. No EngineSettings value may
switch them off. This module declares them; enforcement lives in
InventoryLedger, the inventory_records check constraints, the immutability
listeners and the FefoAllocator's locked candidate query.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    RESERVATION_BOUNDS = "reservation_bounds"
    """0 <= reserved_quantity <= quantity for every InventoryRecord at every
    committed state. Checked by InventoryLedger after each mutation and by
    DB check constraints."""

    LEDGER_RECONCILIATION = "ledger_reconciliation"
    """The sum of InventoryTransaction.quantity_change for a
    (warehouse, batch) equals InventoryRecord.quantity."""

    APPEND_ONLY_LEDGER = "append_only_ledger"
    """Inventory transactions are never updated or deleted
    (fulfillment_kernel.db.immutability)."""

    LOCKED_ALLOCATION = "locked_allocation"
    """Candidate rows are locked FOR UPDATE before any reservation is
    applied, so concurrent approvals cannot oversell."""

    SINGLE_WRITER = "single_writer"
    """InventoryRecord quantities change only through InventoryLedger."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "fulfillment_services",
    "fulfillment_config",
)

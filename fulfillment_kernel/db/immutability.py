"""
ORM-Level Append-Only Enforcement for the stock ledger.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here reject any change to an
InventoryTransaction row:

    session.flush()
         |
         v
    [before_update] --> _check_inventory_transaction_update() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_inventory_transaction_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

On PostgreSQL, db/sql/01_inventory_transaction.sql installs triggers with
the same rule for writes that bypass the ORM (bulk UPDATE, psql).

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                | When Immutable | Why
----------------------|----------------|---------------------------------------
InventoryTransaction  | ALWAYS         | Sum of changes must equal on-hand stock
Batch (structural)    | ALWAYS         | FEFO order depends on expiry_date

InventoryRecord is deliberately NOT protected: it is the mutable running
balance, written only by InventoryLedger.  Batch status may still move
from pending to available; only BATCH_STRUCTURAL_FIELDS are frozen.
"""

from sqlalchemy import event

from fulfillment_kernel.exceptions import ImmutabilityViolationError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

BATCH_STRUCTURAL_FIELDS = ("expiry_date", "product_id")


def _check_inventory_transaction_update(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "InventoryTransaction",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="InventoryTransaction",
        entity_id=str(target.id),
        reason="Inventory transactions are append-only and cannot be modified",
    )


def _check_inventory_transaction_delete(mapper, connection, target):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "InventoryTransaction",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="InventoryTransaction",
        entity_id=str(target.id),
        reason="Inventory transactions cannot be deleted",
    )


def _check_batch_structural_immutability(mapper, connection, target):
    """Reject edits to a batch's expiry date or product after creation."""
    from sqlalchemy.orm.attributes import get_history

    changed = [
        field for field in BATCH_STRUCTURAL_FIELDS if get_history(target, field).has_changes()
    ]
    if not changed:
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Batch",
            "entity_id": str(target.id),
            "operation": "UPDATE",
            "fields": changed,
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Batch",
        entity_id=str(target.id),
        reason=f"Cannot modify structural field(s) {changed} of an existing batch",
    )


def register_immutability_listeners():
    """
    Register append-only enforcement listeners.

    Idempotent.  Call during application initialization, after models are
    imported.
    """
    from fulfillment_kernel.models.batch import Batch
    from fulfillment_kernel.models.inventory import InventoryTransaction

    for target, event_name, fn in (
        (InventoryTransaction, "before_update", _check_inventory_transaction_update),
        (InventoryTransaction, "before_delete", _check_inventory_transaction_delete),
        (Batch, "before_update", _check_batch_structural_immutability),
    ):
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove append-only enforcement listeners.

    WARNING: Only use this in tests that must write a corrupt ledger to
    verify that reconciliation detects it.
    """
    from fulfillment_kernel.models.batch import Batch
    from fulfillment_kernel.models.inventory import InventoryTransaction

    _safe_remove_listener(Batch, "before_update", _check_batch_structural_immutability)
    _safe_remove_listener(
        InventoryTransaction, "before_update", _check_inventory_transaction_update
    )
    _safe_remove_listener(
        InventoryTransaction, "before_delete", _check_inventory_transaction_delete
    )


def listeners_registered() -> bool:
    from fulfillment_kernel.models.batch import Batch
    from fulfillment_kernel.models.inventory import InventoryTransaction

    return event.contains(
        InventoryTransaction, "before_update", _check_inventory_transaction_update
    ) and event.contains(Batch, "before_update", _check_batch_structural_immutability)

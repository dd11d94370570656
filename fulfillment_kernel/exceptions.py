"""
Typed Exception Hierarchy for the Fulfillment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the fulfillment engine branch on what went wrong: an order in the
wrong state is surfaced to the user, a serialization conflict is retried, a
broken ledger invariant halts everything. Branching on message text is
fragile, so every error here:
  1. Has its own class (catch by type, not message)
  2. Carries a class-level CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (order id, batch id, quantities)

Example - WRONG way:
    try:
        orchestrator.approve(order_id, actor_id)
    except Exception as e:
        if "pending" in str(e):
            ...

Example - RIGHT way:
    try:
        orchestrator.approve(order_id, actor_id)
    except InvalidTransitionError as e:
        api_response(code=e.code, current=e.from_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FulfillmentError (base)
    |
    +-- NotFoundError
    |   +-- OrderNotFoundError
    |   +-- ShipmentNotFoundError
    |   +-- ShipmentItemNotFoundError
    |   +-- BatchNotFoundError
    |   +-- WarehouseNotFoundError
    |   +-- ProductNotFoundError
    |   +-- InventoryRecordNotFoundError
    |
    +-- InvalidTransitionError
    +-- InvalidStateError
    |
    +-- StockError
    |   +-- InsufficientCapacityError
    |   +-- InsufficientReplacementError
    |
    +-- ConsistencyViolationError
    |
    +-- ConcurrencyError
    |   +-- ConflictRetryableError
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- ReceivingValidationError
    |   +-- InactiveProductError
    |   +-- LowFillRateError
    |   +-- FefoViolationError
    |
    +-- AccessDeniedError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                      | When Raised                               | Retry?
--------------------------|-------------------------------------------|-------
*_NOT_FOUND               | Referenced entity does not exist          | No
INVALID_TRANSITION        | Operation not allowed from current status | No
INVALID_STATE             | Release > reserved, batch not deletable   | No
INSUFFICIENT_CAPACITY     | Reserve/withdraw beyond available stock   | No
INSUFFICIENT_REPLACEMENT  | Damaged batch cannot be fully replaced    | No
CONSISTENCY_VIOLATION     | Ledger invariant broken (bug/missed lock) | Never
CONFLICT_RETRYABLE        | Serialization failure or deadlock         | Yes
VALIDATION_ERROR family   | Bad input at an operation boundary        | No
ACCESS_DENIED             | Caller's store does not own the resource  | No
IMMUTABILITY_VIOLATION    | UPDATE/DELETE of a ledger transaction     | No

Shortfall during initial allocation is NOT an exception. It is reported as
data on the approval result.

===============================================================================
"""

from decimal import Decimal


class FulfillmentError(Exception):
    """
    Base exception for all fulfillment errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FULFILLMENT_ERROR"


# Lookup failures


class NotFoundError(FulfillmentError):
    """Base exception for a referenced entity that does not exist."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"
    entity_type = "Order"


class ShipmentNotFoundError(NotFoundError):
    code: str = "SHIPMENT_NOT_FOUND"
    entity_type = "Shipment"


class ShipmentItemNotFoundError(NotFoundError):
    """The batch is not part of the shipment."""

    code: str = "SHIPMENT_ITEM_NOT_FOUND"
    entity_type = "ShipmentItem"

    def __init__(self, shipment_id, batch_id):
        self.shipment_id = str(shipment_id)
        self.batch_id = str(batch_id)
        super().__init__(f"{shipment_id}/{batch_id}")


class BatchNotFoundError(NotFoundError):
    code: str = "BATCH_NOT_FOUND"
    entity_type = "Batch"


class WarehouseNotFoundError(NotFoundError):
    code: str = "WAREHOUSE_NOT_FOUND"
    entity_type = "Warehouse"


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity_type = "Product"


class ClaimNotFoundError(NotFoundError):
    code: str = "CLAIM_NOT_FOUND"
    entity_type = "Claim"


class InventoryRecordNotFoundError(NotFoundError):
    """No stock row exists for the (warehouse, batch) pair."""

    code: str = "INVENTORY_RECORD_NOT_FOUND"
    entity_type = "InventoryRecord"

    def __init__(self, warehouse_id, batch_id):
        self.warehouse_id = str(warehouse_id)
        self.batch_id = str(batch_id)
        super().__init__(f"warehouse={warehouse_id} batch={batch_id}")


# State machine errors


class InvalidTransitionError(FulfillmentError):
    """
    Operation attempted from a status that does not permit it.

    Raised before any side effect, so the caller observes no partial change.
    """

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id,
        from_status: str,
        to_status: str,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"{entity_type} {entity_id} cannot move from "
            f"'{from_status}' to '{to_status}'"
        )


class InvalidStateError(FulfillmentError):
    """Operation is not meaningful for the entity's current data."""

    code: str = "INVALID_STATE"

    def __init__(self, entity_type: str, entity_id, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(f"Invalid state on {entity_type} {entity_id}: {reason}")


# Stock errors


class StockError(FulfillmentError):
    """Base exception for stock availability errors."""

    code: str = "STOCK_ERROR"


class InsufficientCapacityError(StockError):
    """Not enough unreserved stock on a (warehouse, batch) pair."""

    code: str = "INSUFFICIENT_CAPACITY"

    def __init__(
        self,
        warehouse_id,
        batch_id,
        requested: Decimal,
        available: Decimal,
    ):
        self.warehouse_id = str(warehouse_id)
        self.batch_id = str(batch_id)
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for batch {batch_id} in warehouse "
            f"{warehouse_id}: requested {requested}, available {available}"
        )


class InsufficientReplacementError(StockError):
    """
    A damaged batch could not be replaced in full.

    Replacement is all-or-nothing; the shipment keeps its original
    reservation when this is raised.
    """

    code: str = "INSUFFICIENT_REPLACEMENT"

    def __init__(
        self,
        shipment_id,
        batch_id,
        required: Decimal,
        available: Decimal,
    ):
        self.shipment_id = str(shipment_id)
        self.batch_id = str(batch_id)
        self.required = required
        self.available = available
        super().__init__(
            f"Cannot replace batch {batch_id} on shipment {shipment_id}: "
            f"required {required}, replacement stock {available}"
        )


# Invariant failures


class ConsistencyViolationError(FulfillmentError):
    """
    A ledger invariant failed after a mutation.

    Indicates a bug or a missed lock. Never retried, never corrected.
    """

    code: str = "CONSISTENCY_VIOLATION"

    def __init__(self, invariant: str, detail: str, **context):
        self.invariant = invariant
        self.detail = detail
        self.context = {k: str(v) for k, v in context.items()}
        super().__init__(f"Consistency violation [{invariant}]: {detail}")


# Concurrency errors


class ConcurrencyError(FulfillmentError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictRetryableError(ConcurrencyError):
    """
    The database aborted the transaction (serialization failure or deadlock).

    The whole operation may be retried from scratch.
    """

    code: str = "CONFLICT_RETRYABLE"

    def __init__(self, operation: str, sqlstate: str | None = None):
        self.operation = operation
        self.sqlstate = sqlstate
        super().__init__(
            f"Retryable conflict during {operation}"
            + (f" (SQLSTATE {sqlstate})" if sqlstate else "")
        )


# Input validation


class ValidationError(FulfillmentError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Quantity is not a positive Decimal (floats are always rejected)."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, value, reason: str):
        self.value = repr(value)
        self.reason = reason
        super().__init__(f"Invalid quantity {value!r}: {reason}")


class ReceivingValidationError(ValidationError):
    """Reported receipt quantities are inconsistent."""

    code: str = "RECEIVING_VALIDATION"

    def __init__(self, batch_id, reason: str):
        self.batch_id = str(batch_id)
        self.reason = reason
        super().__init__(f"Invalid receipt for batch {batch_id}: {reason}")


class InactiveProductError(ValidationError):
    code: str = "INACTIVE_PRODUCT"

    def __init__(self, product_id):
        self.product_id = str(product_id)
        super().__init__(f"Product is inactive: {product_id}")


class LowFillRateError(ValidationError):
    """
    Allocation would fill less than the configured minimum of the order.

    Approval must be re-issued with confirm=True to accept it.
    """

    code: str = "LOW_FILL_RATE"

    def __init__(self, order_id, fill_rate: Decimal, minimum: Decimal):
        self.order_id = str(order_id)
        self.fill_rate = fill_rate
        self.minimum = minimum
        super().__init__(
            f"Order {order_id} fill rate {fill_rate} is below {minimum}; "
            "confirm to approve anyway"
        )


class FefoViolationError(ValidationError):
    """A scanned batch is not the earliest-expiring available batch."""

    code: str = "FEFO_VIOLATION"

    def __init__(self, scanned_batch_code: str, expected_batch_code: str):
        self.scanned_batch_code = scanned_batch_code
        self.expected_batch_code = expected_batch_code
        super().__init__(
            f"Batch {scanned_batch_code} violates FEFO; "
            f"pick {expected_batch_code} first"
        )


# Access


class AccessDeniedError(FulfillmentError):
    """The caller's store does not own the resource."""

    code: str = "ACCESS_DENIED"

    def __init__(self, entity_type: str, entity_id, store_id):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.store_id = str(store_id)
        super().__init__(
            f"Store {store_id} may not access {entity_type} {entity_id}"
        )


# Append-only ledger


class ImmutabilityViolationError(FulfillmentError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )

"""
Fulfillment Workflows.

State machines for orders, shipments and batches.  Transitions are
one-way; there is no path back to an earlier state.
"""

from fulfillment_kernel.domain.workflow import Guard, Transition, Workflow
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycles")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

STOCK_ALLOCATED = Guard(
    name="stock_allocated",
    description="At least one order item received an allocation",
)

STORE_OWNS_ORDER = Guard(
    name="store_owns_order",
    description="Caller's store placed the order",
)

ALL_ITEMS_RESERVED = Guard(
    name="all_items_reserved",
    description="Every shipment item holds a matching reservation",
)

logger.info(
    "fulfillment_workflow_guards_defined",
    extra={
        "guards": [
            STOCK_ALLOCATED.name,
            STORE_OWNS_ORDER.name,
            ALL_ITEMS_RESERVED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Order Workflow
# -----------------------------------------------------------------------------

ORDER_WORKFLOW = Workflow(
    name="Order",
    description="Store replenishment order lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "rejected",
        "cancelled",
        "picking",
        "delivering",
        "completed",
        "claimed",
    ),
    transitions=(
        Transition("pending", "approved", action="approve", guard=STOCK_ALLOCATED, moves_stock=True),
        Transition("pending", "rejected", action="reject"),
        Transition("pending", "cancelled", action="cancel", guard=STORE_OWNS_ORDER),
        Transition("approved", "picking", action="start_picking"),
        # Dispatch may skip the explicit picking step.
        Transition("approved", "delivering", action="dispatch", moves_stock=True),
        Transition("picking", "delivering", action="dispatch", moves_stock=True),
        Transition("delivering", "completed", action="receive", moves_stock=True),
        Transition("delivering", "claimed", action="receive_with_claim", moves_stock=True),
        Transition("completed", "claimed", action="open_claim"),
    ),
    terminal_states=("rejected", "cancelled", "claimed"),
)

logger.info(
    "order_workflow_registered",
    extra={
        "workflow_name": ORDER_WORKFLOW.name,
        "state_count": len(ORDER_WORKFLOW.states),
        "transition_count": len(ORDER_WORKFLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Shipment Workflow
# -----------------------------------------------------------------------------

SHIPMENT_WORKFLOW = Workflow(
    name="Shipment",
    description="Central warehouse to store shipment",
    initial_state="preparing",
    states=("preparing", "in_transit", "delivered", "completed", "cancelled"),
    transitions=(
        Transition("preparing", "in_transit", action="dispatch", guard=ALL_ITEMS_RESERVED, moves_stock=True),
        Transition("preparing", "cancelled", action="cancel"),
        Transition("in_transit", "delivered", action="mark_delivered"),
        Transition("in_transit", "completed", action="receive", moves_stock=True),
        Transition("delivered", "completed", action="receive", moves_stock=True),
    ),
    terminal_states=("completed", "cancelled"),
)

logger.info(
    "shipment_workflow_registered",
    extra={
        "workflow_name": SHIPMENT_WORKFLOW.name,
        "state_count": len(SHIPMENT_WORKFLOW.states),
        "transition_count": len(SHIPMENT_WORKFLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Batch Workflow
# -----------------------------------------------------------------------------

BATCH_WORKFLOW = Workflow(
    name="Batch",
    description="Batch intake: pending until its receipt is completed",
    initial_state="pending",
    states=("pending", "available"),
    transitions=(
        Transition("pending", "available", action="receive", moves_stock=True),
    ),
    terminal_states=("available",),
)

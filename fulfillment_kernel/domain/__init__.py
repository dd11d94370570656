"""
Pure domain layer.

Value objects and state machine definitions with NO dependencies on the
ORM, the database, or I/O (SystemClock excepted).
"""

from fulfillment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fulfillment_kernel.domain.workflow import (
    Guard,
    Transition,
    Workflow,
    require_transition,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
    "require_transition",
]

"""Database layer - engine, base classes, types."""

from fulfillment_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from fulfillment_kernel.db.engine import create_tables, get_engine, get_session
from fulfillment_kernel.db.types import Quantity, ShortCode, round_quantity

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Quantity",
    "ShortCode",
    "round_quantity",
]

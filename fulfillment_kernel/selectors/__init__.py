"""Read-only selectors (query side)."""

from fulfillment_kernel.selectors.base import BaseSelector
from fulfillment_kernel.selectors.reporting_selector import ReportingSelector
from fulfillment_kernel.selectors.stock_selector import (
    StockSelector,
    fefo_candidate_statement,
)

__all__ = [
    "BaseSelector",
    "ReportingSelector",
    "StockSelector",
    "fefo_candidate_statement",
]

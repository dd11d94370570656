"""
Module: fulfillment_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by
    ``fulfillment_services``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import fulfillment_kernel (types, exceptions, logging) and sibling
    engine modules.  MUST NOT import fulfillment_services.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.
"""

from fulfillment_engines.aging import (
    AgedBatch,
    AgingInput,
    AgingReport,
    ShelfLifeAgingCalculator,
    ShelfLifeBucket,
)
from fulfillment_engines.fefo import (
    FefoAllocation,
    FefoCandidate,
    FefoEngine,
    FefoPick,
    allocate_fefo,
    earliest_candidate,
)
from fulfillment_engines.receiving import (
    ReceiptOutcome,
    ReceiptReport,
    ReceivingCalculator,
    ShippedLine,
    compute_receipt_line,
)
from fulfillment_engines.tracer import traced_engine

__all__ = [
    "AgedBatch",
    "AgingInput",
    "AgingReport",
    "ShelfLifeAgingCalculator",
    "ShelfLifeBucket",
    "FefoAllocation",
    "FefoCandidate",
    "FefoEngine",
    "FefoPick",
    "allocate_fefo",
    "earliest_candidate",
    "ReceiptOutcome",
    "ReceiptReport",
    "ReceivingCalculator",
    "ShippedLine",
    "compute_receipt_line",
    "traced_engine",
]

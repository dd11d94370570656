"""
Module: fulfillment_engines.receiving
Responsibility:
    Per-line receipt arithmetic for store-side receiving: how much good
    stock to book, how much is missing, how much arrived damaged, and
    whether the line is a discrepancy the claims side must hear about.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - good = actual - damaged
    - missing = max(0, shipped - actual)
    - 0 <= damaged <= actual, actual >= 0
    - Decimal-only arithmetic.

Failure modes:
    - ReceivingValidationError on negative quantities or damaged > actual.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from fulfillment_engines.tracer import traced_engine
from fulfillment_kernel.db.types import ZERO, to_quantity
from fulfillment_kernel.exceptions import ReceivingValidationError


@dataclass(frozen=True)
class ReceiptReport:
    """What the store says arrived for one batch."""

    batch_id: UUID
    actual_quantity: Decimal
    damaged_quantity: Decimal = ZERO
    evidence_urls: tuple[str, ...] = ()


@dataclass(frozen=True)
class ShippedLine:
    batch_id: UUID
    product_id: UUID
    shipped_quantity: Decimal


@dataclass(frozen=True)
class ReceiptOutcome:
    """Computed result for one shipped line."""

    batch_id: UUID
    product_id: UUID
    shipped_quantity: Decimal
    actual_quantity: Decimal
    damaged_quantity: Decimal
    good_quantity: Decimal
    missing_quantity: Decimal
    evidence_urls: tuple[str, ...] = field(default=())

    @property
    def has_discrepancy(self) -> bool:
        return self.missing_quantity > ZERO or self.damaged_quantity > ZERO

    def describe(self) -> str:
        parts = []
        if self.missing_quantity > ZERO:
            parts.append(f"Missing: {self.missing_quantity}")
        if self.damaged_quantity > ZERO:
            parts.append(f"Damaged: {self.damaged_quantity}")
        return ", ".join(parts)


def compute_receipt_line(
    line: ShippedLine,
    report: ReceiptReport | None,
    decimal_places: int = 2,
) -> ReceiptOutcome:
    """
    Apply the receipt formula to one shipped line.

    An unreported line is received in full with no damage.
    """
    shipped = to_quantity(line.shipped_quantity, decimal_places)
    if report is None:
        actual, damaged, evidence = shipped, ZERO, ()
    else:
        actual = to_quantity(report.actual_quantity, decimal_places)
        damaged = to_quantity(report.damaged_quantity, decimal_places)
        evidence = tuple(report.evidence_urls)

    if actual < ZERO:
        raise ReceivingValidationError(line.batch_id, "actual quantity is negative")
    if damaged < ZERO:
        raise ReceivingValidationError(line.batch_id, "damaged quantity is negative")
    if damaged > actual:
        raise ReceivingValidationError(
            line.batch_id,
            f"damaged quantity {damaged} exceeds actual quantity {actual}",
        )

    return ReceiptOutcome(
        batch_id=line.batch_id,
        product_id=line.product_id,
        shipped_quantity=shipped,
        actual_quantity=actual,
        damaged_quantity=damaged,
        good_quantity=actual - damaged,
        missing_quantity=max(shipped - actual, ZERO),
        evidence_urls=evidence,
    )


class ReceivingCalculator:
    """Batch of receipt computations for one shipment."""

    @traced_engine("receiving", "1.0")
    def reconcile(
        self,
        shipped: Sequence[ShippedLine],
        reports: Sequence[ReceiptReport],
        decimal_places: int = 2,
    ) -> tuple[ReceiptOutcome, ...]:
        """
        Match reports to shipped lines by batch id.

        Raises:
            ReceivingValidationError: A report names a batch not in the
                shipment, a batch is reported twice, or a line is invalid.
        """
        by_batch: dict[str, ReceiptReport] = {}
        shipped_ids = {str(line.batch_id) for line in shipped}
        for report in reports:
            key = str(report.batch_id)
            if key not in shipped_ids:
                raise ReceivingValidationError(report.batch_id, "batch is not part of this shipment")
            if key in by_batch:
                raise ReceivingValidationError(report.batch_id, "batch reported more than once")
            by_batch[key] = report

        return tuple(
            compute_receipt_line(line, by_batch.get(str(line.batch_id)), decimal_places)
            for line in shipped
        )

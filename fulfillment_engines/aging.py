"""
Module: fulfillment_engines.aging
Responsibility:
    Classify batches by remaining shelf life into fresh / warning / critical
    / expired buckets for the aging report.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The as-of date is passed
    in; this module never reads the clock.

Invariants enforced:
    - remaining_percent = days_remaining / shelf_life_days * 100, floored at 0.
    - Bucket thresholds: critical <= critical_percent < warning <=
      warning_percent < fresh.  Expired when days_remaining < 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Sequence
from uuid import UUID

from fulfillment_engines.tracer import traced_engine

HUNDRED = Decimal("100")


class ShelfLifeBucket(str, Enum):
    FRESH = "fresh"
    WARNING = "warning"
    CRITICAL = "critical"
    EXPIRED = "expired"


@dataclass(frozen=True)
class AgingInput:
    batch_id: UUID
    batch_code: str
    product_id: UUID
    expiry_date: date
    shelf_life_days: int
    quantity: Decimal


@dataclass(frozen=True)
class AgedBatch:
    batch_id: UUID
    batch_code: str
    product_id: UUID
    expiry_date: date
    quantity: Decimal
    days_remaining: int
    remaining_percent: Decimal
    bucket: ShelfLifeBucket


@dataclass(frozen=True)
class AgingReport:
    as_of_date: date
    items: tuple[AgedBatch, ...]

    def items_in_bucket(self, bucket: ShelfLifeBucket) -> tuple[AgedBatch, ...]:
        return tuple(i for i in self.items if i.bucket == bucket)

    def quantity_by_bucket(self) -> dict[str, Decimal]:
        totals = {b.value: Decimal("0") for b in ShelfLifeBucket}
        for item in self.items:
            totals[item.bucket.value] += item.quantity
        return totals


class ShelfLifeAgingCalculator:
    """
    Contract:
        Pure functions.  Thresholds are percentages of the product's total
        shelf life.
    """

    def __init__(self, warning_percent: int = 50, critical_percent: int = 20):
        if not 0 <= critical_percent < warning_percent <= 100:
            raise ValueError(
                "Require 0 <= critical_percent < warning_percent <= 100, got "
                f"critical={critical_percent} warning={warning_percent}"
            )
        self.warning_percent = Decimal(warning_percent)
        self.critical_percent = Decimal(critical_percent)

    def remaining_percent(self, expiry_date: date, shelf_life_days: int, as_of_date: date) -> Decimal:
        days_remaining = (expiry_date - as_of_date).days
        if shelf_life_days <= 0 or days_remaining <= 0:
            return Decimal("0")
        pct = Decimal(days_remaining) * HUNDRED / Decimal(shelf_life_days)
        return min(pct, HUNDRED).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def classify(self, days_remaining: int, remaining_percent: Decimal) -> ShelfLifeBucket:
        if days_remaining < 0:
            return ShelfLifeBucket.EXPIRED
        if remaining_percent <= self.critical_percent:
            return ShelfLifeBucket.CRITICAL
        if remaining_percent <= self.warning_percent:
            return ShelfLifeBucket.WARNING
        return ShelfLifeBucket.FRESH

    @traced_engine("shelf_life_aging", "1.0", fingerprint_fields=("as_of_date",))
    def generate_report(
        self,
        items: Sequence[AgingInput],
        as_of_date: date,
    ) -> AgingReport:
        aged = []
        for item in items:
            days_remaining = (item.expiry_date - as_of_date).days
            pct = self.remaining_percent(item.expiry_date, item.shelf_life_days, as_of_date)
            aged.append(
                AgedBatch(
                    batch_id=item.batch_id,
                    batch_code=item.batch_code,
                    product_id=item.product_id,
                    expiry_date=item.expiry_date,
                    quantity=item.quantity,
                    days_remaining=days_remaining,
                    remaining_percent=pct,
                    bucket=self.classify(days_remaining, pct),
                )
            )
        aged.sort(key=lambda a: (a.expiry_date, a.batch_code))
        return AgingReport(as_of_date=as_of_date, items=tuple(aged))

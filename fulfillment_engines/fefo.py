"""
Module: fulfillment_engines.fefo
Responsibility:
    First-Expired-First-Out batch selection.  Given the stock candidates for
    one product in one warehouse, pick (batch, quantity) pairs consuming the
    earliest-expiring unreserved stock first.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The database query that
    produces (and locks) the candidates lives in
    ``fulfillment_services.allocator``; this module only decides.

Invariants enforced:
    - Ordering: candidates are consumed by ascending expiry_date, ties broken
      by ascending batch id (string form), regardless of input order.
    - Conservation: sum(picks) + shortfall == quantity_needed.
    - No over-pick: each pick <= that candidate's available quantity.
    - Candidates with available <= 0 and excluded batches are skipped.
    - Decimal-only arithmetic.

Failure modes:
    - InvalidQuantityError when quantity_needed is a float or negative.

Usage:
    from fulfillment_engines.fefo import FefoCandidate, allocate_fefo

    result = allocate_fefo(
        candidates=[
            FefoCandidate(batch_id=b1, expiry_date=date(2026, 2, 1), available=Decimal("50")),
            FefoCandidate(batch_id=b2, expiry_date=date(2026, 2, 15), available=Decimal("100")),
        ],
        quantity_needed=Decimal("70"),
    )
    # result.picks == (FefoPick(b1, 50), FefoPick(b2, 20)); result.shortfall == 0
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from fulfillment_engines.tracer import traced_engine
from fulfillment_kernel.db.types import QUANTITY_DECIMAL_PLACES, ZERO, to_quantity
from fulfillment_kernel.exceptions import InvalidQuantityError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("engines.fefo")


@dataclass(frozen=True)
class FefoCandidate:
    """One (batch, warehouse) stock position eligible for allocation."""

    batch_id: UUID
    expiry_date: date
    available: Decimal
    batch_code: str | None = None

    @property
    def sort_key(self) -> tuple[date, str]:
        return (self.expiry_date, str(self.batch_id))


@dataclass(frozen=True)
class FefoPick:
    """Quantity taken from one batch."""

    batch_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class FefoAllocation:
    """
    Outcome of one FEFO run.

    Guarantees:
        - ``allocated + shortfall == requested``.
        - A shortfall is data, not an error.
    """

    requested: Decimal
    picks: tuple[FefoPick, ...]
    shortfall: Decimal

    @property
    def allocated(self) -> Decimal:
        return sum((p.quantity for p in self.picks), ZERO)

    @property
    def is_complete(self) -> bool:
        return self.shortfall == ZERO

    def as_pairs(self) -> list[tuple[UUID, Decimal]]:
        return [(p.batch_id, p.quantity) for p in self.picks]


def order_candidates(candidates: Iterable[FefoCandidate]) -> list[FefoCandidate]:
    """Deterministic FEFO order: expiry ascending, then batch id."""
    return sorted(candidates, key=lambda c: c.sort_key)


class FefoEngine:
    """
    Greedy earliest-expiry allocator.

    Contract:
        Pure; no I/O and no clock access.  Callers pass candidates that were
        read (and locked) in the transaction that will apply the picks.

    Non-goals:
        - Does not filter by batch status or warehouse; the candidate query
          does that.
        - Does not reserve anything.
    """

    @traced_engine(
        "fefo", "1.0", fingerprint_fields=("quantity_needed", "exclude_batch_ids", "decimal_places")
    )
    def allocate(
        self,
        candidates: Sequence[FefoCandidate],
        quantity_needed: Decimal,
        exclude_batch_ids: Iterable[UUID] = (),
        decimal_places: int = QUANTITY_DECIMAL_PLACES,
    ) -> FefoAllocation:
        """
        Consume earliest-expiring stock until the need is met or stock runs out.

        Args:
            candidates: Stock positions for one product in one warehouse.
            quantity_needed: Quantity to allocate (>= 0).
            exclude_batch_ids: Batches that must not be picked.
            decimal_places: Quantity precision; the need is quantized to it
                before any pick is taken.

        Returns:
            FefoAllocation with picks in consumption order and any shortfall.
        """
        needed = to_quantity(quantity_needed, decimal_places)
        if needed < ZERO:
            raise InvalidQuantityError(quantity_needed, "must not be negative")

        excluded = {str(b) for b in exclude_batch_ids}
        remaining = needed
        picks: list[FefoPick] = []

        for candidate in order_candidates(candidates):
            if remaining <= ZERO:
                break
            if str(candidate.batch_id) in excluded:
                continue
            if candidate.available <= ZERO:
                continue
            take = min(remaining, candidate.available)
            picks.append(FefoPick(batch_id=candidate.batch_id, quantity=take))
            remaining -= take

        result = FefoAllocation(
            requested=needed,
            picks=tuple(picks),
            shortfall=max(remaining, ZERO),
        )

        logger.debug(
            "fefo_allocation_computed",
            extra={
                "requested": str(needed),
                "allocated": str(result.allocated),
                "shortfall": str(result.shortfall),
                "candidate_count": len(candidates),
                "excluded_count": len(excluded),
                "pick_count": len(picks),
            },
        )
        return result


_default_engine = FefoEngine()


def allocate_fefo(
    candidates: Sequence[FefoCandidate],
    quantity_needed: Decimal,
    exclude_batch_ids: Iterable[UUID] = (),
    decimal_places: int = QUANTITY_DECIMAL_PLACES,
) -> FefoAllocation:
    """Module-level shortcut for ``FefoEngine().allocate``."""
    return _default_engine.allocate(
        candidates=candidates,
        quantity_needed=quantity_needed,
        exclude_batch_ids=tuple(exclude_batch_ids),
        decimal_places=decimal_places,
    )


def earliest_candidate(candidates: Iterable[FefoCandidate]) -> FefoCandidate | None:
    """The batch a picker must take first, or None when nothing is available."""
    ordered = [c for c in order_candidates(candidates) if c.available > ZERO]
    return ordered[0] if ordered else None

"""
fulfillment_services.allocator -- Locked FEFO allocation.

Responsibility:
    Run the FEFO candidate query with ``FOR UPDATE OF inventory_records``
    inside the caller's transaction, hand the locked rows to the pure
    ``FefoEngine``, and (for approve / replacement) reserve every pick
    through the InventoryLedger before the locks are released.

Architecture position:
    Services -- imperative shell around ``fulfillment_engines.fefo``.

Invariants enforced:
    - The read that decides the picks and the reserve that applies them
      happen in one transaction with the candidate rows locked, so two
      concurrent allocations of the same product serialize on those rows.
    - Candidate rows are locked in FEFO order (expiry, batch id), the same
      order for every caller, which keeps lock acquisition deadlock-free
      between allocators.

Failure modes:
    - InsufficientCapacityError from the ledger would indicate a missed
      lock; it propagates unchanged.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_engines.fefo import FefoAllocation, FefoCandidate, FefoEngine
from fulfillment_kernel.db.types import QUANTITY_DECIMAL_PLACES
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.inventory import InventoryRecord
from fulfillment_kernel.selectors.stock_selector import fefo_candidate_statement
from fulfillment_kernel.services.inventory_ledger import InventoryLedger

logger = get_logger("services.allocator")


class FefoAllocator:
    """
    Contract:
        ``allocate`` locks and reads; ``allocate_and_reserve`` additionally
        reserves the picks.  Neither commits.
    """

    def __init__(
        self,
        session: Session,
        ledger: InventoryLedger,
        engine: FefoEngine | None = None,
        decimal_places: int = QUANTITY_DECIMAL_PLACES,
    ):
        self._session = session
        self._ledger = ledger
        self._engine = engine or FefoEngine()
        self._places = decimal_places

    def locked_candidates(self, product_id: UUID, warehouse_id: UUID) -> list[FefoCandidate]:
        rows = self._session.execute(
            fefo_candidate_statement(product_id, warehouse_id)
            .with_for_update(of=InventoryRecord)
            .execution_options(populate_existing=True)
        ).all()
        return [
            FefoCandidate(
                batch_id=batch.id,
                expiry_date=batch.expiry_date,
                available=Decimal(record.quantity) - Decimal(record.reserved_quantity),
                batch_code=batch.batch_code,
            )
            for record, batch in rows
        ]

    def allocate(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity_needed: Decimal,
        exclude_batch_ids: Iterable[UUID] = (),
    ) -> FefoAllocation:
        candidates = self.locked_candidates(product_id, warehouse_id)
        return self._engine.allocate(
            candidates=candidates,
            quantity_needed=quantity_needed,
            exclude_batch_ids=tuple(exclude_batch_ids),
            decimal_places=self._places,
        )

    def allocate_and_reserve(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity_needed: Decimal,
        reference_id: str | None = None,
        exclude_batch_ids: Iterable[UUID] = (),
    ) -> FefoAllocation:
        """Allocate under lock and reserve every pick in the same transaction."""
        allocation = self.allocate(
            product_id,
            warehouse_id,
            quantity_needed,
            exclude_batch_ids=exclude_batch_ids,
        )
        for pick in allocation.picks:
            self._ledger.reserve(warehouse_id, pick.batch_id, pick.quantity, reference_id=reference_id)

        logger.info(
            "fefo_allocation_reserved",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse_id),
                "requested": str(allocation.requested),
                "allocated": str(allocation.allocated),
                "shortfall": str(allocation.shortfall),
                "batches": [str(p.batch_id) for p in allocation.picks],
                "reference_id": reference_id,
            },
        )
        return allocation

"""
fulfillment_services.receiving -- Receiving Reconciliation.

Responsibility:
    Book a store's receipt of an in-transit shipment: import the good
    quantity of every batch into the store's warehouse, hand missing and
    damaged quantities to the claims collaborator, and close the shipment
    and order.

Architecture position:
    Services -- imperative shell, owns the transaction.  The arithmetic
    lives in ``fulfillment_engines.receiving``.

Invariants enforced:
    - good = actual - damaged is imported; nothing else touches store stock.
    - One discrepancy per line with missing > 0 or damaged > 0.
    - Shipment -> completed; order -> claimed when the claims collaborator
      recorded a claim, otherwise completed.

Failure modes:
    - ShipmentNotFoundError, AccessDeniedError (store isolation).
    - InvalidTransitionError: shipment not in transit / delivered.
    - ReceivingValidationError: unknown or duplicate batch, negative
      quantities, damaged > actual.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_config.schema import EngineSettings
from fulfillment_engines.receiving import (
    ReceiptOutcome,
    ReceiptReport,
    ReceivingCalculator,
    ShippedLine,
)
from fulfillment_kernel.db.types import ZERO
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.lifecycles import ORDER_WORKFLOW, SHIPMENT_WORKFLOW
from fulfillment_kernel.domain.workflow import require_transition
from fulfillment_kernel.exceptions import AccessDeniedError, ShipmentNotFoundError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.batch import Batch
from fulfillment_kernel.models.inventory import InventoryTransactionType
from fulfillment_kernel.models.order import Order, OrderStatus
from fulfillment_kernel.models.shipment import Shipment, ShipmentItem, ShipmentStatus
from fulfillment_kernel.services.inventory_ledger import InventoryLedger
from fulfillment_services._boundary import transaction_boundary
from fulfillment_services.claims import ClaimsGateway, Discrepancy, SqlClaimsGateway

logger = get_logger("services.receiving")

RECEIPT_REASON = "Shipment Receipt"


@dataclass(frozen=True)
class ReceivingResult:
    shipment_id: UUID
    order_id: UUID
    order_status: OrderStatus
    claim_id: UUID | None
    outcomes: tuple[ReceiptOutcome, ...]

    @property
    def discrepancies(self) -> tuple[ReceiptOutcome, ...]:
        return tuple(o for o in self.outcomes if o.has_discrepancy)

    @property
    def total_good(self) -> Decimal:
        return sum((o.good_quantity for o in self.outcomes), ZERO)


class ReceivingService:
    def __init__(
        self,
        session: Session,
        claims: ClaimsGateway | None = None,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._ledger = InventoryLedger(session, self._clock, self._settings.quantity_decimal_places)
        self._claims = claims or SqlClaimsGateway(session)
        self._calculator = ReceivingCalculator()
        self._auto_commit = auto_commit

    def receive_shipment(
        self,
        shipment_id: UUID,
        store_id: UUID,
        reports: Sequence[ReceiptReport],
        actor_id: UUID,
    ) -> ReceivingResult:
        """
        Reconcile what arrived against what was shipped.

        Shipment lines without a report are received in full.
        """
        with transaction_boundary(
            self._session,
            "shipment_receipt",
            self._auto_commit,
            actor_id=actor_id,
            shipment_id=shipment_id,
        ):
            shipment = self._session.execute(
                select(Shipment)
                .where(Shipment.id == shipment_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if shipment is None:
                raise ShipmentNotFoundError(shipment_id)
            order = self._session.execute(
                select(Order)
                .where(Order.id == shipment.order_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one()
            if str(order.store_id) != str(store_id):
                raise AccessDeniedError("Shipment", shipment_id, store_id)
            require_transition(SHIPMENT_WORKFLOW, shipment.id, shipment.status, ShipmentStatus.COMPLETED)

            rows = self._session.execute(
                select(ShipmentItem, Batch.product_id)
                .join(Batch, Batch.id == ShipmentItem.batch_id)
                .where(ShipmentItem.shipment_id == shipment.id)
                .order_by(ShipmentItem.batch_id)
            ).all()
            shipped = [
                ShippedLine(batch_id=item.batch_id, product_id=product_id, shipped_quantity=Decimal(item.quantity))
                for item, product_id in rows
            ]
            outcomes = self._calculator.reconcile(
                shipped, reports, self._settings.quantity_decimal_places
            )

            reference = str(shipment.id)
            for outcome in outcomes:
                if outcome.good_quantity > ZERO:
                    self._ledger.receive(
                        shipment.to_warehouse_id,
                        outcome.batch_id,
                        outcome.good_quantity,
                        InventoryTransactionType.IMPORT,
                        actor_id,
                        reference_id=reference,
                        reason=RECEIPT_REASON,
                    )

            discrepancies = [
                Discrepancy(
                    shipment_id=shipment.id,
                    product_id=o.product_id,
                    batch_id=o.batch_id,
                    missing_quantity=o.missing_quantity,
                    damaged_quantity=o.damaged_quantity,
                    reason=o.describe(),
                    evidence_urls=o.evidence_urls,
                )
                for o in outcomes
                if o.has_discrepancy
            ]
            claim_id = None
            if discrepancies:
                claim_id = self._claims.record_discrepancies(shipment.id, discrepancies, actor_id)

            target = OrderStatus.CLAIMED if claim_id is not None else OrderStatus.COMPLETED
            require_transition(ORDER_WORKFLOW, order.id, order.status, target)

            now = self._clock.now()
            shipment.status = ShipmentStatus.COMPLETED.value
            shipment.received_at = now
            shipment.updated_by_id = actor_id
            order.status = target.value
            order.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "shipment_received",
                extra={
                    "order_id": str(order.id),
                    "line_count": len(outcomes),
                    "discrepancy_count": len(discrepancies),
                    "claim_id": str(claim_id) if claim_id else None,
                    "order_status": target.value,
                },
            )
            result = ReceivingResult(
                shipment_id=shipment.id,
                order_id=order.id,
                order_status=target,
                claim_id=claim_id,
                outcomes=outcomes,
            )
        return result

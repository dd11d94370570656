"""
fulfillment_services.claims -- Claims collaborator boundary.

Responsibility:
    Persist the discrepancies that receiving reconciliation emits, let a
    store open a manual claim shortly after receipt, and resolve claims.

Architecture position:
    Services.  ``ClaimsGateway`` is the protocol receiving depends on;
    ``SqlClaimsGateway`` is the default implementation (flush only, runs
    inside the receiving transaction).  ``ClaimService`` owns the
    transaction for the manual claim operations.

Invariants enforced:
    - A claim belongs to exactly one shipment; one ClaimItem per reported
      discrepancy.
    - A manual claim removes the claimed quantity from the store's stock
      through the ledger (ADJUSTMENT, reference = claim id), so stock and
      ledger stay reconciled.
    - Claim status moves pending -> approved | rejected, once.

Failure modes:
    - AccessDeniedError: store does not own the shipment's order.
    - InvalidStateError: shipment not completed, or the claim window closed.
    - InvalidQuantityError / ReceivingValidationError: bad claim lines.
    - InsufficientCapacityError: store holds less than the claimed quantity.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Protocol, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_config.schema import EngineSettings
from fulfillment_kernel.db.types import ZERO, to_quantity
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.lifecycles import ORDER_WORKFLOW
from fulfillment_kernel.domain.workflow import require_transition
from fulfillment_kernel.exceptions import (
    AccessDeniedError,
    ClaimNotFoundError,
    InvalidQuantityError,
    InvalidStateError,
    InvalidTransitionError,
    ReceivingValidationError,
    ShipmentItemNotFoundError,
    ShipmentNotFoundError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.batch import Batch
from fulfillment_kernel.models.claim import Claim, ClaimItem, ClaimStatus
from fulfillment_kernel.models.inventory import InventoryTransactionType
from fulfillment_kernel.models.order import OrderStatus
from fulfillment_kernel.models.shipment import Shipment, ShipmentStatus
from fulfillment_kernel.services.inventory_ledger import InventoryLedger
from fulfillment_services._boundary import transaction_boundary

logger = get_logger("services.claims")


@dataclass(frozen=True)
class Discrepancy:
    """One shipped line that arrived short or damaged."""

    shipment_id: UUID
    product_id: UUID
    batch_id: UUID | None
    missing_quantity: Decimal
    damaged_quantity: Decimal
    reason: str | None = None
    evidence_urls: tuple[str, ...] = ()


@dataclass(frozen=True)
class ManualClaimLine:
    product_id: UUID
    batch_id: UUID
    quantity_missing: Decimal = ZERO
    quantity_damaged: Decimal = ZERO
    reason: str | None = None
    evidence_urls: tuple[str, ...] = ()


class ClaimsGateway(Protocol):
    def record_discrepancies(
        self,
        shipment_id: UUID,
        discrepancies: Sequence[Discrepancy],
        actor_id: UUID,
    ) -> UUID | None:
        """Persist the discrepancies; return the claim id, or None if none recorded."""
        ...


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlClaimsGateway:
    """Stores discrepancies as one pending Claim per shipment receipt."""

    def __init__(self, session: Session):
        self._session = session

    def _new_claim(self, shipment_id: UUID, actor_id: UUID) -> Claim:
        claim = Claim(
            shipment_id=shipment_id,
            status=ClaimStatus.PENDING.value,
            created_by_id=actor_id,
        )
        self._session.add(claim)
        return claim

    def record_discrepancies(
        self,
        shipment_id: UUID,
        discrepancies: Sequence[Discrepancy],
        actor_id: UUID,
        source: str = "receiving",
    ) -> UUID | None:
        if not discrepancies:
            return None

        claim = self._new_claim(shipment_id, actor_id)
        for d in discrepancies:
            claim.items.append(
                ClaimItem(
                    product_id=d.product_id,
                    batch_id=d.batch_id,
                    quantity_missing=d.missing_quantity,
                    quantity_damaged=d.damaged_quantity,
                    reason=d.reason,
                    evidence_urls=list(d.evidence_urls),
                )
            )
        self._session.flush()

        logger.info(
            "claim_recorded",
            extra={
                "claim_id": str(claim.id),
                "shipment_id": str(shipment_id),
                "item_count": len(discrepancies),
                "source": source,
            },
        )
        return claim.id


class ClaimService:
    """
    Manual claims and claim resolution.

    Contract:
        Each public method is one transaction (commit on success, rollback
        and re-raise on failure) unless ``auto_commit=False``.
    """

    def __init__(
        self,
        session: Session,
        ledger: InventoryLedger | None = None,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._ledger = ledger or InventoryLedger(
            session, self._clock, self._settings.quantity_decimal_places
        )
        self._gateway = SqlClaimsGateway(session)
        self._auto_commit = auto_commit

    def _validate_line(self, shipment: Shipment, line: ManualClaimLine) -> tuple[Decimal, Decimal]:
        places = self._settings.quantity_decimal_places
        missing = to_quantity(line.quantity_missing, places)
        damaged = to_quantity(line.quantity_damaged, places)
        if missing < ZERO or damaged < ZERO:
            raise InvalidQuantityError(f"{missing}/{damaged}", "claim quantities must not be negative")
        if missing + damaged <= ZERO:
            raise InvalidQuantityError(missing + damaged, "claim line must claim a positive quantity")
        if damaged > ZERO and not line.evidence_urls:
            raise ReceivingValidationError(line.batch_id, "damaged goods require evidence")

        shipped = {str(item.batch_id) for item in shipment.items}
        if str(line.batch_id) not in shipped:
            raise ShipmentItemNotFoundError(shipment.id, line.batch_id)
        batch = self._session.get(Batch, line.batch_id)
        if batch is None or str(batch.product_id) != str(line.product_id):
            raise ReceivingValidationError(line.batch_id, "batch does not belong to the claimed product")
        return missing, damaged

    def open_manual_claim(
        self,
        shipment_id: UUID,
        store_id: UUID,
        lines: Sequence[ManualClaimLine],
        actor_id: UUID,
    ) -> UUID:
        """
        Open a claim against a completed shipment within the claim window.

        Postconditions:
            - One pending Claim with one ClaimItem per line.
            - The store's stock of each batch drops by missing + damaged
              (ADJUSTMENT, reference = claim id).
            - The order moves completed -> claimed.
        """
        with transaction_boundary(
            self._session,
            "manual_claim",
            self._auto_commit,
            actor_id=actor_id,
            shipment_id=shipment_id,
        ):
            shipment = self._session.get(Shipment, shipment_id, with_for_update=True, populate_existing=True)
            if shipment is None:
                raise ShipmentNotFoundError(shipment_id)
            order = shipment.order
            if str(order.store_id) != str(store_id):
                raise AccessDeniedError("Shipment", shipment_id, store_id)
            if shipment.status != ShipmentStatus.COMPLETED.value:
                raise InvalidStateError(
                    "Shipment", shipment_id, f"claims require a completed shipment, not {shipment.status}"
                )
            if not lines:
                raise InvalidQuantityError(0, "a claim needs at least one line")

            window = timedelta(hours=self._settings.claims.window_hours)
            received_at = shipment.received_at or shipment.updated_at
            if self._clock.now() > _as_utc(received_at) + window:
                raise InvalidStateError(
                    "Shipment",
                    shipment_id,
                    f"claim window of {self._settings.claims.window_hours}h has closed",
                )

            require_transition(ORDER_WORKFLOW, order.id, order.status, OrderStatus.CLAIMED)

            validated = [(line, *self._validate_line(shipment, line)) for line in lines]
            claim_id = self._gateway.record_discrepancies(
                shipment_id,
                [
                    Discrepancy(
                        shipment_id=shipment_id,
                        product_id=line.product_id,
                        batch_id=line.batch_id,
                        missing_quantity=missing,
                        damaged_quantity=damaged,
                        reason=line.reason,
                        evidence_urls=tuple(line.evidence_urls),
                    )
                    for line, missing, damaged in validated
                ],
                actor_id,
                source="manual",
            )

            for line, missing, damaged in validated:
                self._ledger.receive(
                    shipment.to_warehouse_id,
                    line.batch_id,
                    -(missing + damaged),
                    InventoryTransactionType.ADJUSTMENT,
                    actor_id,
                    reference_id=str(claim_id),
                    reason=f"Claim {claim_id}",
                )

            order.status = OrderStatus.CLAIMED.value
            order.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "manual_claim_opened",
                extra={
                    "claim_id": str(claim_id),
                    "line_count": len(validated),
                    "store_id": str(store_id),
                },
            )
        return claim_id

    def resolve_claim(
        self,
        claim_id: UUID,
        status: ClaimStatus,
        actor_id: UUID,
    ) -> Claim:
        """Move a pending claim to approved or rejected."""
        status = ClaimStatus(status)
        with transaction_boundary(
            self._session, "claim_resolution", self._auto_commit, actor_id=actor_id
        ):
            claim = self._session.get(Claim, claim_id, with_for_update=True, populate_existing=True)
            if claim is None:
                raise ClaimNotFoundError(claim_id)
            if claim.status != ClaimStatus.PENDING.value or status == ClaimStatus.PENDING:
                raise InvalidTransitionError(
                    entity_type="Claim",
                    entity_id=claim_id,
                    from_status=str(getattr(claim.status, "value", claim.status)),
                    to_status=status.value,
                )
            claim.status = status.value
            claim.resolved_at = self._clock.now()
            claim.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "claim_resolved",
                extra={"claim_id": str(claim_id), "status": status.value},
            )
        return claim

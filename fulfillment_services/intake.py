"""
fulfillment_services.intake -- Stock intake and manual adjustments.

Responsibility:
    Register production batches, receive them into a warehouse, and apply
    stock corrections (adjustments and waste) through the InventoryLedger.

Architecture position:
    Services -- imperative shell at the inbound collaborator boundary.
    Every stock change goes through InventoryLedger.receive so the ledger
    stays the single writer of InventoryRecord.

Invariants enforced:
    - A batch is created pending and becomes available on its first receipt.
    - expiry_date is set once, at registration.
    - A batch can be deleted only while pending and without any ledger row.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fulfillment_config.schema import EngineSettings
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.lifecycles import BATCH_WORKFLOW
from fulfillment_kernel.domain.workflow import require_transition
from fulfillment_kernel.exceptions import (
    BatchNotFoundError,
    InactiveProductError,
    InvalidStateError,
    ValidationError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.batch import Batch, BatchStatus
from fulfillment_kernel.models.inventory import InventoryTransaction, InventoryTransactionType
from fulfillment_kernel.services.inventory_ledger import InventoryLedger
from fulfillment_services._boundary import transaction_boundary
from fulfillment_services.catalog import CatalogGateway, SqlCatalog

logger = get_logger("services.intake")

_CODE_ATTEMPTS = 5


class StockIntakeService:
    def __init__(
        self,
        session: Session,
        catalog: CatalogGateway | None = None,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._catalog = catalog or SqlCatalog(
            session,
            self._settings.central_warehouse_type,
            self._settings.store_warehouse_type,
        )
        self._ledger = InventoryLedger(session, self._clock, self._settings.quantity_decimal_places)
        self._auto_commit = auto_commit

    def _lock_batch(self, batch_id: UUID) -> Batch:
        batch = self._session.execute(
            select(Batch)
            .where(Batch.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def _new_batch_code(self, sku: str, on: date) -> str:
        """SKU-YYYYMMDD-XXXX, unique across batches."""
        for _ in range(_CODE_ATTEMPTS):
            code = f"{sku}-{on:%Y%m%d}-{uuid4().hex[:4].upper()}"
            taken = self._session.execute(
                select(Batch.id).where(Batch.batch_code == code)
            ).first()
            if taken is None:
                return code
        raise InvalidStateError("Batch", sku, "could not allocate a unique batch code")

    def register_batch(
        self,
        product_id: UUID,
        actor_id: UUID,
        expiry_date: date | None = None,
        manufactured_date: date | None = None,
    ) -> Batch:
        """Create a pending batch; expiry defaults to today + shelf life."""
        with transaction_boundary(self._session, "batch_registration", self._auto_commit, actor_id=actor_id):
            product = self._catalog.get_product(product_id)
            if not product.is_active:
                raise InactiveProductError(product_id)

            today = self._clock.today()
            made_on = manufactured_date or today
            expiry = expiry_date or made_on + timedelta(days=product.shelf_life_days)
            if expiry < made_on:
                raise ValidationError(f"expiry_date {expiry} precedes manufactured_date {made_on}")

            batch = Batch(
                product_id=product.id,
                batch_code=self._new_batch_code(product.sku, today),
                expiry_date=expiry,
                manufactured_date=made_on,
                status=BatchStatus.PENDING.value,
                created_by_id=actor_id,
            )
            self._session.add(batch)
            self._session.flush()

            logger.info(
                "batch_registered",
                extra={
                    "batch_id": str(batch.id),
                    "batch_code": batch.batch_code,
                    "product_id": str(product.id),
                    "expiry_date": str(expiry),
                },
            )
        return batch

    def receive_batch(
        self,
        batch_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        reference_id: str | None = None,
    ) -> InventoryTransaction:
        """Import stock for a batch, activating it if still pending."""
        with transaction_boundary(
            self._session, "batch_receipt", self._auto_commit, actor_id=actor_id, batch_id=batch_id
        ):
            batch = self._lock_batch(batch_id)
            self._catalog.get_warehouse(warehouse_id)

            if batch.status == BatchStatus.PENDING.value:
                require_transition(BATCH_WORKFLOW, batch.id, batch.status, BatchStatus.AVAILABLE)
                batch.status = BatchStatus.AVAILABLE.value
                batch.updated_by_id = actor_id

            tx = self._ledger.receive(
                warehouse_id,
                batch.id,
                quantity,
                InventoryTransactionType.IMPORT,
                actor_id,
                reference_id=reference_id,
                reason="Batch Receipt",
            )
            self._session.flush()
            logger.info(
                "batch_received",
                extra={
                    "batch_code": batch.batch_code,
                    "warehouse_id": str(warehouse_id),
                    "quantity": str(tx.quantity_change),
                },
            )
        return tx

    def delete_pending_batch(self, batch_id: UUID, actor_id: UUID) -> None:
        with transaction_boundary(
            self._session, "batch_deletion", self._auto_commit, actor_id=actor_id, batch_id=batch_id
        ):
            batch = self._lock_batch(batch_id)
            if batch.status != BatchStatus.PENDING.value:
                raise InvalidStateError("Batch", batch_id, f"only pending batches can be deleted, not {batch.status}")
            history = self._session.execute(
                select(func.count()).select_from(InventoryTransaction).where(
                    InventoryTransaction.batch_id == batch_id
                )
            ).scalar_one()
            if history:
                raise InvalidStateError("Batch", batch_id, "batch has inventory history")
            self._session.delete(batch)
            self._session.flush()
            logger.info("batch_deleted", extra={"batch_code": batch.batch_code})

    def adjust_stock(
        self,
        warehouse_id: UUID,
        batch_id: UUID,
        quantity_change: Decimal,
        reason: str,
        actor_id: UUID,
    ) -> InventoryTransaction:
        """Signed correction after a stock count."""
        with transaction_boundary(
            self._session, "stock_adjustment", self._auto_commit, actor_id=actor_id, batch_id=batch_id
        ):
            tx = self._ledger.receive(
                warehouse_id,
                batch_id,
                quantity_change,
                InventoryTransactionType.ADJUSTMENT,
                actor_id,
                reason=reason,
            )
        return tx

    def record_waste(
        self,
        warehouse_id: UUID,
        batch_id: UUID,
        quantity: Decimal,
        reason: str,
        actor_id: UUID,
    ) -> InventoryTransaction:
        """Write off spoiled or expired stock."""
        with transaction_boundary(
            self._session, "stock_waste", self._auto_commit, actor_id=actor_id, batch_id=batch_id
        ):
            tx = self._ledger.receive(
                warehouse_id,
                batch_id,
                quantity,
                InventoryTransactionType.WASTE,
                actor_id,
                reason=reason,
            )
        return tx

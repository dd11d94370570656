"""
Tests for StockIntakeService: batch registration, receipt, corrections.
"""

import re
from datetime import date
from decimal import Decimal

import pytest

from fulfillment_kernel.exceptions import (
    InactiveProductError,
    InsufficientCapacityError,
    InvalidStateError,
    ValidationError,
)
from fulfillment_kernel.models import Batch, BatchStatus, InventoryTransactionType
from fulfillment_kernel.selectors import StockSelector
from fulfillment_kernel.services.inventory_ledger import InventoryLedger


class TestRegisterBatch:
    def test_code_and_default_expiry(self, intake, product, test_actor_id):
        batch = intake.register_batch(product.id, actor_id=test_actor_id)

        assert re.fullmatch(r"CHK-20260115-[0-9A-F]{4}", batch.batch_code)
        assert batch.expiry_date == date(2026, 2, 14)
        assert batch.status == BatchStatus.PENDING.value

    def test_expiry_before_manufacture_rejected(self, intake, product, test_actor_id):
        with pytest.raises(ValidationError):
            intake.register_batch(
                product.id,
                actor_id=test_actor_id,
                manufactured_date=date(2026, 1, 10),
                expiry_date=date(2026, 1, 9),
            )

    def test_inactive_product_rejected(self, intake, factory, test_actor_id):
        retired = factory.product(is_active=False)

        with pytest.raises(InactiveProductError):
            intake.register_batch(retired.id, actor_id=test_actor_id)


class TestReceiveBatch:
    def test_first_receipt_activates_batch(self, intake, product, central, session, stock_record, test_actor_id):
        batch = intake.register_batch(product.id, actor_id=test_actor_id)

        tx = intake.receive_batch(batch.id, central.id, Decimal("40"), actor_id=test_actor_id)

        assert tx.transaction_type == InventoryTransactionType.IMPORT.value
        assert tx.reason == "Batch Receipt"
        assert session.get(Batch, batch.id).status == BatchStatus.AVAILABLE.value
        assert stock_record(central.id, batch.id).quantity == Decimal("40")

    def test_pending_batch_is_not_allocatable(self, intake, factory, product, central, session, test_actor_id):
        batch = intake.register_batch(product.id, actor_id=test_actor_id)
        factory.stock(central, batch, Decimal("10"))

        assert StockSelector(session).available_quantity(product.id, central.id) == Decimal("0")


class TestDeletePendingBatch:
    def test_delete_pending(self, intake, product, session, test_actor_id):
        batch = intake.register_batch(product.id, actor_id=test_actor_id)

        intake.delete_pending_batch(batch.id, actor_id=test_actor_id)

        assert session.get(Batch, batch.id) is None

    def test_received_batch_cannot_be_deleted(self, intake, product, central, test_actor_id):
        batch = intake.register_batch(product.id, actor_id=test_actor_id)
        intake.receive_batch(batch.id, central.id, Decimal("1"), actor_id=test_actor_id)

        with pytest.raises(InvalidStateError):
            intake.delete_pending_batch(batch.id, actor_id=test_actor_id)


class TestCorrections:
    def test_waste_cannot_touch_reserved(self, intake, factory, central, product, session, test_actor_id):
        batch = factory.stocked_batch(central, product, date(2026, 2, 1), Decimal("10"))
        InventoryLedger(session).reserve(central.id, batch.id, Decimal("8"))
        session.commit()

        with pytest.raises(InsufficientCapacityError):
            intake.record_waste(central.id, batch.id, Decimal("3"), "spoiled", actor_id=test_actor_id)

    def test_adjustment_is_signed(self, intake, factory, central, product, stock_record, test_actor_id):
        batch = factory.stocked_batch(central, product, date(2026, 2, 1), Decimal("10"))

        intake.adjust_stock(central.id, batch.id, Decimal("-4"), "stock count", actor_id=test_actor_id)
        intake.adjust_stock(central.id, batch.id, Decimal("1"), "found one", actor_id=test_actor_id)

        assert stock_record(central.id, batch.id).quantity == Decimal("7")

"""
Stock ledger rows are append-only and batch expiry is fixed, at the ORM level.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from fulfillment_kernel.exceptions import ImmutabilityViolationError
from fulfillment_kernel.models import BatchStatus, InventoryTransaction


@pytest.fixture
def ledger_row(session, factory, central, product):
    batch = factory.stocked_batch(central, product, date(2026, 2, 1), Decimal("10"))
    return session.execute(
        select(InventoryTransaction).where(InventoryTransaction.batch_id == batch.id)
    ).scalar_one()


def test_update_rejected(session, ledger_row):
    ledger_row.quantity_change = Decimal("99")

    with pytest.raises(ImmutabilityViolationError):
        session.flush()
    session.rollback()


def test_delete_rejected(session, ledger_row):
    session.delete(ledger_row)

    with pytest.raises(ImmutabilityViolationError):
        session.flush()
    session.rollback()


class TestBatchStructuralFields:
    def test_expiry_date_change_rejected(self, session, factory, product):
        batch = factory.batch(product, date(2026, 2, 1))
        batch.expiry_date = date(2026, 3, 1)

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        session.rollback()

        assert exc_info.value.entity_type == "Batch"
        assert "expiry_date" in exc_info.value.reason

    def test_product_change_rejected(self, session, factory, product):
        batch = factory.batch(product, date(2026, 2, 1))
        batch.product_id = factory.product().id

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_status_change_allowed(self, session, factory, product):
        batch = factory.batch(product, date(2026, 2, 1), status=BatchStatus.PENDING)
        batch.status = BatchStatus.AVAILABLE.value

        session.flush()

        assert batch.expiry_date == date(2026, 2, 1)

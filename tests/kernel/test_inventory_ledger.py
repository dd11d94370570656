"""
Tests for InventoryLedger: reservation bounds and ledger pairing.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from fulfillment_kernel.exceptions import (
    ConsistencyViolationError,
    InsufficientCapacityError,
    InvalidQuantityError,
    InvalidStateError,
    InventoryRecordNotFoundError,
)
from fulfillment_kernel.models import InventoryTransaction, InventoryTransactionType
from fulfillment_kernel.services.inventory_ledger import InventoryLedger


@pytest.fixture
def ledger(session, deterministic_clock):
    return InventoryLedger(session, deterministic_clock)


@pytest.fixture
def batch(factory, central, product):
    return factory.stocked_batch(central, product, date(2026, 2, 1), Decimal("50"))


def _transactions(session, batch_id):
    return session.execute(
        select(InventoryTransaction)
        .where(InventoryTransaction.batch_id == batch_id)
        .order_by(InventoryTransaction.created_at)
    ).scalars().all()


class TestReserveRelease:
    def test_reserve_within_available(self, ledger, central, batch, session):
        record = ledger.reserve(central.id, batch.id, Decimal("30"))

        assert record.reserved_quantity == Decimal("30")
        assert record.quantity == Decimal("50")
        # reservations write no ledger row
        assert len(_transactions(session, batch.id)) == 1

    def test_reserve_beyond_available_rejected(self, ledger, central, batch, stock_record):
        ledger.reserve(central.id, batch.id, Decimal("30"))

        with pytest.raises(InsufficientCapacityError) as info:
            ledger.reserve(central.id, batch.id, Decimal("21"))

        assert info.value.available == Decimal("20")
        assert stock_record(central.id, batch.id).reserved_quantity == Decimal("30")

    def test_reserve_unknown_pair(self, ledger, central):
        with pytest.raises(InventoryRecordNotFoundError):
            ledger.reserve(central.id, uuid4(), Decimal("1"))

    def test_release_returns_stock(self, ledger, central, batch):
        ledger.reserve(central.id, batch.id, Decimal("30"))
        record = ledger.release(central.id, batch.id, Decimal("10"))

        assert record.reserved_quantity == Decimal("20")

    def test_release_more_than_reserved_rejected(self, ledger, central, batch):
        ledger.reserve(central.id, batch.id, Decimal("5"))

        with pytest.raises(InvalidStateError):
            ledger.release(central.id, batch.id, Decimal("6"))

    def test_float_rejected(self, ledger, central, batch):
        with pytest.raises(InvalidQuantityError):
            ledger.reserve(central.id, batch.id, 1.5)


class TestDispatch:
    def test_dispatch_consumes_reservation_and_writes_export(self, ledger, central, batch, session, test_actor_id):
        ledger.reserve(central.id, batch.id, Decimal("20"))

        tx = ledger.dispatch(central.id, batch.id, Decimal("20"), test_actor_id, reference_id="ship-1")

        assert tx.transaction_type == InventoryTransactionType.EXPORT.value
        assert tx.quantity_change == Decimal("-20")
        assert tx.reason == "Order Dispatch"
        check = ledger.verify_record(central.id, batch.id)
        assert check.quantity == Decimal("30")
        assert check.reserved_quantity == Decimal("0")
        assert check.balanced

    def test_dispatch_without_reservation_is_consistency_violation(self, ledger, central, batch, test_actor_id, captured_logs):
        with pytest.raises(ConsistencyViolationError):
            ledger.dispatch(central.id, batch.id, Decimal("1"), test_actor_id)

        assert any(r["message"] == "consistency_violation" and r["level"] == "CRITICAL" for r in captured_logs())


class TestReceive:
    def test_import_creates_row(self, ledger, central, factory, product, test_actor_id):
        fresh = factory.batch(product, date(2026, 3, 1))

        ledger.receive(central.id, fresh.id, Decimal("12"), InventoryTransactionType.IMPORT, test_actor_id)

        check = ledger.verify_record(central.id, fresh.id)
        assert check.quantity == Decimal("12")
        assert check.balanced

    def test_waste_cannot_touch_reserved_stock(self, ledger, central, batch, test_actor_id):
        ledger.reserve(central.id, batch.id, Decimal("45"))

        with pytest.raises(InsufficientCapacityError):
            ledger.receive(central.id, batch.id, Decimal("6"), InventoryTransactionType.WASTE, test_actor_id)

    def test_negative_adjustment(self, ledger, central, batch, test_actor_id):
        tx = ledger.receive(
            central.id, batch.id, Decimal("-5"), InventoryTransactionType.ADJUSTMENT, test_actor_id, reason="count"
        )

        assert tx.quantity_change == Decimal("-5")
        assert ledger.verify_record(central.id, batch.id).quantity == Decimal("45")

    def test_zero_adjustment_rejected(self, ledger, central, batch, test_actor_id):
        with pytest.raises(InvalidQuantityError):
            ledger.receive(central.id, batch.id, Decimal("0"), InventoryTransactionType.ADJUSTMENT, test_actor_id)

    def test_export_must_use_dispatch(self, ledger, central, batch, test_actor_id):
        with pytest.raises(InvalidQuantityError):
            ledger.receive(central.id, batch.id, Decimal("1"), InventoryTransactionType.EXPORT, test_actor_id)

    def test_decrease_on_missing_row(self, ledger, central, test_actor_id):
        with pytest.raises(InventoryRecordNotFoundError):
            ledger.receive(central.id, uuid4(), Decimal("1"), InventoryTransactionType.WASTE, test_actor_id)


class TestVerifyRecord:
    def test_ledger_sum_tracks_every_movement(self, ledger, central, batch, test_actor_id):
        ledger.reserve(central.id, batch.id, Decimal("10"))
        ledger.dispatch(central.id, batch.id, Decimal("10"), test_actor_id)
        ledger.receive(central.id, batch.id, Decimal("3"), InventoryTransactionType.WASTE, test_actor_id)
        ledger.receive(central.id, batch.id, Decimal("7"), InventoryTransactionType.IMPORT, test_actor_id)

        check = ledger.verify_record(central.id, batch.id)

        assert check.ledger_sum == Decimal("44")
        assert check.balanced
        assert check.within_bounds

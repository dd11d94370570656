"""
Tests for ReportingService read models.
"""

from datetime import date
from decimal import Decimal

from fulfillment_engines.aging import ShelfLifeBucket

WINDOW = (date(2026, 1, 1), date(2026, 1, 31))


class TestStockViews:
    def test_low_stock(self, reporting, factory, central, test_actor_id):
        scarce = factory.product(sku="AAA", min_stock_level=Decimal("20"))
        plenty = factory.product(sku="BBB", min_stock_level=Decimal("5"))
        factory.stocked_batch(central, scarce, date(2026, 2, 1), Decimal("10"))
        factory.stocked_batch(central, plenty, date(2026, 2, 1), Decimal("10"))

        low = reporting.low_stock(central.id)

        assert [s.sku for s in low] == ["AAA"]

    def test_batch_drilldown_in_fefo_order(self, reporting, factory, central, product):
        late = factory.stocked_batch(central, product, date(2026, 3, 1), Decimal("1"))
        early = factory.stocked_batch(central, product, date(2026, 2, 1), Decimal("1"))

        assert [p.batch_id for p in reporting.batch_drilldown(central.id, product.id)] == [early.id, late.id]


class TestOrderRates:
    def test_fulfillment_and_on_time_rates(
        self, reporting, orders, dispatch, place_order, factory, central, product, test_actor_id
    ):
        factory.stocked_batch(central, product, date(2026, 2, 1), Decimal("30"))
        order = place_order((product, "40"))
        approval = orders.approve(order.id, actor_id=test_actor_id)
        dispatch.finalize_dispatch(approval.shipment_id, actor_id=test_actor_id)

        rate = reporting.fulfillment_rate(*WINDOW)
        on_time = reporting.on_time_rate(*WINDOW)

        assert rate.order_count == 1
        assert rate.percent == Decimal("75.00")
        assert on_time.shipped_count == 1
        assert on_time.percent == Decimal("100.00")

    def test_pending_orders_excluded(self, reporting, place_order, product):
        place_order((product, "10"))

        assert reporting.fulfillment_rate(*WINDOW).order_count == 0

    def test_empty_window_is_zero(self, reporting):
        assert reporting.on_time_rate(*WINDOW).percent == Decimal("0")


class TestWasteAndAging:
    def test_waste_report(self, reporting, intake, factory, central, product, test_actor_id):
        batch = factory.stocked_batch(central, product, date(2026, 2, 1), Decimal("10"))
        intake.record_waste(central.id, batch.id, Decimal("3"), "spoiled", actor_id=test_actor_id)

        report = reporting.waste_report(central.id)

        assert report.total_quantity == Decimal("3")
        assert report.total_by_product() == {product.id: Decimal("3")}
        assert report.lines[0].reason == "spoiled"

    def test_aging_uses_clock_date(self, reporting, factory, central, product):
        factory.stocked_batch(central, product, date(2026, 2, 10), Decimal("5"))  # 26 of 30 days left
        factory.stocked_batch(central, product, date(2026, 1, 10), Decimal("2"))

        report = reporting.aging_report(central.id)

        assert report.as_of_date == date(2026, 1, 15)
        totals = report.quantity_by_bucket()
        assert totals[ShelfLifeBucket.FRESH.value] == Decimal("5")
        assert totals[ShelfLifeBucket.EXPIRED.value] == Decimal("2")


class TestReconciliation:
    def test_balanced_after_full_flow(
        self, reporting, orders, dispatch, receiving, place_order, factory, central, product, store_id, test_actor_id
    ):
        factory.stocked_batch(central, product, date(2026, 2, 1), Decimal("30"))
        order = place_order((product, "20"))
        approval = orders.approve(order.id, actor_id=test_actor_id)
        dispatch.finalize_dispatch(approval.shipment_id, actor_id=test_actor_id)
        receiving.receive_shipment(approval.shipment_id, store_id, [], actor_id=test_actor_id)

        rows = reporting.reconciliation()

        assert len(rows) == 2
        assert all(r.balanced and r.within_bounds for r in rows)

    def test_mismatch_is_logged(self, reporting, factory, central, product, session, stock_record, captured_logs):
        batch = factory.stocked_batch(central, product, date(2026, 2, 1), Decimal("30"))
        stock_record(central.id, batch.id).quantity = Decimal("31")
        session.commit()

        rows = reporting.reconciliation(central.id)

        assert not rows[0].balanced
        assert any(r["message"] == "ledger_reconciliation_mismatch" for r in captured_logs())

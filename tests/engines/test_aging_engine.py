"""
Tests for shelf-life bucketing (fulfillment_engines/aging.py).
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment_engines.aging import AgingInput, ShelfLifeAgingCalculator, ShelfLifeBucket

AS_OF = date(2026, 1, 15)


def _item(expiry: date, code: str, qty: str = "10", shelf_life_days: int = 10) -> AgingInput:
    return AgingInput(
        batch_id=uuid4(),
        batch_code=code,
        product_id=uuid4(),
        expiry_date=expiry,
        shelf_life_days=shelf_life_days,
        quantity=Decimal(qty),
    )


class TestBuckets:
    @pytest.mark.parametrize(
        "expiry,bucket",
        [
            (date(2026, 1, 24), ShelfLifeBucket.FRESH),      # 90%
            (date(2026, 1, 20), ShelfLifeBucket.WARNING),    # 50%
            (date(2026, 1, 17), ShelfLifeBucket.CRITICAL),   # 20%
            (date(2026, 1, 15), ShelfLifeBucket.CRITICAL),   # expires today
            (date(2026, 1, 14), ShelfLifeBucket.EXPIRED),
        ],
    )
    def test_classification(self, expiry, bucket):
        report = ShelfLifeAgingCalculator().generate_report([_item(expiry, "B")], AS_OF)

        assert report.items[0].bucket == bucket

    def test_percent_capped_at_hundred(self):
        calc = ShelfLifeAgingCalculator()

        assert calc.remaining_percent(date(2026, 3, 1), 10, AS_OF) == Decimal("100")

    def test_invalid_thresholds_rejected(self):
        with pytest.raises(ValueError):
            ShelfLifeAgingCalculator(warning_percent=20, critical_percent=50)


class TestReport:
    def test_sorted_by_expiry_then_code(self):
        report = ShelfLifeAgingCalculator().generate_report(
            [
                _item(date(2026, 1, 20), "B"),
                _item(date(2026, 1, 18), "C"),
                _item(date(2026, 1, 20), "A"),
            ],
            AS_OF,
        )

        assert [i.batch_code for i in report.items] == ["C", "A", "B"]

    def test_quantity_by_bucket(self):
        report = ShelfLifeAgingCalculator().generate_report(
            [
                _item(date(2026, 1, 24), "F", qty="7"),
                _item(date(2026, 1, 10), "X", qty="3"),
            ],
            AS_OF,
        )

        totals = report.quantity_by_bucket()
        assert totals["fresh"] == Decimal("7")
        assert totals["expired"] == Decimal("3")
        assert totals["warning"] == Decimal("0")

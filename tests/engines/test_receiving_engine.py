"""
Tests for receipt arithmetic (fulfillment_engines/receiving.py).
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment_engines.receiving import (
    ReceiptReport,
    ReceivingCalculator,
    ShippedLine,
    compute_receipt_line,
)
from fulfillment_kernel.exceptions import ReceivingValidationError

BATCH = uuid4()
PRODUCT = uuid4()


def _line(qty: str = "100") -> ShippedLine:
    return ShippedLine(batch_id=BATCH, product_id=PRODUCT, shipped_quantity=Decimal(qty))


class TestReceiptLine:
    def test_short_and_damaged_delivery(self):
        outcome = compute_receipt_line(
            _line("100"),
            ReceiptReport(batch_id=BATCH, actual_quantity=Decimal("90"), damaged_quantity=Decimal("10")),
        )

        assert outcome.good_quantity == Decimal("80")
        assert outcome.missing_quantity == Decimal("10")
        assert outcome.damaged_quantity == Decimal("10")
        assert outcome.has_discrepancy
        assert outcome.describe() == "Missing: 10.00, Damaged: 10.00"

    def test_unreported_line_received_in_full(self):
        outcome = compute_receipt_line(_line("40"), None)

        assert outcome.good_quantity == Decimal("40")
        assert not outcome.has_discrepancy

    def test_over_delivery_is_not_missing(self):
        outcome = compute_receipt_line(
            _line("10"), ReceiptReport(batch_id=BATCH, actual_quantity=Decimal("12"))
        )

        assert outcome.missing_quantity == Decimal("0")
        assert outcome.good_quantity == Decimal("12")

    def test_damaged_above_actual_rejected(self):
        with pytest.raises(ReceivingValidationError):
            compute_receipt_line(
                _line("10"),
                ReceiptReport(batch_id=BATCH, actual_quantity=Decimal("5"), damaged_quantity=Decimal("6")),
            )

    def test_negative_actual_rejected(self):
        with pytest.raises(ReceivingValidationError):
            compute_receipt_line(_line("10"), ReceiptReport(batch_id=BATCH, actual_quantity=Decimal("-1")))


class TestReconcile:
    def test_unknown_batch_rejected(self):
        with pytest.raises(ReceivingValidationError):
            ReceivingCalculator().reconcile(
                [_line()], [ReceiptReport(batch_id=uuid4(), actual_quantity=Decimal("1"))]
            )

    def test_duplicate_report_rejected(self):
        report = ReceiptReport(batch_id=BATCH, actual_quantity=Decimal("1"))
        with pytest.raises(ReceivingValidationError):
            ReceivingCalculator().reconcile([_line()], [report, report])

    def test_one_outcome_per_shipped_line(self):
        other = ShippedLine(batch_id=uuid4(), product_id=PRODUCT, shipped_quantity=Decimal("5"))
        outcomes = ReceivingCalculator().reconcile(
            [_line("100"), other],
            [ReceiptReport(batch_id=BATCH, actual_quantity=Decimal("90"), damaged_quantity=Decimal("10"))],
        )

        assert len(outcomes) == 2
        assert [o.has_discrepancy for o in outcomes] == [True, False]

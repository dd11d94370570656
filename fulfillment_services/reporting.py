"""
fulfillment_services.reporting -- Read-only analytics for collaborators.

Thin composition of the kernel selectors and the shelf-life aging engine.
Nothing here writes or locks.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_config.schema import EngineSettings
from fulfillment_engines.aging import AgingInput, AgingReport, ShelfLifeAgingCalculator
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.selectors.reporting_selector import (
    FulfillmentRate,
    OnTimeRate,
    ReconciliationRow,
    ReportingSelector,
    WasteReport,
)
from fulfillment_kernel.selectors.stock_selector import (
    ProductStockSummary,
    StockPosition,
    StockSelector,
)

logger = get_logger("services.reporting")


class ReportingService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._stock = StockSelector(session, self._settings.quantity_decimal_places)
        self._reports = ReportingSelector(session, self._settings.quantity_decimal_places)
        self._aging = ShelfLifeAgingCalculator(
            warning_percent=self._settings.aging.warning_percent,
            critical_percent=self._settings.aging.critical_percent,
        )

    def stock_summary(self, warehouse_id: UUID) -> list[ProductStockSummary]:
        return self._stock.stock_summary(warehouse_id)

    def low_stock(self, warehouse_id: UUID) -> list[ProductStockSummary]:
        return [s for s in self._stock.stock_summary(warehouse_id) if s.is_low_stock]

    def batch_drilldown(self, warehouse_id: UUID, product_id: UUID) -> list[StockPosition]:
        return self._stock.batch_positions(warehouse_id, product_id)

    def fulfillment_rate(self, start: date, end: date) -> FulfillmentRate:
        return self._reports.fulfillment_rate(start, end)

    def on_time_rate(self, start: date, end: date) -> OnTimeRate:
        return self._reports.on_time_rate(start, end)

    def waste_report(
        self,
        warehouse_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> WasteReport:
        return self._reports.waste_report(warehouse_id, start, end)

    def aging_report(self, warehouse_id: UUID, as_of_date: date | None = None) -> AgingReport:
        rows = self._reports.aging_rows(warehouse_id)
        return self._aging.generate_report(
            [
                AgingInput(
                    batch_id=r.batch_id,
                    batch_code=r.batch_code,
                    product_id=r.product_id,
                    expiry_date=r.expiry_date,
                    shelf_life_days=r.shelf_life_days,
                    quantity=r.quantity,
                )
                for r in rows
            ],
            as_of_date=as_of_date or self._clock.today(),
        )

    def reconciliation(self, warehouse_id: UUID | None = None) -> list[ReconciliationRow]:
        """Ledger vs balance for every stock row; logs any mismatch."""
        rows = self._reports.reconciliation(warehouse_id)
        broken = [r for r in rows if not (r.balanced and r.within_bounds)]
        if broken:
            logger.error(
                "ledger_reconciliation_mismatch",
                extra={
                    "mismatch_count": len(broken),
                    "rows": [
                        {
                            "warehouse_id": str(r.warehouse_id),
                            "batch_id": str(r.batch_id),
                            "quantity": str(r.quantity),
                            "reserved_quantity": str(r.reserved_quantity),
                            "ledger_sum": str(r.ledger_sum),
                        }
                        for r in broken
                    ],
                },
            )
        return rows

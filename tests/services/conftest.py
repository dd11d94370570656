"""
Orchestrator fixtures: services wired to the per-test session and the
deterministic clock, plus a helper that places a pending order.
"""

from datetime import date
from decimal import Decimal

import pytest

from fulfillment_services import (
    ClaimService,
    OrderFulfillmentService,
    OrderLineRequest,
    ReceivingService,
    ReportingService,
    ShipmentDispatchService,
    StockIntakeService,
)

DELIVERY_DATE = date(2026, 1, 20)


@pytest.fixture
def orders(session, deterministic_clock, settings):
    return OrderFulfillmentService(session, clock=deterministic_clock, settings=settings)


@pytest.fixture
def dispatch(session, deterministic_clock, settings):
    return ShipmentDispatchService(session, clock=deterministic_clock, settings=settings)


@pytest.fixture
def receiving(session, deterministic_clock, settings):
    return ReceivingService(session, clock=deterministic_clock, settings=settings)


@pytest.fixture
def claims(session, deterministic_clock, settings):
    return ClaimService(session, clock=deterministic_clock, settings=settings)


@pytest.fixture
def intake(session, deterministic_clock, settings):
    return StockIntakeService(session, clock=deterministic_clock, settings=settings)


@pytest.fixture
def reporting(session, deterministic_clock, settings):
    return ReportingService(session, clock=deterministic_clock, settings=settings)


@pytest.fixture
def place_order(orders, store_warehouse, store_id, test_actor_id):
    """Create a pending order for the fixture store: place_order((product, "30"), ...)."""

    def _place(*lines, delivery_date=DELIVERY_DATE):
        return orders.create_order(
            store_id,
            delivery_date,
            [OrderLineRequest(product.id, Decimal(qty)) for product, qty in lines],
            actor_id=test_actor_id,
        )

    return _place

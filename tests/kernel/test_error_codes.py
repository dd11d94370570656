"""
Every FulfillmentError subclass exposes a unique machine-readable code.
"""

from decimal import Decimal
from uuid import uuid4

import fulfillment_kernel.exceptions as exc_module
from fulfillment_kernel.exceptions import (
    ClaimNotFoundError,
    FulfillmentError,
    InvalidTransitionError,
    LowFillRateError,
    NotFoundError,
)


def _all_error_classes():
    return [
        obj
        for obj in vars(exc_module).values()
        if isinstance(obj, type) and issubclass(obj, FulfillmentError)
    ]


def test_codes_are_unique():
    codes = [cls.code for cls in _all_error_classes()]
    assert len(codes) == len(set(codes))


def test_every_subclass_overrides_code():
    for cls in _all_error_classes():
        if cls is not FulfillmentError:
            assert cls.code != FulfillmentError.code, cls.__name__


def test_not_found_message_names_entity():
    claim_id = uuid4()
    err = ClaimNotFoundError(claim_id)

    assert isinstance(err, NotFoundError)
    assert err.entity_id == str(claim_id)
    assert "Claim" in str(err)


def test_transition_error_carries_states():
    err = InvalidTransitionError("Order", uuid4(), "approved", "pending")

    assert err.from_status == "approved"
    assert err.to_status == "pending"


def test_low_fill_rate_keeps_decimals():
    err = LowFillRateError(uuid4(), Decimal("0.10"), Decimal("0.20"))

    assert err.fill_rate == Decimal("0.10")
    assert err.code == "LOW_FILL_RATE"

"""
Module: fulfillment_kernel.db.types
Responsibility: Annotated type aliases and the quantity normalization helpers
    shared by every model and service.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in stock arithmetic.  to_quantity() rejects float
      input outright; round_quantity() is the only sanctioned rounding
      function for stock quantities.

Failure modes:
    - InvalidQuantityError on float, bool, non-numeric, NaN or infinite input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

from fulfillment_kernel.exceptions import InvalidQuantityError

# Stock quantity: 38 digits total, 9 decimal places
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Short identifier strings (status values, types, codes)
ShortCode = Annotated[str, String(50)]

# Free text (reasons, notes)
LongText = Annotated[str, String(4000)]

QUANTITY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_quantity(
    value: Decimal,
    decimal_places: int = QUANTITY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a stock quantity to the configured number of decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized with ROUND_HALF_UP by default.
    """
    quantize_str = "1" if decimal_places == 0 else "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_quantity(
    value,
    decimal_places: int = QUANTITY_DECIMAL_PLACES,
) -> Decimal:
    """
    Normalize caller input into a Decimal quantity.

    Accepts Decimal, int and numeric strings.  Floats are rejected because
    their binary representation drifts.

    Raises:
        InvalidQuantityError: On float, bool, unparseable or non-finite input.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidQuantityError(value, "floats are not accepted")
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, (int, str)):
        try:
            dec = Decimal(value)
        except InvalidOperation:
            raise InvalidQuantityError(value, "not a number") from None
    else:
        raise InvalidQuantityError(value, f"unsupported type {type(value).__name__}")
    if not dec.is_finite():
        raise InvalidQuantityError(value, "not finite")
    return round_quantity(dec, decimal_places)


def positive_quantity(
    value,
    decimal_places: int = QUANTITY_DECIMAL_PLACES,
) -> Decimal:
    """to_quantity() that additionally requires a value > 0."""
    dec = to_quantity(value, decimal_places)
    if dec <= ZERO:
        raise InvalidQuantityError(value, "must be greater than zero")
    return dec

"""Money arithmetic on ``decimal.Decimal``.

Every monetary amount in the engine is a Decimal rounded to cents with
ROUND_HALF_UP, which rounds ties away from zero for both signs.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence, Union

Number = Union[Decimal, int, float, str]
MonthlyArray = List[Decimal]

CENT = Decimal("0.01")
ZERO = Decimal("0")
ONE = Decimal("1")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert a plain number to Decimal.

    Floats go through ``str()`` so ``0.05`` becomes ``Decimal("0.05")``
    rather than its binary expansion. ``None`` is treated as zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary amount")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round2(value: Number) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def zeros(length: int) -> MonthlyArray:
    """Fresh zero-filled monthly array."""
    return [ZERO] * length


def money_sum(values: Iterable[Optional[Number]]) -> Decimal:
    """Sum values as Decimal, treating ``None`` as zero."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total


def to_money_array(values: Optional[Sequence[Optional[Number]]]) -> MonthlyArray:
    """Copy a sequence into a list of Decimals (``None`` entries become zero)."""
    if values is None:
        return []
    return [to_decimal(v) for v in values]


def to_float_array(values: Sequence[Optional[Number]]) -> List[float]:
    """Convert a monetary sequence to floats for rate/ratio arithmetic."""
    return [float(to_decimal(v)) for v in values]

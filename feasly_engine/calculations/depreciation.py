"""Straight-line depreciation of capitalised cost rows."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Sequence, Tuple

from ..models.items import CostItem, DepreciationPolicy
from ..models.money import MonthlyArray, Number, ZERO, to_money_array, zeros
from .costs import expand_cost


@dataclass
class DepreciationSchedule:
    """Depreciation per item and in total, with net book value roll-forward."""

    per_item: List[MonthlyArray]
    total: MonthlyArray
    nbv: MonthlyArray

    @property
    def total_depreciation(self) -> Decimal:
        return sum(self.total, ZERO)


def depreciable_basis(capex_row: Sequence[Number], policy: DepreciationPolicy) -> Decimal:
    """Capex spent up to and including the start month, less salvage (floored at 0)."""
    row = to_money_array(capex_row)
    basis = sum(row[: policy.start_month + 1], ZERO)
    return max(basis - policy.salvage_value, ZERO)


def straight_line_depreciation(capex_row: Sequence[Number], policy: DepreciationPolicy) -> MonthlyArray:
    """Depreciate a capex row evenly from ``start_month`` over the useful life.

    The charge is spread with the cost expander, so it is rounded to cents
    with the remainder in the final month of life. Months past the end of the
    row are dropped.

    Args:
        capex_row: Capitalised cash outlays per period.
        policy: Start month, useful life, and salvage value.

    Returns:
        Depreciation per period, same length as ``capex_row``.
    """
    horizon = len(capex_row)
    basis = depreciable_basis(capex_row, policy)
    if basis == ZERO or policy.useful_life_months == 0 or policy.start_month >= horizon:
        return zeros(horizon)

    last_month = policy.start_month + policy.useful_life_months - 1
    spread = CostItem(amount=basis, start_period=policy.start_month, end_period=last_month)
    row = expand_cost(spread, max(horizon, last_month + 1))
    return row[:horizon]


def compute_depreciation(items: Iterable[Tuple[Sequence[Number], DepreciationPolicy]]) -> DepreciationSchedule:
    """Depreciate several capex rows and roll forward net book value.

    NBV[t] = cumulative capex to t - cumulative depreciation to t, floored
    at zero. Rows of different lengths are zero-padded to the longest.

    Example:
        >>> schedule = compute_depreciation([
        ...     ([1200, 0, 0, 0], DepreciationPolicy(start_month=0, useful_life_months=4)),
        ... ])
        >>> schedule.total
        [Decimal('300.00'), Decimal('300.00'), Decimal('300.00'), Decimal('300.00')]
    """
    items = list(items)
    horizon = max((len(row) for row, _ in items), default=0)

    per_item = []
    total = zeros(horizon)
    capex_total = zeros(horizon)
    for capex_row, policy in items:
        row = to_money_array(capex_row)
        row.extend(zeros(horizon - len(row)))
        series = straight_line_depreciation(row, policy)
        per_item.append(series)
        for t in range(horizon):
            total[t] += series[t]
            capex_total[t] += row[t]

    nbv = zeros(horizon)
    cumulative_capex = ZERO
    cumulative_dep = ZERO
    for t in range(horizon):
        cumulative_capex += capex_total[t]
        cumulative_dep += total[t]
        nbv[t] = max(cumulative_capex - cumulative_dep, ZERO)

    return DepreciationSchedule(per_item=per_item, total=total, nbv=nbv)

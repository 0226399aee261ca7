"""Cost spreading: even-spread expansion with escalation, and construction retention."""

import logging
from decimal import Decimal

from ..models.items import CostItem, ConstructionItem, ValidationError
from ..models.money import MonthlyArray, ONE, ZERO, Number, round2, to_decimal, zeros
from .trace import trace

logger = logging.getLogger(__name__)


def escalation_factor(annual_rate: Number, months_elapsed: int) -> Decimal:
    """Compound escalation factor for an elapsed duration.

    The annual rate is compounded over the duration expressed in years,
    so 18 months at 5% gives ``1.05 ** 1.5`` rather than monthly steps.

    Args:
        annual_rate: Annual escalation rate (e.g., 0.05 for 5%).
        months_elapsed: Elapsed months.

    Returns:
        Multiplicative factor (1 when either input is zero).
    """
    rate = to_decimal(annual_rate)
    if rate == ZERO or months_elapsed == 0:
        return ONE
    return (ONE + rate) ** (Decimal(months_elapsed) / Decimal(12))


def expand_cost(item: CostItem, timeline_months: int) -> MonthlyArray:
    """Spread a lump amount evenly across ``[start_period, end_period]``.

    Escalated total = amount x (1 + escalation_rate) ^ (months / 12), where
    months = end_period - start_period. Each period receives the escalated
    total divided by the number of periods, rounded to cents; the rounding
    remainder is added to ``end_period`` so the row sums to the escalated
    total.

    Args:
        item: The cost (or revenue) line item.
        timeline_months: Length of the output array. Must exceed end_period.

    Returns:
        List of Decimals of length ``timeline_months``.

    Raises:
        ValidationError: If the item's range falls outside the timeline.

    Example:
        >>> row = expand_cost(CostItem(1_200_000, 1, 3), 12)
        >>> row[1:4]
        [Decimal('400000.00'), Decimal('400000.00'), Decimal('400000.00')]
    """
    if not isinstance(item, CostItem):
        raise ValidationError(f"expand_cost expects a CostItem, got {type(item).__name__}")
    if item.end_period < item.start_period:
        raise ValidationError(
            f"end_period ({item.end_period}) must be >= start_period ({item.start_period})"
        )
    if item.end_period >= timeline_months:
        raise ValidationError(
            f"end_period {item.end_period} is outside a {timeline_months}-month timeline"
        )

    months = item.duration_months
    escalated = item.amount * escalation_factor(item.escalation_rate, months)
    per_period = round2(escalated / (months + 1))

    row = zeros(timeline_months)
    for period in range(item.start_period, item.end_period + 1):
        row[period] = per_period

    # Last period absorbs the rounding drift
    diff = round2(escalated - sum(row, ZERO))
    row[item.end_period] += diff

    trace(
        "costs.escalated_total",
        sum(row, ZERO),
        {"item.amount": item.amount, "item.escalation_rate": item.escalation_rate},
    )

    return row


def build_construction_row(item: ConstructionItem, timeline_months: int) -> MonthlyArray:
    """Build a construction cash row with retention withholding and release.

    Each period pays ``value - round2(value x retention_percent)``; the total
    retained is released as one lump at ``end_period + retention_release_lag``.
    The row is extended with zeros when the release falls past the timeline,
    so total cash always equals the escalated cost and only its timing moves.

    Args:
        item: Construction line item.
        timeline_months: Base timeline length (must exceed end_period).

    Returns:
        List of Decimals, at least ``timeline_months`` long.

    Example:
        >>> item = ConstructionItem(12_000_000, 6, 24, 0.05,
        ...                         retention_percent=0.05, retention_release_lag=2)
        >>> row = build_construction_row(item, 60)
        >>> row[26]
        Decimal('645557.90')  # ~5% of the escalated 12.91M
    """
    if not isinstance(item, ConstructionItem):
        raise ValidationError(
            f"build_construction_row expects a ConstructionItem, got {type(item).__name__}"
        )
    row = expand_cost(item, timeline_months)

    retention_pct = item.retention_percent
    if retention_pct <= ZERO:
        return row

    retained_total = ZERO
    for period, value in enumerate(row):
        retained = round2(value * retention_pct)
        row[period] = round2(value - retained)
        retained_total += retained

    release_period = item.end_period + item.retention_release_lag
    if release_period >= len(row):
        row.extend(zeros(release_period + 1 - len(row)))
        logger.debug(
            "Retention release at period %d extends row beyond %d-month timeline",
            release_period,
            timeline_months,
        )
    row[release_period] += round2(retained_total)

    trace(
        "costs.retention_release",
        round2(retained_total),
        {"costs.escalated_total": sum(row, ZERO), "item.retention_percent": retention_pct},
        period=release_period,
    )

    return row

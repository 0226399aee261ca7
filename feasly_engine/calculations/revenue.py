"""Revenue rows for unit sales and room/unit rentals."""

from decimal import Decimal
from typing import Iterable

from ..models.items import CostItem, RentalLine, SaleLine, ValidationError
from ..models.lookups import DAYS_PER_MONTH
from ..models.money import MonthlyArray, ONE, ZERO, round2, zeros
from .costs import expand_cost
from .trace import trace


def build_sale_revenue(line: SaleLine, horizon: int) -> MonthlyArray:
    """Spread sales proceeds evenly over the sales window.

    Gross proceeds (units x price) are escalated and spread with the same
    rule as cost items, so the row sums to the escalated gross.

    Args:
        line: Sales line.
        horizon: Output length in months.

    Returns:
        Monthly sales revenue.

    Example:
        >>> row = build_sale_revenue(SaleLine(10, 500_000, 24, 33), 60)
        >>> sum(row)
        Decimal('5000000.00')
    """
    spread = CostItem(
        amount=line.gross_amount,
        start_period=line.start_period,
        end_period=line.end_period,
        escalation_rate=line.escalation_rate,
    )
    row = expand_cost(spread, horizon)
    trace("revenue.sales", sum(row, ZERO), {"sale.units": line.units, "sale.price_per_unit": line.price_per_unit})
    return row


def monthly_rental_income(line: RentalLine) -> Decimal:
    """Unescalated monthly income: rooms x ADR x occupancy x 365/12."""
    return line.rooms * line.adr * line.occupancy_rate * DAYS_PER_MONTH


def build_rental_revenue(line: RentalLine, horizon: int) -> MonthlyArray:
    """Monthly rental income stepped up once per full operating year.

    Income in period t is the base monthly income x (1 + annual_escalation)
    ^ years_elapsed, where years_elapsed = (t - start_period) // 12, rounded
    to cents.

    Raises:
        ValidationError: If the rental window ends past the horizon.
    """
    if line.end_period >= horizon:
        raise ValidationError(
            f"end_period {line.end_period} is outside a {horizon}-month timeline"
        )

    base = monthly_rental_income(line)
    growth = ONE + line.annual_escalation

    row = zeros(horizon)
    for period in range(line.start_period, line.end_period + 1):
        years_elapsed = (period - line.start_period) // 12
        row[period] = round2(base * growth ** years_elapsed)

    trace(
        "revenue.rental",
        sum(row, ZERO),
        {"rental.rooms": line.rooms, "rental.adr": line.adr, "rental.occupancy_rate": line.occupancy_rate},
    )
    return row


def build_revenue_row(sale_lines: Iterable[SaleLine], rental_lines: Iterable[RentalLine], horizon: int) -> MonthlyArray:
    """Total revenue across all sale and rental lines."""
    total = zeros(horizon)
    for line in sale_lines:
        for period, value in enumerate(build_sale_revenue(line, horizon)):
            total[period] += value
    for line in rental_lines:
        for period, value in enumerate(build_rental_revenue(line, horizon)):
            total[period] += value
    return total

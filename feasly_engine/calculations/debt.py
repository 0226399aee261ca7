"""Senior loan schedule: draws against funding need, interest, and repayment."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

import numpy_financial as npf

from ..models.items import LoanFacility, ValidationError
from ..models.money import MonthlyArray, Number, ZERO, round2, to_decimal, to_money_array, zeros
from ..models.scenario_config import AmortizationType
from .trace import trace

logger = logging.getLogger(__name__)


@dataclass
class LoanSchedule:
    """Monthly loan ledger.

    ``interest`` is the full accrual; the part rolled into the balance during
    the draw window is in ``interest_capitalized``. ``balance`` is closing.
    """

    draws: MonthlyArray
    interest: MonthlyArray
    interest_capitalized: MonthlyArray
    principal: MonthlyArray
    balance: MonthlyArray
    fees_upfront: MonthlyArray

    @property
    def total_drawn(self) -> Decimal:
        return sum(self.draws, ZERO)

    @property
    def interest_paid(self) -> MonthlyArray:
        """Interest settled in cash each period."""
        return [i - c for i, c in zip(self.interest, self.interest_capitalized)]

    @property
    def debt_service(self) -> MonthlyArray:
        """Cash interest plus principal per period."""
        return [i + p for i, p in zip(self.interest_paid, self.principal)]

    @property
    def outstanding_at_end(self) -> Decimal:
        return self.balance[-1] if self.balance else ZERO


def monthly_interest(balance: Number, annual_rate: Number) -> Decimal:
    """One month of simple interest, rounded to cents."""
    return round2(to_decimal(balance) * to_decimal(annual_rate) / 12)


def accrue_interest_row(balances: Sequence[Number], annual_rate: Number) -> MonthlyArray:
    """Interest for each period on the given opening balances.

    Args:
        balances: Opening balance per period.
        annual_rate: Nominal annual rate, accrued as rate / 12 per month.

    Returns:
        Interest per period, rounded to cents.
    """
    return [monthly_interest(b, annual_rate) for b in balances]


def level_payment(balance: Decimal, annual_rate: Decimal, months: int) -> Decimal:
    """Level monthly payment that retires ``balance`` over ``months``.

    Uses numpy_financial.pmt (returns negative, so negate); a zero rate
    gives equal principal instalments.
    """
    if months <= 0:
        return balance
    monthly_rate = float(annual_rate) / 12
    if monthly_rate == 0:
        return round2(balance / months)
    payment = -npf.pmt(rate=monthly_rate, nper=months, pv=float(balance), fv=0)
    return round2(payment)


def build_loan_schedule(
    facility: LoanFacility,
    funding_need: Sequence[Optional[Number]],
    horizon: int,
) -> LoanSchedule:
    """Draw, accrue, and repay a single senior facility.

    Per period t:
        - interest = round2(opening balance x annual_rate / 12); during the
          draw window it is capitalised when ``capitalize_interest`` is set
        - draws cover ``funding_need[t]`` within [start_period,
          first_repayment_period), capped by the undrawn limit
        - principal follows the amortization profile from
          ``first_repayment_period`` to ``maturity_period``; any residual
          balance is cleared at maturity
        - the upfront fee (limit x upfront_fee_pct) is charged at start_period

    A maturity beyond the horizon leaves the balance outstanding.

    Args:
        facility: Loan terms.
        funding_need: Cash needed per period (construction cost).
        horizon: Schedule length in months.

    Returns:
        LoanSchedule with arrays of length ``horizon``.

    Example:
        >>> loan = LoanFacility(limit=1_000_000, annual_rate=0.06,
        ...                     start_period=0, maturity_period=11)
        >>> schedule = build_loan_schedule(loan, [600_000, 600_000], 12)
        >>> schedule.draws[:2]
        [Decimal('600000'), Decimal('400000')]
    """
    need = to_money_array(funding_need)
    if len(need) > horizon:
        raise ValidationError(
            f"funding_need has {len(need)} periods, horizon is {horizon}"
        )
    need.extend(zeros(horizon - len(need)))

    draws = zeros(horizon)
    interest = zeros(horizon)
    capitalized = zeros(horizon)
    principal = zeros(horizon)
    balance = zeros(horizon)
    fees_upfront = zeros(horizon)

    if facility.start_period < horizon:
        fees_upfront[facility.start_period] = round2(facility.limit * facility.upfront_fee_pct)

    repay_from = facility.first_repayment_period
    repay_months = facility.maturity_period - repay_from + 1
    instalment = None
    drawn_total = ZERO
    opening = ZERO

    for t in range(horizon):
        interest[t] = monthly_interest(opening, facility.annual_rate)
        closing = opening

        in_draw_window = facility.start_period <= t < repay_from
        if in_draw_window and facility.capitalize_interest:
            capitalized[t] = interest[t]
            closing += interest[t]

        if in_draw_window and need[t] > ZERO:
            headroom = max(facility.limit - drawn_total, ZERO)
            draws[t] = min(need[t], headroom)
            drawn_total += draws[t]
            closing += draws[t]

        if repay_from <= t <= facility.maturity_period and closing > ZERO:
            if t == facility.maturity_period:
                principal[t] = closing
            elif facility.amortization == AmortizationType.STRAIGHT:
                if instalment is None:
                    instalment = round2(closing / repay_months)
                principal[t] = min(instalment, closing)
            elif facility.amortization == AmortizationType.ANNUITY:
                if instalment is None:
                    instalment = level_payment(closing, facility.annual_rate, repay_months)
                principal[t] = min(max(instalment - interest[t], ZERO), closing)
            closing -= principal[t]

        balance[t] = closing
        opening = closing

    if facility.maturity_period >= horizon and opening > ZERO:
        logger.debug(
            "Loan matures at period %d beyond %d-month horizon; %s outstanding",
            facility.maturity_period,
            horizon,
            opening,
        )

    trace("debt.total_drawn", drawn_total, {"costs.construction": sum(need, ZERO)})
    return LoanSchedule(
        draws=draws,
        interest=interest,
        interest_capitalized=capitalized,
        principal=principal,
        balance=balance,
        fees_upfront=fees_upfront,
    )

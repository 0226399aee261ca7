"""Return metrics: IRR solver and KPI aggregation."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

import numpy as np

from ..models.items import ValidationError
from ..models.lookups import DEFAULT_IRR_GUESSES, IRR_MAX_ITERATIONS, IRR_TOLERANCE, PERIODS_PER_YEAR
from ..models.money import ONE, ZERO, Number, round2, to_decimal, to_float_array
from ..models.scenario_config import EngineSettings
from .trace import trace

logger = logging.getLogger(__name__)


@dataclass
class KPIs:
    """Scalar investment metrics for a net cash-flow series.

    ``project_irr`` is periodic (same period as the cash flows) and is
    ``None`` when no rate could be found; callers render that as N/A.
    """

    project_irr: Optional[float]
    npv: Decimal
    profit: Decimal

    total_revenue: Decimal = ZERO  # Sum of positive periods
    total_costs: Decimal = ZERO  # Absolute sum of negative periods
    payback_period: Optional[int] = None  # First period cumulative cash turns non-negative


def _newton_from(
    flows: np.ndarray,
    periods: np.ndarray,
    guess: float,
    tol: float,
    max_iter: int,
) -> Optional[float]:
    """Run Newton-Raphson from one starting guess; None if it does not converge."""
    rate = float(guess)
    for _ in range(max_iter):
        base = 1.0 + rate
        if base <= 0.0:
            return None  # discount factor undefined at or below -100%

        discount = base ** periods
        value = float(np.sum(flows / discount))
        if not np.isfinite(value):
            return None
        if abs(value) < tol:
            return rate

        derivative = float(np.sum(-periods * flows / (discount * base)))
        if derivative == 0.0 or not np.isfinite(derivative):
            return None

        rate = rate - value / derivative
        if not np.isfinite(rate):
            return None
    return None


def calc_irr(
    cashflow: Sequence[Number],
    guesses: Sequence[float] = DEFAULT_IRR_GUESSES,
    tol: float = IRR_TOLERANCE,
    max_iter: int = IRR_MAX_ITERATIONS,
) -> Optional[float]:
    """Solve for the periodic IRR with multi-guess Newton-Raphson.

    f(r)  = sum(cf[i] / (1 + r)^i)
    f'(r) = sum(-i x cf[i] / (1 + r)^(i + 1))

    Guesses are tried in the given order and the first one whose iterate
    reaches |f(r)| < tol is returned. Guesses are not ranked against each
    other, so for cash flows with several sign changes the guess order
    decides which root is reported.

    Args:
        cashflow: Net cash flow per period (index = period).
        guesses: Starting rates, tried in order.
        tol: Convergence tolerance on |f(r)| in currency units.
        max_iter: Newton iterations per guess.

    Returns:
        Periodic IRR as a decimal rate, or None if no guess converges.

    Example:
        >>> calc_irr([-1000, 200, 300, 400, 500])
        0.1282...
    """
    flows = np.asarray(to_float_array(cashflow), dtype=float)
    if flows.size == 0:
        return None
    periods = np.arange(flows.size, dtype=float)

    with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
        for guess in guesses:
            rate = _newton_from(flows, periods, guess, tol, max_iter)
            if rate is not None:
                logger.debug("IRR converged to %.6f from guess %s", rate, guess)
                return rate

    logger.debug("IRR did not converge for %d-period cash flow", flows.size)
    return None


def annualize_rate(rate: Optional[float], periods_per_year: int = PERIODS_PER_YEAR) -> Optional[float]:
    """Convert a periodic rate to an effective annual rate.

    Annual = (1 + periodic) ^ periods_per_year - 1. ``None`` passes through.
    """
    if rate is None:
        return None
    return (1 + rate) ** periods_per_year - 1


def periodic_rate(annual_rate: Number, periods_per_year: int = PERIODS_PER_YEAR) -> Decimal:
    """Convert an effective annual rate to the equivalent periodic rate."""
    annual = to_decimal(annual_rate)
    if annual == ZERO:
        return ZERO
    return (ONE + annual) ** (ONE / Decimal(periods_per_year)) - ONE


def calculate_npv(net_cashflow: Sequence[Number], discount_rate: Number) -> Decimal:
    """Discounted sum with period 0 undiscounted.

    NPV = sum(cf[i] / (1 + discount_rate)^i). The period index is the
    exponent, so ``discount_rate`` must be per period (monthly for monthly
    arrays). Not rounded.
    """
    factor = ONE + to_decimal(discount_rate)
    if factor <= ZERO:
        raise ValidationError("discount_rate must be greater than -100%")

    npv = ZERO
    discount = ONE
    for value in net_cashflow:
        npv += to_decimal(value) / discount
        discount *= factor
    return npv


def calculate_payback_period(net_cashflow: Sequence[Number]) -> Optional[int]:
    """First period at which cumulative cash recovers to >= 0 after a deficit."""
    cumulative = ZERO
    was_negative = False
    for period, value in enumerate(net_cashflow):
        cumulative += to_decimal(value)
        if cumulative < ZERO:
            was_negative = True
        elif was_negative:
            return period
    return None


def compute_kpis(
    net_cashflow: Sequence[Number],
    discount_rate: Number,
    settings: Optional[EngineSettings] = None,
) -> KPIs:
    """Aggregate profit, NPV, and IRR for a net cash-flow series.

    - profit = sum(net_cashflow), undiscounted
    - npv = sum(cf[i] / (1 + discount_rate)^i)
    - project_irr = calc_irr(net_cashflow) with default guesses

    With a zero discount rate NPV equals profit exactly.

    Args:
        net_cashflow: Net cash flow per period.
        discount_rate: Discount rate per period (match the array's period).
        settings: Solver settings; defaults from ``lookups``.

    Returns:
        KPIs with Decimal money fields rounded to cents.

    Example:
        >>> kpis = compute_kpis([-1000, 200, 300, 400, 500], 0.10)
        >>> kpis.profit
        Decimal('400.00')
        >>> kpis.npv
        Decimal('71.78')
    """
    values = [to_decimal(v) for v in net_cashflow]

    profit = round2(sum(values, ZERO))
    npv = round2(calculate_npv(values, discount_rate))
    if settings is None:
        project_irr = calc_irr(values)
    else:
        project_irr = calc_irr(
            values,
            guesses=settings.irr_guesses,
            tol=settings.irr_tolerance,
            max_iter=settings.irr_max_iterations,
        )

    total_revenue = round2(sum((v for v in values if v > ZERO), ZERO))
    total_costs = round2(abs(sum((v for v in values if v < ZERO), ZERO)))

    trace("returns.profit", profit, {"periods": len(values)})
    trace("returns.npv", npv, {"input.discount_rate": to_decimal(discount_rate)})
    if project_irr is None:
        logger.warning("No IRR found for %d-period cash flow", len(values))
    else:
        trace("returns.project_irr", project_irr, {"returns.profit": profit})

    return KPIs(
        project_irr=project_irr,
        npv=npv,
        profit=profit,
        total_revenue=total_revenue,
        total_costs=total_costs,
        payback_period=calculate_payback_period(values),
    )

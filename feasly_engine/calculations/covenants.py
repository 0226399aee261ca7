"""Debt covenant tests: DSCR and ICR, point-in-time and LTM, with grace periods."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..models.items import CovenantTerms, ValidationError
from ..models.money import Number, to_float_array
from ..models.scenario_config import TestBasis
from .trace import trace

logger = logging.getLogger(__name__)


@dataclass
class CovenantResult:
    """Coverage ratios, headroom, and breach flags per period.

    Ratios are floats: ``inf`` when the denominator is zero, ``nan`` for LTM
    periods before the window has filled. Headroom is ``nan`` when the
    covenant has no threshold.
    """

    dscr: np.ndarray
    dscr_strict: np.ndarray
    icr: np.ndarray
    dscr_ltm: np.ndarray
    dscr_strict_ltm: np.ndarray
    icr_ltm: np.ndarray
    dscr_headroom: np.ndarray
    icr_headroom: np.ndarray
    dscr_breach: List[bool]
    icr_breach: List[bool]
    breaches: List[bool]  # After grace
    total_breach_periods: int
    first_breach_period: Optional[int]

    @property
    def min_dscr(self) -> float:
        """Lowest finite point DSCR, or inf if debt service is never positive."""
        finite = self.dscr[np.isfinite(self.dscr)]
        return float(finite.min()) if finite.size else float("inf")


def _align(name: str, values: Optional[Sequence[Number]], periods: int) -> np.ndarray:
    series = to_float_array([] if values is None else values)
    if len(series) > periods:
        raise ValidationError(f"{name} has {len(series)} periods, horizon is {periods}")
    series.extend([0.0] * (periods - len(series)))
    return np.asarray(series, dtype=float)


def coverage_ratio(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """Element-wise ratio; a zero denominator gives ``inf``."""
    safe = np.where(denominator == 0, 1.0, denominator)
    return np.where(denominator == 0, np.inf, numerator / safe)


def rolling_ratio(numerator: np.ndarray, denominator: np.ndarray, window: int) -> np.ndarray:
    """Ratio of trailing ``window``-period sums; ``nan`` until the window fills."""
    num_sum = np.cumsum(numerator)
    den_sum = np.cumsum(denominator)
    num_sum[window:] = num_sum[window:] - num_sum[:-window]
    den_sum[window:] = den_sum[window:] - den_sum[:-window]

    out = coverage_ratio(num_sum, den_sum)
    out[: window - 1] = np.nan
    return out


def _breach(ratio: np.ndarray, threshold: Optional[float]) -> np.ndarray:
    if threshold is None:
        return np.zeros(ratio.shape, dtype=bool)
    # nan compares False, so unfilled LTM periods never breach
    with np.errstate(invalid="ignore"):
        return ratio < threshold


def _combine(point: np.ndarray, ltm: np.ndarray, basis: TestBasis) -> np.ndarray:
    if basis == TestBasis.POINT:
        return point
    if basis == TestBasis.LTM:
        return ltm
    return point | ltm


def apply_grace(raw: Sequence[bool], grace_period_months: int) -> List[bool]:
    """Count a breach only once the consecutive breach streak reaches the grace length.

    With grace 0 or 1 every raw breach counts.
    """
    if not grace_period_months:
        return [bool(b) for b in raw]
    out = []
    streak = 0
    for flag in raw:
        streak = streak + 1 if flag else 0
        out.append(streak >= grace_period_months)
    return out


def compute_covenants(
    cfads: Sequence[Number],
    interest: Sequence[Number],
    principal: Sequence[Number],
    ebit: Sequence[Number],
    fees_ongoing: Optional[Sequence[Number]] = None,
    terms: Optional[CovenantTerms] = None,
) -> CovenantResult:
    """Test DSCR and ICR covenants over the horizon.

    DSCR = CFADS / (interest + principal)
    Strict DSCR = CFADS / (interest + principal + ongoing fees)
    ICR = EBIT / interest

    Breaches are tested on the point ratio, the LTM ratio, or either,
    depending on ``terms.test_basis``; with ``strict_dscr`` the strict series
    is tested instead of the classic one. DSCR and ICR breaches are combined
    and then filtered through the grace rule.

    Args:
        cfads: Cash flow available for debt service (operating cash flow).
        interest: Interest per period.
        principal: Principal repaid per period.
        ebit: Earnings before interest and tax.
        fees_ongoing: Ongoing financing fees (strict DSCR only).
        terms: Thresholds and test rules; defaults test nothing.

    Returns:
        CovenantResult with per-period series and breach summary.
    """
    terms = terms or CovenantTerms()
    periods = len(cfads)

    cfads_arr = _align("cfads", cfads, periods)
    interest_arr = _align("interest", interest, periods)
    principal_arr = _align("principal", principal, periods)
    ebit_arr = _align("ebit", ebit, periods)
    fees_arr = _align("fees_ongoing", fees_ongoing, periods)

    debt_service = interest_arr + principal_arr
    debt_service_strict = debt_service + fees_arr

    with np.errstate(divide="ignore", invalid="ignore"):
        dscr = coverage_ratio(cfads_arr, debt_service)
        dscr_strict = coverage_ratio(cfads_arr, debt_service_strict)
        icr = coverage_ratio(ebit_arr, interest_arr)

        dscr_ltm = rolling_ratio(cfads_arr, debt_service, terms.ltm_window)
        dscr_strict_ltm = rolling_ratio(cfads_arr, debt_service_strict, terms.ltm_window)
        icr_ltm = rolling_ratio(ebit_arr, interest_arr, terms.ltm_window)

    dscr_min = terms.dscr_min
    icr_min = terms.icr_min
    nan_row = np.full(periods, np.nan)
    tested_dscr = dscr_strict if terms.strict_dscr else dscr
    tested_dscr_ltm = dscr_strict_ltm if terms.strict_dscr else dscr_ltm

    dscr_headroom = tested_dscr - dscr_min if dscr_min is not None else nan_row
    icr_headroom = icr - icr_min if icr_min is not None else nan_row.copy()

    dscr_breach = _combine(
        _breach(tested_dscr, dscr_min), _breach(tested_dscr_ltm, dscr_min), terms.test_basis
    )
    icr_breach = _combine(_breach(icr, icr_min), _breach(icr_ltm, icr_min), terms.test_basis)

    breaches = apply_grace(dscr_breach | icr_breach, terms.grace_period_months)
    total_breach_periods = sum(breaches)
    first_breach_period = breaches.index(True) if total_breach_periods else None

    if total_breach_periods:
        logger.info(
            "Covenant breach in %d periods, first at period %d",
            total_breach_periods,
            first_breach_period,
        )

    result = CovenantResult(
        dscr=dscr,
        dscr_strict=dscr_strict,
        icr=icr,
        dscr_ltm=dscr_ltm,
        dscr_strict_ltm=dscr_strict_ltm,
        icr_ltm=icr_ltm,
        dscr_headroom=dscr_headroom,
        icr_headroom=icr_headroom,
        dscr_breach=[bool(b) for b in dscr_breach],
        icr_breach=[bool(b) for b in icr_breach],
        breaches=breaches,
        total_breach_periods=total_breach_periods,
        first_breach_period=first_breach_period,
    )
    min_dscr = trace("covenants.min_dscr", result.min_dscr, {"debt.interest": float(interest_arr.sum())})
    trace("covenants.total_breach_periods", total_breach_periods, {"covenants.min_dscr": min_dscr})
    return result

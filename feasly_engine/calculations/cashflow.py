"""Cash-flow reconciliation: operating / investing / financing split with balance-sheet tie-out."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Sequence

from ..models.items import ValidationError
from ..models.lookups import CASH_TIE_OUT_TOLERANCE
from ..models.money import MonthlyArray, Number, ZERO, to_decimal, zeros
from .trace import trace

logger = logging.getLogger(__name__)

# Nested input layout: (group, key) -> CashFlowCategories field
_CATEGORY_PATHS = {
    ("pnl", "patmi"): "patmi",
    ("revenue", "accounts_receivable"): "accounts_receivable",
    ("costs", "capex"): "capex",
    ("depreciation", "total"): "depreciation",
    ("financing", "draws"): "draws",
    ("financing", "principal"): "principal",
    ("financing", "fees_upfront"): "fees_upfront",
    ("financing", "fees_ongoing"): "fees_ongoing",
    ("financing", "dsra_funding"): "dsra_funding",
    ("financing", "dsra_release"): "dsra_release",
    ("tax", "carry_vat"): "carry_vat",
    ("balance_sheet", "cash"): "balance_sheet_cash",
    ("cash", "equity_cf"): "equity_cf",
}


@dataclass
class CashFlowCategories:
    """Category-level time series feeding the reconciler.

    Every series is indexed by period ``0..periods-1``. Missing series are
    zero; shorter series are zero-padded. ``equity_cf`` is from the project's
    side: positive values are equity injections.
    """

    periods: int
    patmi: Optional[Sequence[Number]] = None
    accounts_receivable: Optional[Sequence[Number]] = None
    capex: Optional[Sequence[Number]] = None
    depreciation: Optional[Sequence[Number]] = None
    draws: Optional[Sequence[Number]] = None
    principal: Optional[Sequence[Number]] = None
    fees_upfront: Optional[Sequence[Number]] = None
    fees_ongoing: Optional[Sequence[Number]] = None
    dsra_funding: Optional[Sequence[Number]] = None
    dsra_release: Optional[Sequence[Number]] = None
    carry_vat: Optional[Sequence[Number]] = None
    balance_sheet_cash: Optional[Sequence[Number]] = None
    equity_cf: Optional[Sequence[Number]] = None

    def __post_init__(self):
        if isinstance(self.periods, bool) or not isinstance(self.periods, int) or self.periods < 0:
            raise ValidationError(f"periods must be a non-negative integer, got {self.periods!r}")

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> "CashFlowCategories":
        """Build from the nested layout used by engine callers.

        Example:
            >>> CashFlowCategories.from_mapping({
            ...     "T": 3,
            ...     "pnl": {"patmi": [100, 100, 100]},
            ...     "costs": {"capex": [50, 0, 0]},
            ... })
        """
        if "T" in params:
            periods = params["T"]
        elif "periods" in params:
            periods = params["periods"]
        else:
            raise ValidationError("Cash-flow categories require a horizon 'T'")

        kwargs = {}
        for (group, key), name in _CATEGORY_PATHS.items():
            bundle = params.get(group)
            if bundle is None:
                continue
            if not isinstance(bundle, Mapping):
                raise ValidationError(f"Category {group!r} must be a mapping of series")
            if key in bundle:
                kwargs[name] = bundle[key]
        return cls(periods=periods, **kwargs)

    def series(self, name: str) -> MonthlyArray:
        """Return a series as exactly ``periods`` Decimals.

        Raises:
            ValidationError: If the series is longer than the horizon.
        """
        values = getattr(self, name)
        if values is None:
            return zeros(self.periods)
        if len(values) > self.periods:
            raise ValidationError(
                f"Series {name!r} has {len(values)} periods, horizon is {self.periods}"
            )
        out = [to_decimal(v) for v in values]
        if len(out) < self.periods:
            logger.debug("Zero-padding %s from %d to %d periods", name, len(out), self.periods)
            out.extend(zeros(self.periods - len(out)))
        return out


@dataclass
class CashFlowDetail:
    """Tie-out diagnostics for a reconciled cash flow."""

    tie_out_ok_cash: bool
    max_cash_error: Decimal
    cash_errors: List[Decimal] = field(default_factory=list)
    # Sum of negative equity_cf, which the financing bucket leaves out
    excluded_equity_distributions: Decimal = ZERO

    @property
    def worst_period(self) -> Optional[int]:
        """Period with the largest tie-out error (None for an empty horizon)."""
        if not self.cash_errors:
            return None
        return max(range(len(self.cash_errors)), key=self.cash_errors.__getitem__)


@dataclass
class CashFlowResult:
    """Reconciled cash flow, recomputed wholesale on every call."""

    from_operations: MonthlyArray
    from_investing: MonthlyArray
    from_financing: MonthlyArray
    net_change: MonthlyArray
    cash_closing: MonthlyArray
    detail: CashFlowDetail

    @property
    def periods(self) -> int:
        return len(self.net_change)

    def get_period(self, period: int) -> dict:
        """All buckets for one period (0-indexed)."""
        if period < 0 or period >= self.periods:
            raise IndexError(f"Period {period} out of range [0, {self.periods - 1}]")
        return {
            "from_operations": self.from_operations[period],
            "from_investing": self.from_investing[period],
            "from_financing": self.from_financing[period],
            "net_change": self.net_change[period],
            "cash_closing": self.cash_closing[period],
        }


def _delta(series: MonthlyArray, period: int) -> Decimal:
    """Change versus the prior period; zero at period 0."""
    if period == 0:
        return ZERO
    return series[period] - series[period - 1]


def compute_cash_flow(
    categories: CashFlowCategories,
    tie_out_tolerance: Decimal = CASH_TIE_OUT_TOLERANCE,
) -> CashFlowResult:
    """Reconcile category series into operating, investing and financing cash.

    Per period t:
        operating = patmi + depreciation - delta(AR) - delta(VAT carry)
        investing = -capex
        financing = draws - principal - fees_upfront - fees_ongoing
                    - dsra_funding + dsra_release + max(equity_cf, 0)
        net       = operating + investing + financing
        closing   = cumulative net, starting from zero

    The closing cash is compared with the balance-sheet cash; the tie-out
    passes when the largest absolute error is below ``tie_out_tolerance``.
    A failed tie-out is reported in ``detail``, never raised.

    Args:
        categories: Category series and horizon. A plain mapping in the
            nested ``{"T": .., "pnl": {"patmi": ..}, ...}`` layout is accepted.
        tie_out_tolerance: Absolute tolerance in currency units.

    Returns:
        CashFlowResult with fresh arrays of length ``periods``.
    """
    if isinstance(categories, Mapping):
        categories = CashFlowCategories.from_mapping(categories)

    periods = categories.periods
    patmi = categories.series("patmi")
    receivables = categories.series("accounts_receivable")
    capex = categories.series("capex")
    depreciation = categories.series("depreciation")
    draws = categories.series("draws")
    principal = categories.series("principal")
    fees_upfront = categories.series("fees_upfront")
    fees_ongoing = categories.series("fees_ongoing")
    dsra_funding = categories.series("dsra_funding")
    dsra_release = categories.series("dsra_release")
    carry_vat = categories.series("carry_vat")
    bs_cash = categories.series("balance_sheet_cash")
    equity_cf = categories.series("equity_cf")

    operations = zeros(periods)
    investing = zeros(periods)
    financing = zeros(periods)
    net = zeros(periods)
    closing = zeros(periods)
    excluded_distributions = ZERO

    running_cash = ZERO
    for t in range(periods):
        # A decrease in AR or VAT carry releases working capital
        operations[t] = (
            patmi[t]
            + depreciation[t]
            - _delta(receivables, t)
            - _delta(carry_vat, t)
        )

        investing[t] = ZERO - capex[t]

        equity_injection = max(equity_cf[t], ZERO)
        if equity_cf[t] < ZERO:
            excluded_distributions += equity_cf[t]

        financing[t] = (
            draws[t]
            - principal[t]
            - fees_upfront[t]
            - fees_ongoing[t]
            - dsra_funding[t]
            + dsra_release[t]
            + equity_injection
        )

        net[t] = operations[t] + investing[t] + financing[t]
        running_cash += net[t]
        closing[t] = running_cash

    cash_errors = [abs(closing[t] - bs_cash[t]) for t in range(periods)]
    max_cash_error = max(cash_errors, default=ZERO)
    tie_out_ok = max_cash_error < tie_out_tolerance

    trace(
        "cash_flow.max_cash_error",
        max_cash_error,
        {"cash_flow.cash_closing": closing[-1] if closing else ZERO},
    )
    if not tie_out_ok:
        logger.warning(
            "Cash tie-out failed: max error %s over %d periods", max_cash_error, periods
        )

    return CashFlowResult(
        from_operations=operations,
        from_investing=investing,
        from_financing=financing,
        net_change=net,
        cash_closing=closing,
        detail=CashFlowDetail(
            tie_out_ok_cash=tie_out_ok,
            max_cash_error=max_cash_error,
            cash_errors=cash_errors,
            excluded_equity_distributions=excluded_distributions,
        ),
    )

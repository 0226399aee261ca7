"""Scenario runner: assembles category rows, financing, and returns for one project."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from ..models.items import (
    ConstructionItem,
    CovenantTerms,
    DepreciationPolicy,
    EquityTranche,
    LoanFacility,
    RentalLine,
    SaleLine,
    ValidationError,
    WaterfallTerms,
)
from ..models.money import MonthlyArray, Number, ZERO, to_decimal, to_money_array, zeros
from ..models.scenario_config import EngineSettings
from .cashflow import CashFlowCategories, CashFlowResult, compute_cash_flow
from .costs import build_construction_row
from .covenants import CovenantResult, compute_covenants
from .debt import LoanSchedule, build_loan_schedule
from .depreciation import DepreciationSchedule, compute_depreciation
from .metrics import KPIs, annualize_rate, compute_kpis, periodic_rate
from .revenue import build_rental_revenue, build_sale_revenue
from .waterfall import WaterfallResult, compute_equity_waterfall

logger = logging.getLogger(__name__)


def sum_rows(rows: Sequence[Sequence[Optional[Number]]], length: Optional[int] = None) -> MonthlyArray:
    """Element-wise sum of monthly rows, zero-padding shorter rows.

    Args:
        rows: Rows to add.
        length: Output length; defaults to the longest row.

    Raises:
        ValidationError: If a row is longer than ``length``.
    """
    rows = [to_money_array(r) for r in rows]
    longest = max((len(r) for r in rows), default=0)
    if length is None:
        length = longest
    elif longest > length:
        raise ValidationError(f"Row of {longest} periods exceeds length {length}")

    total = zeros(length)
    for row in rows:
        for t, value in enumerate(row):
            total[t] += value
    return total


@dataclass
class ProjectScenario:
    """A single development scenario.

    Attributes:
        horizon: Base timeline in months. Retention releases may extend it.
        construction_items: Construction cost lines.
        sale_lines: Unit sales.
        rental_lines: Rental income lines.
        loan: Optional senior facility funding construction.
        discount_rate_pa: Effective annual discount rate for NPV.
        covenant_terms: Covenant tests on the levered case (needs a loan).
        equity_tranches: Waterfall participants for the levered equity flows.
        waterfall_terms: Split, hurdle, catch-up, clawback and timing terms.
        depreciation_policy: Straight-line policy applied to every
            construction line; without it nothing is depreciated.
    """

    horizon: int
    construction_items: List[ConstructionItem] = field(default_factory=list)
    sale_lines: List[SaleLine] = field(default_factory=list)
    rental_lines: List[RentalLine] = field(default_factory=list)
    loan: Optional[LoanFacility] = None
    discount_rate_pa: Number = ZERO
    covenant_terms: Optional[CovenantTerms] = None
    equity_tranches: List[EquityTranche] = field(default_factory=list)
    waterfall_terms: Optional[WaterfallTerms] = None
    depreciation_policy: Optional[DepreciationPolicy] = None

    def __post_init__(self):
        if isinstance(self.horizon, bool) or not isinstance(self.horizon, int) or self.horizon < 1:
            raise ValidationError(f"horizon must be a positive integer, got {self.horizon!r}")
        self.discount_rate_pa = to_decimal(self.discount_rate_pa)


@dataclass
class ScenarioResult:
    """Everything computed for one scenario run."""

    periods: int
    rows: Dict[str, MonthlyArray]
    unlevered_net_cash_flow: MonthlyArray
    levered_net_cash_flow: MonthlyArray
    unlevered_kpis: KPIs
    kpis: KPIs  # Levered when a loan is present, otherwise unlevered
    monthly_discount_rate: Decimal
    irr_pa: Optional[float]
    cash_flow: CashFlowResult
    loan_schedule: Optional[LoanSchedule] = None
    covenants: Optional[CovenantResult] = None
    waterfall: Optional[WaterfallResult] = None
    depreciation: Optional[DepreciationSchedule] = None

    @property
    def equity_cash_flow(self) -> MonthlyArray:
        """Equity flows from the investors' side (negative = capital call)."""
        return list(self.levered_net_cash_flow)


def build_cash_flow_categories(
    periods: int,
    revenue: MonthlyArray,
    construction: MonthlyArray,
    levered: MonthlyArray,
    schedule: Optional[LoanSchedule] = None,
    depreciation: Optional[MonthlyArray] = None,
) -> CashFlowCategories:
    """Map scenario rows onto the reconciler's categories.

    PATMI is revenue less depreciation and cash interest; construction is
    capex. Equity injections are the levered shortfalls. Positive levered
    cash is not distributed by the reconciler, so it stays in the
    balance-sheet cash, which is the running sum of retained cash.
    """
    depreciation = depreciation or zeros(periods)
    interest = schedule.interest_paid if schedule is not None else zeros(periods)
    patmi = [revenue[t] - depreciation[t] - interest[t] for t in range(periods)]

    retained = ZERO
    balance_sheet_cash = zeros(periods)
    for t, value in enumerate(levered):
        retained += max(value, ZERO)
        balance_sheet_cash[t] = retained

    return CashFlowCategories(
        periods=periods,
        patmi=patmi,
        capex=construction,
        depreciation=depreciation,
        draws=schedule.draws if schedule is not None else None,
        principal=schedule.principal if schedule is not None else None,
        fees_upfront=schedule.fees_upfront if schedule is not None else None,
        balance_sheet_cash=balance_sheet_cash,
        equity_cf=[ZERO - v for v in levered],
    )


def run_scenario(scenario: ProjectScenario, settings: Optional[EngineSettings] = None) -> ScenarioResult:
    """Build all rows for a scenario and compute returns.

    The timeline length is the longest row produced (at least ``horizon``).
    Construction cost is the loan's funding need; levered cash adds draws
    and subtracts cash interest, principal, and fees. The rows are then
    reconciled into operating, investing and financing cash, checked
    against the balance-sheet cash to ``settings.tie_out_tolerance``.

    Args:
        scenario: Project inputs.
        settings: Solver settings; defaults from ``lookups``.

    Returns:
        ScenarioResult with category rows, cash flows, and KPIs.

    Example:
        >>> scenario = ProjectScenario(
        ...     horizon=36,
        ...     construction_items=[ConstructionItem(1_000_000, 0, 11)],
        ...     sale_lines=[SaleLine(10, 150_000, 24, 35)],
        ...     discount_rate_pa=0.10,
        ... )
        >>> run_scenario(scenario).kpis.profit
        Decimal('500000.00')
    """
    settings = settings or EngineSettings()
    horizon = scenario.horizon

    construction_rows = [build_construction_row(item, horizon) for item in scenario.construction_items]
    sale_rows = [build_sale_revenue(line, horizon) for line in scenario.sale_lines]
    rental_rows = [build_rental_revenue(line, horizon) for line in scenario.rental_lines]

    periods = max([horizon] + [len(r) for r in construction_rows])
    if periods > horizon:
        logger.info("Retention releases extend the timeline from %d to %d months", horizon, periods)

    construction = sum_rows(construction_rows, periods)
    sales = sum_rows(sale_rows, periods)
    rental = sum_rows(rental_rows, periods)
    revenue = [s + r for s, r in zip(sales, rental)]
    unlevered = [rev - cost for rev, cost in zip(revenue, construction)]

    rows = {
        "construction": construction,
        "sales": sales,
        "rental": rental,
        "revenue": revenue,
    }

    schedule = None
    levered = list(unlevered)
    if scenario.loan is not None:
        schedule = build_loan_schedule(scenario.loan, construction, periods)
        interest_paid = schedule.interest_paid
        levered = [
            unlevered[t]
            + schedule.draws[t]
            - interest_paid[t]
            - schedule.principal[t]
            - schedule.fees_upfront[t]
            for t in range(periods)
        ]
        rows.update({
            "loan_draws": schedule.draws,
            "interest": interest_paid,
            "principal": schedule.principal,
            "fees_upfront": schedule.fees_upfront,
            "loan_balance": schedule.balance,
        })
        if schedule.outstanding_at_end > ZERO:
            logger.warning("Loan balance of %s outstanding at end of timeline", schedule.outstanding_at_end)

    depreciation = None
    if scenario.depreciation_policy is not None:
        policy = scenario.depreciation_policy
        depreciation = compute_depreciation([(sum_rows([row], periods), policy) for row in construction_rows])
        rows["depreciation"] = sum_rows([depreciation.total], periods)

    categories = build_cash_flow_categories(
        periods, revenue, construction, levered, schedule, rows.get("depreciation")
    )
    cash_flow = compute_cash_flow(categories, settings.tie_out_tolerance)

    monthly_rate = periodic_rate(scenario.discount_rate_pa, settings.periods_per_year)
    unlevered_kpis = compute_kpis(unlevered, monthly_rate, settings)
    kpis = compute_kpis(levered, monthly_rate, settings) if schedule is not None else unlevered_kpis

    covenants = None
    if scenario.covenant_terms is not None:
        if schedule is None:
            raise ValidationError("Covenant terms need a loan facility")
        # No operating costs are modelled, so revenue stands in for CFADS and EBIT
        covenants = compute_covenants(
            cfads=revenue,
            interest=schedule.interest,
            principal=schedule.principal,
            ebit=revenue,
            terms=scenario.covenant_terms,
        )

    waterfall = None
    if scenario.equity_tranches:
        waterfall = compute_equity_waterfall(levered, scenario.equity_tranches, scenario.waterfall_terms)

    return ScenarioResult(
        periods=periods,
        rows=rows,
        unlevered_net_cash_flow=unlevered,
        levered_net_cash_flow=levered,
        unlevered_kpis=unlevered_kpis,
        kpis=kpis,
        monthly_discount_rate=monthly_rate,
        irr_pa=annualize_rate(kpis.project_irr, settings.periods_per_year),
        cash_flow=cash_flow,
        loan_schedule=schedule,
        covenants=covenants,
        waterfall=waterfall,
        depreciation=depreciation,
    )

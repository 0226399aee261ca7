"""Calculation modules for the feasibility cash-flow engine."""

from .costs import escalation_factor, expand_cost, build_construction_row
from .revenue import build_sale_revenue, build_rental_revenue, build_revenue_row
from .debt import LoanSchedule, build_loan_schedule, accrue_interest_row
from .depreciation import DepreciationSchedule, straight_line_depreciation, compute_depreciation
from .cashflow import (
    CashFlowCategories,
    CashFlowDetail,
    CashFlowResult,
    compute_cash_flow,
)
from .metrics import (
    KPIs,
    calc_irr,
    compute_kpis,
    calculate_npv,
    annualize_rate,
    periodic_rate,
)
from .covenants import CovenantResult, compute_covenants
from .waterfall import (
    CapitalAccount,
    CatchUpEvent,
    TierAllocation,
    WaterfallResult,
    compute_equity_waterfall,
)

# Scenario assembly (rows -> financing -> returns)
from .scenario import ProjectScenario, ScenarioResult, run_scenario, sum_rows

# Calculation tracing and formula registry
from .formula_registry import FormulaCategory, FormulaDefinition, FormulaRegistry
from .trace import TraceContext, TracedValue, trace

__all__ = [
    "escalation_factor",
    "expand_cost",
    "build_construction_row",
    "build_sale_revenue",
    "build_rental_revenue",
    "build_revenue_row",
    "LoanSchedule",
    "build_loan_schedule",
    "accrue_interest_row",
    "DepreciationSchedule",
    "straight_line_depreciation",
    "compute_depreciation",
    "CashFlowCategories",
    "CashFlowDetail",
    "CashFlowResult",
    "compute_cash_flow",
    "KPIs",
    "calc_irr",
    "compute_kpis",
    "calculate_npv",
    "annualize_rate",
    "periodic_rate",
    "CovenantResult",
    "compute_covenants",
    "CapitalAccount",
    "CatchUpEvent",
    "TierAllocation",
    "WaterfallResult",
    "compute_equity_waterfall",
    "ProjectScenario",
    "ScenarioResult",
    "run_scenario",
    "sum_rows",
    "FormulaCategory",
    "FormulaDefinition",
    "FormulaRegistry",
    "TraceContext",
    "TracedValue",
    "trace",
]

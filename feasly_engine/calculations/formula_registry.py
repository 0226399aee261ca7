"""Formula Registry for transparent calculation auditing.

This module provides a central registry of the engine's calculation
formulas, so every traced value can be explained by its definition.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set


class FormulaCategory(str, Enum):
    """Categories for organizing formulas."""
    COSTS = "Costs"
    REVENUE = "Revenue"
    FINANCING = "Financing"
    CASH_FLOW = "Cash Flow"
    COVENANTS = "Covenants"
    WATERFALL = "Waterfall"
    RETURNS = "Returns"


@dataclass(frozen=True)
class FormulaDefinition:
    """Definition of a single calculation formula.

    Attributes:
        field_path: Dot-notation path to the field (e.g., "returns.npv")
        name: Human-readable name (e.g., "Net Present Value")
        formula: Symbolic formula (e.g., "sum(cf[i] / (1 + r)^i)")
        inputs: List of input field paths that feed into this formula
        category: Category for grouping formulas
        unit: Display unit (e.g., "$", "%", "x")
        notes: Optional explanation or caveats
    """
    field_path: str
    name: str
    formula: str
    inputs: List[str]
    category: FormulaCategory
    unit: str = "$"
    notes: str = ""


class FormulaRegistry:
    """Read-only lookup of formula definitions.

    The definitions are static; the registry is built once from
    ``_FORMULAS`` and never mutated by calculations.
    """
    _formulas: Dict[str, FormulaDefinition] = {}

    @classmethod
    def get(cls, field_path: str) -> Optional[FormulaDefinition]:
        """Get formula definition by field path."""
        return cls._formulas.get(field_path)

    @classmethod
    def get_all(cls) -> Dict[str, FormulaDefinition]:
        """Get all registered formulas."""
        return cls._formulas.copy()

    @classmethod
    def get_by_category(cls, category: FormulaCategory) -> List[FormulaDefinition]:
        """Get all formulas in a category."""
        return [f for f in cls._formulas.values() if f.category == category]

    @classmethod
    def get_inputs(cls, field_path: str) -> List[str]:
        """Get the input field paths for a formula."""
        formula = cls.get(field_path)
        return list(formula.inputs) if formula else []

    @classmethod
    def get_dependents(cls, field_path: str) -> List[str]:
        """Get all formulas that use this field as an input."""
        return [
            path for path, formula in cls._formulas.items()
            if field_path in formula.inputs
        ]

    @classmethod
    def get_all_ancestors(cls, field_path: str) -> Set[str]:
        """Get all upstream dependencies recursively."""
        ancestors: Set[str] = set()
        to_process = cls.get_inputs(field_path)

        while to_process:
            current = to_process.pop()
            if current not in ancestors:
                ancestors.add(current)
                to_process.extend(cls.get_inputs(current))

        return ancestors

    @classmethod
    def build_dependency_graph(cls):
        """Build a networkx DiGraph of all dependencies.

        Returns:
            nx.DiGraph with a node per formula and an edge input -> formula.
        """
        import networkx as nx

        graph = nx.DiGraph()
        for path, formula in cls._formulas.items():
            graph.add_node(path, **{
                "name": formula.name,
                "category": formula.category.value,
                "formula": formula.formula,
            })
        for path, formula in cls._formulas.items():
            for input_path in formula.inputs:
                graph.add_edge(input_path, path)
        return graph


_FORMULAS = [
    # =========================================================================
    # COSTS
    # =========================================================================
    FormulaDefinition(
        field_path="costs.escalated_total",
        name="Escalated Cost",
        formula="amount x (1 + escalation_rate) ^ ((end_period - start_period) / 12)",
        inputs=["item.amount", "item.escalation_rate"],
        category=FormulaCategory.COSTS,
        notes="Annual rate compounded over elapsed years; remainder lands in end_period",
    ),
    FormulaDefinition(
        field_path="costs.retention_release",
        name="Retention Release",
        formula="sum(round2(period_cost x retention_percent))",
        inputs=["costs.escalated_total", "item.retention_percent"],
        category=FormulaCategory.COSTS,
        notes="Paid as one lump at end_period + retention_release_lag",
    ),
    # =========================================================================
    # REVENUE
    # =========================================================================
    FormulaDefinition(
        field_path="revenue.sales",
        name="Sales Revenue",
        formula="units x price_per_unit x (1 + escalation) ^ (months / 12)",
        inputs=["sale.units", "sale.price_per_unit"],
        category=FormulaCategory.REVENUE,
    ),
    FormulaDefinition(
        field_path="revenue.rental",
        name="Rental Revenue (monthly)",
        formula="rooms x adr x occupancy x 365/12 x (1 + escalation) ^ years_elapsed",
        inputs=["rental.rooms", "rental.adr", "rental.occupancy_rate"],
        category=FormulaCategory.REVENUE,
    ),
    # =========================================================================
    # FINANCING
    # =========================================================================
    FormulaDefinition(
        field_path="debt.interest",
        name="Loan Interest",
        formula="opening_balance x annual_rate / 12",
        inputs=["debt.balance"],
        category=FormulaCategory.FINANCING,
    ),
    FormulaDefinition(
        field_path="debt.total_drawn",
        name="Total Loan Draws",
        formula="sum(min(funding_need, undrawn_limit))",
        inputs=["costs.construction"],
        category=FormulaCategory.FINANCING,
    ),
    # =========================================================================
    # CASH FLOW
    # =========================================================================
    FormulaDefinition(
        field_path="cash_flow.from_operations",
        name="Cash from Operations",
        formula="patmi + depreciation - delta_ar - delta_vat_carry",
        inputs=["pnl.patmi", "depreciation.total", "revenue.accounts_receivable", "tax.carry_vat"],
        category=FormulaCategory.CASH_FLOW,
    ),
    FormulaDefinition(
        field_path="cash_flow.from_investing",
        name="Cash from Investing",
        formula="-capex",
        inputs=["costs.capex"],
        category=FormulaCategory.CASH_FLOW,
    ),
    FormulaDefinition(
        field_path="cash_flow.from_financing",
        name="Cash from Financing",
        formula="draws - principal - fees_upfront - fees_ongoing - dsra_funding + dsra_release + max(equity_cf, 0)",
        inputs=["financing.draws", "financing.principal", "cash.equity_cf"],
        category=FormulaCategory.CASH_FLOW,
        notes="Negative equity_cf (distributions) is excluded",
    ),
    FormulaDefinition(
        field_path="cash_flow.cash_closing",
        name="Closing Cash",
        formula="cumsum(from_operations + from_investing + from_financing)",
        inputs=["cash_flow.from_operations", "cash_flow.from_investing", "cash_flow.from_financing"],
        category=FormulaCategory.CASH_FLOW,
    ),
    FormulaDefinition(
        field_path="cash_flow.max_cash_error",
        name="Cash Tie-out Error",
        formula="max(|cash_closing - balance_sheet.cash|)",
        inputs=["cash_flow.cash_closing", "balance_sheet.cash"],
        category=FormulaCategory.CASH_FLOW,
        notes="Tie-out passes below 0.01 currency units",
    ),
    # =========================================================================
    # COVENANTS
    # =========================================================================
    FormulaDefinition(
        field_path="covenants.min_dscr",
        name="Minimum DSCR",
        formula="min(cfads / (interest + principal))",
        inputs=["cash_flow.from_operations", "debt.interest"],
        category=FormulaCategory.COVENANTS,
        unit="x",
    ),
    FormulaDefinition(
        field_path="covenants.total_breach_periods",
        name="Breach Periods",
        formula="count(breach after grace)",
        inputs=["covenants.min_dscr"],
        category=FormulaCategory.COVENANTS,
        unit="periods",
    ),
    # =========================================================================
    # WATERFALL
    # =========================================================================
    FormulaDefinition(
        field_path="waterfall.lp_distributions",
        name="LP Distributions",
        formula="return_of_capital + pref_paid + split_lp + clawback",
        inputs=["cash.equity_cf"],
        category=FormulaCategory.WATERFALL,
    ),
    FormulaDefinition(
        field_path="waterfall.gp_distributions",
        name="GP Distributions",
        formula="return_of_capital + pref_paid + catch_up + split_gp - clawback",
        inputs=["cash.equity_cf"],
        category=FormulaCategory.WATERFALL,
    ),
    # =========================================================================
    # RETURNS
    # =========================================================================
    FormulaDefinition(
        field_path="returns.profit",
        name="Profit",
        formula="sum(net_cashflow)",
        inputs=["cash.net_cashflow"],
        category=FormulaCategory.RETURNS,
    ),
    FormulaDefinition(
        field_path="returns.npv",
        name="Net Present Value",
        formula="sum(cf[i] / (1 + discount_rate) ^ i)",
        inputs=["cash.net_cashflow", "input.discount_rate"],
        category=FormulaCategory.RETURNS,
        notes="Period 0 is undiscounted; discount_rate is per period",
    ),
    FormulaDefinition(
        field_path="returns.project_irr",
        name="Project IRR (periodic)",
        formula="r such that sum(cf[i] / (1 + r) ^ i) = 0",
        inputs=["cash.net_cashflow"],
        category=FormulaCategory.RETURNS,
        unit="%",
        notes="Newton-Raphson, first converging guess of 10%, 0%, 20%, -10%, 30%",
    ),
]

FormulaRegistry._formulas = {f.field_path: f for f in _FORMULAS}

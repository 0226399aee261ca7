"""Tests for the calculation tracing system."""

import pytest

from feasly_engine.calculations.formula_registry import FormulaCategory, FormulaRegistry
from feasly_engine.calculations.metrics import compute_kpis
from feasly_engine.calculations.scenario import run_scenario
from feasly_engine.calculations.trace import TraceContext, TracedValue, trace


class TestFormulaRegistry:
    """Test the formula registry."""

    def test_can_get_formula_by_path(self):
        """Can retrieve a specific formula."""
        formula = FormulaRegistry.get("returns.npv")

        assert formula is not None
        assert formula.name == "Net Present Value"
        assert formula.category == FormulaCategory.RETURNS

    def test_unknown_path_returns_none(self):
        assert FormulaRegistry.get("nope.nothing") is None

    def test_can_get_by_category(self):
        """Can filter formulas by category."""
        cash_formulas = FormulaRegistry.get_by_category(FormulaCategory.CASH_FLOW)

        assert len(cash_formulas) == 5
        for formula in cash_formulas:
            assert formula.category == FormulaCategory.CASH_FLOW

    def test_can_get_dependents(self):
        """Closing cash feeds the tie-out error."""
        dependents = FormulaRegistry.get_dependents("cash_flow.cash_closing")

        assert "cash_flow.max_cash_error" in dependents

    def test_ancestors_are_recursive(self):
        ancestors = FormulaRegistry.get_all_ancestors("cash_flow.max_cash_error")

        assert "cash_flow.from_operations" in ancestors
        assert "pnl.patmi" in ancestors

    def test_get_all_is_a_copy(self):
        formulas = FormulaRegistry.get_all()
        formulas.clear()

        assert FormulaRegistry.get("returns.profit") is not None


class TestDependencyGraph:
    """Test the networkx dependency graph."""

    def test_edges_run_from_input_to_formula(self):
        graph = FormulaRegistry.build_dependency_graph()

        assert graph.has_edge("cash_flow.cash_closing", "cash_flow.max_cash_error")
        assert graph.nodes["returns.npv"]["category"] == "Returns"

    def test_graph_is_acyclic(self):
        import networkx as nx

        graph = FormulaRegistry.build_dependency_graph()

        assert nx.is_directed_acyclic_graph(graph)


class TestTraceContext:
    """Test the trace context manager."""

    def test_trace_context_captures_traces(self):
        """TraceContext captures trace calls."""
        with TraceContext() as ctx:
            trace("test.value", 100.0, {"input_a": 50.0, "input_b": 50.0})

        traced = ctx.get_trace("test.value")
        assert isinstance(traced, TracedValue)
        assert traced.value == 100.0
        assert traced.formula_def is None
        assert traced.input_values == {"input_a": 50.0, "input_b": 50.0}

    def test_trace_returns_value_unchanged(self):
        """trace() can be used inline and keeps the value's type."""
        from decimal import Decimal

        value = Decimal("12.34")
        assert trace("returns.profit", value, {}) is value

    def test_trace_outside_context_is_noop(self):
        assert TraceContext.current() is None
        assert trace("returns.profit", 1.0, {}) == 1.0

    def test_disabled_context_records_nothing(self):
        with TraceContext(enabled=False) as ctx:
            trace("returns.profit", 1.0, {})

        assert ctx.traces == {}

    def test_nested_contexts_restore_outer(self):
        with TraceContext() as outer:
            with TraceContext() as inner:
                trace("returns.profit", 1.0, {})
                assert TraceContext.current() is inner
            assert TraceContext.current() is outer
            trace("returns.npv", 2.0, {})

        assert TraceContext.current() is None
        assert list(inner.traces) == ["returns.profit"]
        assert list(outer.traces) == ["returns.npv"]

    def test_period_traces_are_keyed_separately(self):
        with TraceContext() as ctx:
            trace("debt.interest", 10.0, {"debt.balance": 2000.0}, period=1)
            trace("debt.interest", 12.0, {"debt.balance": 2400.0}, period=2)

        assert ctx.get_trace("debt.interest", period=1).value == 10.0
        assert ctx.get_trace("debt.interest", period=2).value == 12.0
        assert ctx.get_trace("debt.interest") is None

    def test_computed_formula_substitutes_inputs(self):
        with TraceContext() as ctx:
            trace("returns.npv", 71.78, {"input.discount_rate": 0.1})

        computed = ctx.get_trace("returns.npv").computed_formula
        assert computed.startswith("sum(cf[i] / (1 + discount_rate) ^ i)")
        assert "discount_rate=10.00%" in computed
        assert computed.endswith("$71.78")


class TestEngineTracing:
    """Calculations report their results to an active context."""

    def test_kpis_are_traced(self):
        with TraceContext() as ctx:
            compute_kpis([-1000, 200, 300, 400, 500], 0.10)

        assert ctx.get_trace("returns.profit").value == pytest.approx(400.0)
        assert ctx.get_trace("returns.npv").value == pytest.approx(71.78)
        assert ctx.get_trace("returns.project_irr") is not None

    def test_scenario_traces_by_category(self, levered_scenario):
        with TraceContext() as ctx:
            run_scenario(levered_scenario)

        assert ctx.get_trace("debt.total_drawn").value == pytest.approx(600000.0)
        assert "covenants.min_dscr" in ctx.get_traces_by_category("Covenants")
        assert "waterfall.lp_distributions" in ctx.get_traces_by_category("Waterfall")

    def test_summary_groups_by_category(self, sample_scenario):
        with TraceContext() as ctx:
            run_scenario(sample_scenario)

        summary = ctx.summary()
        assert summary.startswith(f"Trace Summary ({len(ctx.traces)} calculations traced)")
        assert "=== Returns" in summary
        assert "=== Revenue" in summary

"""Tests for the IRR solver and KPI aggregation."""

from decimal import Decimal

import numpy_financial as npf
import pytest

from feasly_engine.calculations.metrics import (
    annualize_rate,
    calc_irr,
    calculate_npv,
    calculate_payback_period,
    compute_kpis,
    periodic_rate,
)
from feasly_engine.calculations.trace import TraceContext
from feasly_engine.models import EngineSettings, ValidationError
from tests.fixtures.test_inputs import REFERENCE_CASH_FLOW


class TestCalcIRR:
    """Tests for multi-guess Newton-Raphson IRR."""

    def test_reference_cash_flow_matches_numpy_financial(self):
        irr = calc_irr(REFERENCE_CASH_FLOW)

        assert irr == pytest.approx(npf.irr(REFERENCE_CASH_FLOW), abs=1e-4)
        assert irr == pytest.approx(0.1283, abs=1e-4)

    def test_npv_at_solution_is_near_zero(self):
        irr = calc_irr(REFERENCE_CASH_FLOW)
        npv = sum(cf / (1 + irr) ** i for i, cf in enumerate(REFERENCE_CASH_FLOW))

        assert abs(npv) < 1e-4

    def test_monthly_development_profile(self):
        flows = [-100_000] * 12 + [0] * 6 + [150_000] * 12
        irr = calc_irr(flows)

        assert irr == pytest.approx(npf.irr(flows), abs=1e-6)

    def test_empty_returns_none(self):
        assert calc_irr([]) is None

    def test_no_sign_change_returns_none(self):
        assert calc_irr([100, 100]) is None

    def test_negative_irr(self):
        flows = [-1000, 300, 300, 300]
        irr = calc_irr(flows)

        assert irr < 0
        assert irr == pytest.approx(npf.irr(flows), abs=1e-4)

    def test_accepts_decimals(self):
        flows = [Decimal(v) for v in REFERENCE_CASH_FLOW]

        assert calc_irr(flows) == pytest.approx(calc_irr(REFERENCE_CASH_FLOW))

    def test_custom_guess_order(self):
        """A single guess that cannot converge within one step gives None."""
        assert calc_irr(REFERENCE_CASH_FLOW, guesses=(5.0,), max_iter=1) is None

    def test_first_converging_guess_picks_the_root(self):
        """[-1, 2.3, -1.32] has roots at 10% and 20%; guess order decides."""
        flows = [-1, 2.3, -1.32]

        assert calc_irr(flows) == pytest.approx(0.1, abs=1e-6)
        assert calc_irr(flows, guesses=(0.2, 0.1)) == pytest.approx(0.2, abs=1e-6)

    def test_zero_derivative_abandons_guess(self):
        """A single-period flow has f'(r) = 0 everywhere, so no guess can move."""
        assert calc_irr([5]) is None

    def test_invalid_guess_falls_through_to_next(self):
        """A guess at or below -100% is skipped, not fatal."""
        irr = calc_irr(REFERENCE_CASH_FLOW, guesses=(-1.5, 0.1))

        assert irr == pytest.approx(0.1283, abs=1e-4)


class TestRateConversion:
    def test_annualize_monthly_rate(self):
        assert annualize_rate(0.01) == pytest.approx(1.01 ** 12 - 1)

    def test_annualize_none_passes_through(self):
        assert annualize_rate(None) is None

    def test_periodic_rate_round_trips(self):
        monthly = periodic_rate(0.10)

        assert float(monthly) == pytest.approx(1.1 ** (1 / 12) - 1, rel=1e-12)
        assert annualize_rate(float(monthly)) == pytest.approx(0.10)

    def test_zero_annual_rate(self):
        assert periodic_rate(0) == 0


class TestNPV:
    def test_period_zero_is_undiscounted(self):
        assert calculate_npv([100], 0.5) == Decimal(100)

    def test_matches_numpy_financial(self):
        npv = calculate_npv(REFERENCE_CASH_FLOW, 0.10)

        assert float(npv) == pytest.approx(npf.npv(0.10, REFERENCE_CASH_FLOW), abs=1e-6)

    def test_rate_at_or_below_minus_one_raises(self):
        with pytest.raises(ValidationError):
            calculate_npv(REFERENCE_CASH_FLOW, -1)


class TestPaybackPeriod:
    def test_first_recovery_period(self):
        assert calculate_payback_period(REFERENCE_CASH_FLOW) == 4

    def test_never_recovers(self):
        assert calculate_payback_period([-100, 10, 10]) is None


class TestComputeKPIs:
    """Tests for profit / NPV / IRR aggregation."""

    def test_reference_kpis(self):
        kpis = compute_kpis(REFERENCE_CASH_FLOW, 0.10)

        assert kpis.profit == Decimal("400.00")
        assert kpis.npv == Decimal("71.78")
        assert kpis.project_irr == pytest.approx(0.1283, abs=1e-4)
        assert kpis.total_revenue == Decimal("1400.00")
        assert kpis.total_costs == Decimal("1000.00")

    def test_zero_discount_npv_equals_profit(self):
        flows = [-500.25, 120.10, 0, 410.40]
        kpis = compute_kpis(flows, 0)

        assert kpis.npv == kpis.profit == Decimal("30.25")

    def test_no_irr_is_reported_as_none(self, caplog):
        kpis = compute_kpis([100, 100], 0.05)

        assert kpis.project_irr is None
        assert "No IRR found" in caplog.text

    def test_settings_are_passed_to_solver(self):
        settings = EngineSettings(irr_guesses=(5.0,), irr_max_iterations=1)

        assert compute_kpis(REFERENCE_CASH_FLOW, 0.1, settings).project_irr is None

    def test_all_zero_costs_is_positive_zero(self):
        kpis = compute_kpis([10, 20], 0)

        assert str(kpis.total_costs) == "0.00"

    def test_kpis_are_traced(self):
        with TraceContext() as ctx:
            compute_kpis(REFERENCE_CASH_FLOW, 0.10)

        assert ctx.get_trace("returns.npv").value == pytest.approx(71.78)
        assert ctx.get_trace("returns.profit").value == pytest.approx(400.0)
        assert ctx.get_trace("returns.project_irr") is not None

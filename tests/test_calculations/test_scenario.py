"""Tests for scenario assembly."""

from decimal import Decimal

import pytest

from feasly_engine.calculations.scenario import ProjectScenario, run_scenario, sum_rows
from feasly_engine.models import (
    ConstructionItem,
    CovenantTerms,
    DepreciationPolicy,
    EngineSettings,
    SaleLine,
    ValidationError,
)


class TestSumRows:
    def test_pads_shorter_rows(self):
        assert sum_rows([[1, 2, 3], [10]]) == [11, 2, 3]

    def test_explicit_length(self):
        assert sum_rows([[1]], length=3) == [1, 0, 0]

    def test_row_longer_than_length_raises(self):
        with pytest.raises(ValidationError):
            sum_rows([[1, 2, 3]], length=2)

    def test_empty(self):
        assert sum_rows([]) == []


class TestRunScenario:
    """Tests for the unlevered case."""

    def test_profit_and_rows(self, sample_scenario):
        result = run_scenario(sample_scenario)

        assert result.periods == 36
        assert result.kpis.profit == Decimal("500000.00")
        assert sum(result.rows["construction"]) == Decimal("1000000.00")
        assert sum(result.rows["revenue"]) == Decimal("1500000.00")
        assert result.loan_schedule is None
        assert result.levered_net_cash_flow == result.unlevered_net_cash_flow

    def test_monthly_discount_rate_from_annual(self, sample_scenario):
        result = run_scenario(sample_scenario)

        assert float(result.monthly_discount_rate) == pytest.approx(1.1 ** (1 / 12) - 1)

    def test_irr_is_annualised(self, sample_scenario):
        result = run_scenario(sample_scenario)

        assert result.kpis.project_irr is not None
        assert result.irr_pa == pytest.approx((1 + result.kpis.project_irr) ** 12 - 1)

    def test_retention_release_extends_timeline(self):
        scenario = ProjectScenario(
            horizon=12,
            construction_items=[
                ConstructionItem(1200, 0, 11, retention_percent=0.05, retention_release_lag=3)
            ],
            sale_lines=[SaleLine(1, 2000, 11, 11)],
        )
        result = run_scenario(scenario)

        assert result.periods == 15
        assert result.rows["construction"][14] == Decimal("60.00")
        assert len(result.rows["revenue"]) == 15
        assert result.kpis.profit == Decimal("800.00")

    def test_invalid_horizon(self):
        with pytest.raises(ValidationError):
            ProjectScenario(horizon=0)

    def test_covenants_need_a_loan(self, sample_scenario):
        sample_scenario.covenant_terms = CovenantTerms(dscr_min=1.2)

        with pytest.raises(ValidationError):
            run_scenario(sample_scenario)

    def test_custom_settings(self, sample_scenario):
        result = run_scenario(sample_scenario, EngineSettings(irr_guesses=(0.0,)))

        assert result.kpis.project_irr is not None


class TestLeveredScenario:
    """Tests for loan, covenant and waterfall wiring."""

    def test_loan_funds_construction_up_to_limit(self, levered_scenario):
        result = run_scenario(levered_scenario)
        schedule = result.loan_schedule

        assert schedule.total_drawn == Decimal("600000")
        assert schedule.principal[30] == Decimal("600000")
        assert schedule.fees_upfront[0] == Decimal("6000.00")

    def test_levered_profit_is_net_of_financing_costs(self, levered_scenario):
        result = run_scenario(levered_scenario)
        schedule = result.loan_schedule
        financing_cost = sum(schedule.interest_paid) + sum(schedule.fees_upfront)

        assert sum(result.levered_net_cash_flow) == sum(result.unlevered_net_cash_flow) - financing_cost
        assert result.kpis.profit < result.unlevered_kpis.profit

    def test_covenants_flag_construction_months(self, levered_scenario):
        result = run_scenario(levered_scenario)

        # No revenue while interest accrues during construction
        assert result.covenants.first_breach_period == 1
        assert result.covenants.total_breach_periods > 0

    def test_waterfall_distributes_positive_equity_flows(self, levered_scenario):
        result = run_scenario(levered_scenario)
        distributable = sum(v for v in result.equity_cash_flow if v > 0)

        assert result.waterfall.total_distributed == distributable.quantize(Decimal("0.01"))
        assert result.waterfall.lp_moic is not None


class TestScenarioCashFlow:
    """Tests for the reconciled cash flow attached to each run."""

    def test_unlevered_cash_ties_out(self, sample_scenario):
        result = run_scenario(sample_scenario)
        cash_flow = result.cash_flow

        assert cash_flow.detail.tie_out_ok_cash is True
        assert cash_flow.periods == result.periods
        assert sum(cash_flow.from_investing) == Decimal("-1000000.00")

    def test_distributions_are_excluded_from_financing(self, levered_scenario):
        result = run_scenario(levered_scenario)
        distributable = sum(v for v in result.levered_net_cash_flow if v > 0)

        assert result.cash_flow.detail.excluded_equity_distributions == -distributable
        assert result.cash_flow.detail.tie_out_ok_cash is True

    def test_loan_draws_in_financing(self, levered_scenario):
        result = run_scenario(levered_scenario)
        schedule = result.loan_schedule

        assert sum(result.cash_flow.from_financing) == (
            schedule.total_drawn
            - sum(schedule.principal)
            - sum(schedule.fees_upfront)
            + sum(max(-v, 0) for v in result.levered_net_cash_flow)
        )

    def test_depreciation_policy_adds_row(self, sample_scenario):
        sample_scenario.depreciation_policy = DepreciationPolicy(start_month=11, useful_life_months=24)
        result = run_scenario(sample_scenario)

        assert sum(result.rows["depreciation"]) == Decimal("1000000.00")
        assert result.rows["depreciation"][12] == Decimal("41666.67")
        assert result.depreciation.total_depreciation == Decimal("1000000.00")
        # Depreciation is added back in operating cash, so the tie-out holds
        assert result.cash_flow.detail.tie_out_ok_cash is True

    def test_no_depreciation_without_policy(self, sample_scenario):
        result = run_scenario(sample_scenario)

        assert "depreciation" not in result.rows
        assert result.depreciation is None

    def test_tie_out_tolerance_from_settings(self, sample_scenario):
        settings = EngineSettings(tie_out_tolerance=Decimal("1e-9"))
        result = run_scenario(sample_scenario, settings)

        assert result.cash_flow.detail.max_cash_error == 0
        assert result.cash_flow.detail.tie_out_ok_cash is True

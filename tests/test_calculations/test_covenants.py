"""Tests for DSCR / ICR covenant testing."""

import math

import pytest

from feasly_engine.calculations.covenants import apply_grace, compute_covenants
from feasly_engine.models import CovenantTerms, TestBasis, ValidationError


class TestRatios:
    """Tests for ratio arithmetic."""

    def test_point_dscr_and_icr(self):
        result = compute_covenants(
            cfads=[120, 150], interest=[50, 50], principal=[50, 50], ebit=[100, 100]
        )

        assert result.dscr.tolist() == pytest.approx([1.2, 1.5])
        assert result.icr.tolist() == pytest.approx([2.0, 2.0])
        assert result.min_dscr == pytest.approx(1.2)

    def test_zero_debt_service_is_infinite(self):
        result = compute_covenants(cfads=[100], interest=[0], principal=[0], ebit=[10])

        assert math.isinf(result.dscr[0])
        assert math.isinf(result.icr[0])
        assert result.min_dscr == math.inf

    def test_strict_dscr_includes_fees(self):
        result = compute_covenants(
            cfads=[110], interest=[50], principal=[50], ebit=[0], fees_ongoing=[10]
        )

        assert result.dscr[0] == pytest.approx(1.1)
        assert result.dscr_strict[0] == pytest.approx(1.0)

    def test_ltm_is_nan_until_window_fills(self):
        terms = CovenantTerms(ltm_window=3)
        result = compute_covenants(
            cfads=[100, 100, 100, 400], interest=[100] * 4, principal=[0] * 4, ebit=[100] * 4, terms=terms
        )

        assert math.isnan(result.dscr_ltm[0]) and math.isnan(result.dscr_ltm[1])
        assert result.dscr_ltm[2] == pytest.approx(1.0)
        assert result.dscr_ltm[3] == pytest.approx(2.0)

    def test_headroom_is_nan_without_threshold(self):
        result = compute_covenants(cfads=[100], interest=[50], principal=[0], ebit=[100])

        assert math.isnan(result.dscr_headroom[0])
        assert math.isnan(result.icr_headroom[0])

    def test_headroom_against_threshold(self):
        terms = CovenantTerms(dscr_min=1.25, icr_min=1.5)
        result = compute_covenants(cfads=[150], interest=[100], principal=[0], ebit=[200], terms=terms)

        assert result.dscr_headroom[0] == pytest.approx(0.25)
        assert result.icr_headroom[0] == pytest.approx(0.5)

    def test_series_longer_than_cfads_raises(self):
        with pytest.raises(ValidationError):
            compute_covenants(cfads=[1], interest=[1, 1], principal=[0], ebit=[0])


class TestBreaches:
    """Tests for breach detection, test basis and grace."""

    def test_point_breaches(self):
        terms = CovenantTerms(dscr_min=1.25)
        result = compute_covenants(
            cfads=[120, 150, 100], interest=[50] * 3, principal=[50] * 3, ebit=[0] * 3, terms=terms
        )

        assert result.dscr_breach == [True, False, True]
        assert result.total_breach_periods == 2
        assert result.first_breach_period == 0

    def test_no_breach(self):
        terms = CovenantTerms(dscr_min=1.0)
        result = compute_covenants(cfads=[200], interest=[100], principal=[0], ebit=[0], terms=terms)

        assert result.total_breach_periods == 0
        assert result.first_breach_period is None

    def test_icr_breach_counts(self):
        terms = CovenantTerms(icr_min=2.5)
        result = compute_covenants(cfads=[1000], interest=[50], principal=[0], ebit=[100], terms=terms)

        assert result.icr_breach == [True]
        assert result.breaches == [True]

    def test_ltm_basis_ignores_single_bad_month(self):
        terms = CovenantTerms(dscr_min=1.0, test_basis=TestBasis.LTM, ltm_window=3)
        cfads = [200, 200, 50, 200]
        result = compute_covenants(cfads, [100] * 4, [0] * 4, [0] * 4, terms=terms)

        assert result.total_breach_periods == 0

    def test_both_basis_flags_either(self):
        terms = CovenantTerms(dscr_min=1.0, test_basis="both", ltm_window=3)
        cfads = [200, 200, 50, 200]
        result = compute_covenants(cfads, [100] * 4, [0] * 4, [0] * 4, terms=terms)

        assert result.dscr_breach == [False, False, True, False]

    def test_strict_flag_tests_strict_series(self):
        terms = CovenantTerms(dscr_min=1.05, strict_dscr=True)
        result = compute_covenants([110], [50], [50], [0], fees_ongoing=[10], terms=terms)

        assert result.dscr_breach == [True]
        assert result.dscr_headroom[0] == pytest.approx(-0.05)

    def test_grace_period(self):
        terms = CovenantTerms(dscr_min=1.0, grace_period_months=2)
        cfads = [50, 50, 200, 50, 50, 50]
        result = compute_covenants(cfads, [100] * 6, [0] * 6, [0] * 6, terms=terms)

        assert result.breaches == [False, True, False, False, True, True]
        assert result.total_breach_periods == 3
        assert result.first_breach_period == 1


class TestApplyGrace:
    def test_zero_grace_passes_through(self):
        assert apply_grace([True, False, True], 0) == [True, False, True]

    def test_streak_resets(self):
        assert apply_grace([True, True, False, True], 2) == [False, True, False, False]

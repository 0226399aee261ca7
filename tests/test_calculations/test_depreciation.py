"""Tests for straight-line depreciation and net book value."""

from decimal import Decimal

from feasly_engine.calculations.depreciation import (
    compute_depreciation,
    depreciable_basis,
    straight_line_depreciation,
)
from feasly_engine.models import DepreciationPolicy


class TestStraightLine:
    def test_even_charge_over_life(self):
        row = straight_line_depreciation([1200, 0, 0, 0], DepreciationPolicy(0, 4))

        assert row == [Decimal("300.00")] * 4

    def test_salvage_reduces_basis(self):
        policy = DepreciationPolicy(start_month=0, useful_life_months=4, salvage_value=200)

        assert depreciable_basis([1000, 0, 0, 0, 0], policy) == 800
        assert straight_line_depreciation([1000, 0, 0, 0, 0], policy)[:4] == [Decimal("200.00")] * 4

    def test_basis_includes_capex_through_start_month(self):
        row = straight_line_depreciation([500, 500, 0, 0], DepreciationPolicy(1, 2))

        assert row == [0, Decimal("500.00"), Decimal("500.00"), 0]

    def test_capex_after_start_is_not_depreciated(self):
        policy = DepreciationPolicy(0, 2)

        assert depreciable_basis([100, 900, 0], policy) == 100

    def test_life_past_horizon_is_truncated(self):
        row = straight_line_depreciation([1000, 0, 0, 0], DepreciationPolicy(0, 10))

        assert row == [Decimal("100.00")] * 4

    def test_salvage_above_cost_gives_no_charge(self):
        policy = DepreciationPolicy(0, 4, salvage_value=5000)

        assert straight_line_depreciation([1000, 0], policy) == [0, 0]

    def test_zero_life_gives_no_charge(self):
        assert straight_line_depreciation([1000, 0], DepreciationPolicy(0, 0)) == [0, 0]


class TestComputeDepreciation:
    def test_nbv_roll_forward(self):
        schedule = compute_depreciation([([1200, 0, 0, 0], DepreciationPolicy(0, 4))])

        assert schedule.total == [Decimal("300.00")] * 4
        assert schedule.nbv == [900, 600, 300, 0]
        assert schedule.total_depreciation == 1200

    def test_nbv_keeps_salvage(self):
        schedule = compute_depreciation([([1000, 0, 0, 0], DepreciationPolicy(0, 4, 200))])

        assert schedule.nbv[-1] == 200

    def test_multiple_items_are_padded_and_summed(self):
        schedule = compute_depreciation([
            ([400, 0], DepreciationPolicy(0, 2)),
            ([0, 300, 0, 0], DepreciationPolicy(1, 3)),
        ])

        assert len(schedule.per_item) == 2
        assert len(schedule.per_item[0]) == 4
        assert schedule.total == [200, 300, 100, 100]

    def test_no_items(self):
        schedule = compute_depreciation([])

        assert schedule.total == [] and schedule.nbv == []

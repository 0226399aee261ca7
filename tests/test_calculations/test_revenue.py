"""Tests for sale and rental revenue rows."""

from decimal import Decimal

import pytest

from feasly_engine.calculations.revenue import (
    build_rental_revenue,
    build_revenue_row,
    build_sale_revenue,
    monthly_rental_income,
)
from feasly_engine.models import RentalLine, SaleLine, ValidationError


class TestSaleRevenue:
    def test_proceeds_spread_over_sales_window(self):
        row = build_sale_revenue(SaleLine(10, 500_000, 24, 33), 60)

        assert row[24:34] == [Decimal("500000.00")] * 10
        assert sum(row) == Decimal("5000000.00")
        assert row[23] == 0 and row[34] == 0

    def test_escalated_sales(self):
        row = build_sale_revenue(SaleLine(1, 1_000_000, 0, 12, escalation_rate=0.06), 13)

        assert sum(row) == Decimal("1060000.00")


class TestRentalRevenue:
    def test_monthly_income_uses_average_month_length(self):
        line = RentalLine(rooms=100, adr=200, occupancy_rate=0.75, start_period=0, end_period=11)

        assert monthly_rental_income(line) == pytest.approx(Decimal("456250"))

    def test_escalation_steps_once_per_full_year(self):
        line = RentalLine(100, 200, 0.75, start_period=6, end_period=30, annual_escalation=0.03)
        row = build_rental_revenue(line, 36)

        assert row[5] == 0
        assert row[6] == Decimal("456250.00")
        assert row[17] == Decimal("456250.00")
        assert row[18] == Decimal("469937.50")
        assert row[30] == Decimal("484035.63")
        assert row[31] == 0

    def test_window_past_horizon_raises(self):
        with pytest.raises(ValidationError):
            build_rental_revenue(RentalLine(10, 100, 0.5, 0, 12), 12)

    def test_occupancy_must_be_a_fraction(self):
        with pytest.raises(ValidationError):
            RentalLine(10, 100, 75, 0, 12)


class TestRevenueRow:
    def test_sums_sales_and_rentals(self):
        sales = [SaleLine(2, 100, 0, 1)]
        rentals = [RentalLine(1, 12, 1, 0, 0)]
        row = build_revenue_row(sales, rentals, 3)

        assert row[0] == Decimal("100.00") + Decimal("365.00")
        assert row[1] == Decimal("100.00")
        assert row[2] == 0

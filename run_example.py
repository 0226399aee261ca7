#!/usr/bin/env python3
"""Example script to run a levered build-and-sell scenario and export an audit report."""

import logging
import sys
from datetime import date
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from feasly_engine.calculations.scenario import ProjectScenario, run_scenario
from feasly_engine.calculations.trace import TraceContext
from feasly_engine.export import AuditReportConfig, generate_audit_excel
from feasly_engine.models import (
    AmortizationType,
    ConstructionItem,
    CovenantTerms,
    DepreciationPolicy,
    EquityTranche,
    LoanFacility,
    RentalLine,
    SaleLine,
    WaterfallTerms,
)


def get_example_scenario() -> ProjectScenario:
    """Mixed-use tower: 24-month build, units sold from month 24, hotel rooms let from month 30."""
    return ProjectScenario(
        horizon=60,
        construction_items=[
            ConstructionItem(
                amount=12_000_000,
                start_period=0,
                end_period=23,
                escalation_rate=0.05,
                retention_percent=0.05,
                retention_release_lag=2,
            ),
            ConstructionItem(amount=1_500_000, start_period=0, end_period=5),
        ],
        sale_lines=[SaleLine(units=40, price_per_unit=350_000, start_period=24, end_period=47)],
        rental_lines=[
            RentalLine(
                rooms=60,
                adr=180,
                occupancy_rate=0.7,
                start_period=30,
                end_period=59,
                annual_escalation=0.03,
            )
        ],
        loan=LoanFacility(
            limit=8_000_000,
            annual_rate=0.07,
            start_period=0,
            maturity_period=47,
            amortization=AmortizationType.STRAIGHT,
            repayment_start=30,
            capitalize_interest=True,
            upfront_fee_pct=0.01,
        ),
        discount_rate_pa=0.10,
        covenant_terms=CovenantTerms(dscr_min=1.2, grace_period_months=2),
        equity_tranches=[
            EquityTranche("investors", "lp", 5_000_000, pref_rate_pa=0.08),
            EquityTranche("sponsor", "gp", 500_000),
        ],
        waterfall_terms=WaterfallTerms(
            catch_up=True,
            clawback=True,
            tiers=[(0.12, 0.8, 0.2), (0.18, 0.7, 0.3)],
            distribution_frequency="quarterly",
        ),
        depreciation_policy=DepreciationPolicy(start_month=23, useful_life_months=360),
    )


def _rate(value):
    return "N/A" if value is None else f"{value:.1%}"


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("\n" + "=" * 60)
    print("FEASIBILITY CASH-FLOW ENGINE")
    print("Levered Build-and-Sell Scenario")
    print("=" * 60 + "\n")

    with TraceContext() as ctx:
        result = run_scenario(get_example_scenario())

    print(f"{'Metric':<28} {'Unlevered':>15} {'Levered':>15}")
    print("-" * 60)
    print(f"{'Profit':<28} ${result.unlevered_kpis.profit:>14,.0f} ${result.kpis.profit:>14,.0f}")
    print(f"{'NPV':<28} ${result.unlevered_kpis.npv:>14,.0f} ${result.kpis.npv:>14,.0f}")
    print(f"{'IRR (monthly)':<28} {_rate(result.unlevered_kpis.project_irr):>15} "
          f"{_rate(result.kpis.project_irr):>15}")
    print(f"{'IRR (annual)':<28} {'':>15} {_rate(result.irr_pa):>15}")
    print(f"{'Timeline':<28} {result.periods:>12} mo")
    print(f"{'Cash tie-out':<28} {'OK' if result.cash_flow.detail.tie_out_ok_cash else 'FAILED':>15}")

    schedule = result.loan_schedule
    print("\n" + "=" * 60)
    print("DEBT")
    print("=" * 60 + "\n")
    print(f"Total drawn:            ${schedule.total_drawn:,.0f}")
    print(f"Interest capitalised:   ${sum(schedule.interest_capitalized):,.0f}")
    print(f"Interest paid:          ${sum(schedule.interest_paid):,.0f}")
    print(f"Minimum DSCR:           {result.covenants.min_dscr:.2f}x")
    print(f"Breach periods:         {result.covenants.total_breach_periods}")

    wf = result.waterfall
    print("\n" + "=" * 60)
    print("EQUITY WATERFALL")
    print("=" * 60 + "\n")
    print(f"LP distributions:       ${sum(wf.lp_distributions):,.0f}  IRR {_rate(wf.lp_irr_pa)}")
    print(f"GP distributions:       ${sum(wf.gp_distributions):,.0f}  IRR {_rate(wf.gp_irr_pa)}")
    print(f"Catch-up events:        {len(wf.catch_up_events)}")
    print(f"GP clawback:            ${wf.clawback_amount:,.0f}")
    for entry in wf.tier_log:
        if entry.hurdle_tiers:
            tiers = ", ".join(f"${amount:,.0f}" for amount in entry.hurdle_tiers)
            print(f"  Month {entry.period:>2} hurdle tiers: {tiers}")

    print(f"\n{ctx.summary()}")

    if len(sys.argv) > 1:
        output = Path(sys.argv[1])
        config = AuditReportConfig(
            project_name="Harbour Tower",
            scenario_name="Levered",
            start_date=date(2026, 1, 1),
        )
        output.write_bytes(generate_audit_excel(result, config=config, trace_context=ctx))
        print(f"Audit report written to {output}")


if __name__ == "__main__":
    main()

"""Audit Report Generator - Export calculation documentation to Excel.

This module generates audit-ready workbooks showing scenario results,
period cash flows, all formula definitions, and any traced calculations.
"""

import io
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.dataframe import dataframe_to_rows

from ..calculations.cashflow import CashFlowResult
from ..calculations.formula_registry import FormulaCategory, FormulaRegistry
from ..calculations.scenario import ScenarioResult
from ..calculations.trace import TraceContext
from .dataframes import cash_flow_to_dataframe, scenario_to_dataframe


@dataclass
class AuditReportConfig:
    """Configuration for audit report generation."""
    include_summary: bool = True
    include_cash_flows: bool = True
    include_formula_registry: bool = True
    include_traced_values: bool = True
    project_name: str = "Development Project"
    scenario_name: str = "Base Case"
    start_date: Optional[date] = None  # Adds month labels to the cash-flow sheet


def _format_value(value: float, unit: str = "$") -> str:
    """Format a value for display in reports."""
    if unit == "%":
        return f"{value:.2%}"
    elif unit == "x":
        return f"{value:.2f}x"
    elif unit == "periods":
        return f"{value:,.0f}"
    elif abs(value) >= 1_000_000:
        return f"${value/1_000_000:,.2f}M"
    elif abs(value) >= 1_000:
        return f"${value/1_000:,.1f}K"
    elif value == 0:
        return "$0"
    else:
        return f"${value:,.0f}"


def _format_rate(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:.2%}"


def _add_header_style(ws, row: int, cols: int) -> None:
    """Apply header styling to a row."""
    header_fill = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
    header_font = Font(color="FFFFFF", bold=True)

    for col in range(1, cols + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal="center")


def _add_section_header(ws, title: str, row: int) -> int:
    """Add a section header and return next row."""
    ws.cell(row=row, column=1, value=title)
    ws.cell(row=row, column=1).font = Font(bold=True, size=14)
    return row + 1


def generate_audit_excel(
    scenario_result: ScenarioResult,
    cash_flow_result: Optional[CashFlowResult] = None,
    config: Optional[AuditReportConfig] = None,
    trace_context: Optional[TraceContext] = None,
) -> bytes:
    """Generate an Excel audit report.

    Args:
        scenario_result: Output of run_scenario().
        cash_flow_result: Reconciled cash flow for the tie-out sheet; defaults
            to the one computed by run_scenario().
        config: Optional configuration for the report.
        trace_context: Traces captured while running the scenario.

    Returns:
        Excel file as bytes.
    """
    if config is None:
        config = AuditReportConfig()
    if cash_flow_result is None:
        cash_flow_result = scenario_result.cash_flow

    wb = Workbook()

    # Remove default sheet
    wb.remove(wb.active)

    if config.include_summary:
        ws = wb.create_sheet("Summary")
        _create_summary_sheet(ws, scenario_result, cash_flow_result, config)

    if config.include_cash_flows:
        ws = wb.create_sheet("Cash Flows")
        _write_frame(ws, "Period-by-Period Cash Flows", scenario_to_dataframe(scenario_result, config.start_date))
        if cash_flow_result is not None:
            ws = wb.create_sheet("Cash Reconciliation")
            _write_frame(ws, "Cash-Flow Reconciliation", cash_flow_to_dataframe(cash_flow_result, config.start_date))

    if config.include_formula_registry:
        ws = wb.create_sheet("Formula Registry")
        _create_formula_registry_sheet(ws)

    if config.include_traced_values and trace_context is not None:
        ws = wb.create_sheet("Traced Calculations")
        _create_traced_calculations_sheet(ws, trace_context)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output.getvalue()


def _create_summary_sheet(
    ws,
    result: ScenarioResult,
    cash_flow: Optional[CashFlowResult],
    config: AuditReportConfig,
) -> None:
    """Create the summary sheet."""
    row = 1

    ws.cell(row=row, column=1, value=f"Audit Report: {config.project_name}")
    ws.cell(row=row, column=1).font = Font(bold=True, size=16)
    row += 1

    ws.cell(row=row, column=1, value=f"Scenario: {config.scenario_name}")
    row += 1

    ws.cell(row=row, column=1, value=f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    row += 2

    row = _add_section_header(ws, "Key Metrics", row)
    row += 1

    kpis = result.kpis
    metrics = [
        ("Profit", f"${kpis.profit:,.0f}"),
        ("NPV", f"${kpis.npv:,.0f}"),
        ("Project IRR (monthly)", _format_rate(kpis.project_irr)),
        ("Project IRR (annual)", _format_rate(result.irr_pa)),
        ("Payback Period", "N/A" if kpis.payback_period is None else f"{kpis.payback_period} months"),
        ("", ""),
        ("Unlevered Profit", f"${result.unlevered_kpis.profit:,.0f}"),
        ("Unlevered IRR (monthly)", _format_rate(result.unlevered_kpis.project_irr)),
        ("Total Periods", f"{result.periods} months"),
    ]

    if result.loan_schedule is not None:
        metrics += [
            ("", ""),
            ("Total Loan Draws", f"${result.loan_schedule.total_drawn:,.0f}"),
            ("Total Interest", f"${sum(result.loan_schedule.interest):,.0f}"),
        ]
    if result.covenants is not None:
        metrics += [
            ("Minimum DSCR", f"{result.covenants.min_dscr:.2f}x"),
            ("Covenant Breach Periods", str(result.covenants.total_breach_periods)),
        ]
    if result.waterfall is not None:
        wf = result.waterfall
        metrics += [
            ("", ""),
            ("LP IRR (annual)", _format_rate(wf.lp_irr_pa)),
            ("GP IRR (annual)", _format_rate(wf.gp_irr_pa)),
            ("LP MOIC", "N/A" if wf.lp_moic is None else f"{wf.lp_moic:.2f}x"),
            ("GP MOIC", "N/A" if wf.gp_moic is None else f"{wf.gp_moic:.2f}x"),
            ("GP Clawback", f"${wf.clawback_amount:,.0f}"),
        ]
    if cash_flow is not None:
        metrics += [
            ("", ""),
            ("Cash Tie-out", "OK" if cash_flow.detail.tie_out_ok_cash else "FAILED"),
            ("Max Cash Error", f"{cash_flow.detail.max_cash_error:,.2f}"),
        ]

    for label, value in metrics:
        if label:
            ws.cell(row=row, column=1, value=label)
            ws.cell(row=row, column=2, value=value)
        row += 1

    ws.column_dimensions['A'].width = 28
    ws.column_dimensions['B'].width = 20


def _write_frame(ws, title: str, df) -> None:
    """Write a period-indexed DataFrame below a section header."""
    row = _add_section_header(ws, title, 1)
    row += 1

    frame = df.reset_index()
    for offset, values in enumerate(dataframe_to_rows(frame, index=False, header=True)):
        for col, value in enumerate(values, 1):
            ws.cell(row=row + offset, column=col, value=value)
    _add_header_style(ws, row, len(frame.columns))

    for col in range(1, len(frame.columns) + 1):
        ws.column_dimensions[get_column_letter(col)].width = 18


def _create_formula_registry_sheet(ws) -> None:
    """Create the Formula Registry sheet."""
    all_formulas = FormulaRegistry.get_all()

    row = 1
    row = _add_section_header(ws, "Formula Registry - All Calculation Definitions", row)
    row += 2

    headers = ["Category", "Name", "Field Path", "Formula", "Inputs", "Notes"]
    for col, header in enumerate(headers, 1):
        ws.cell(row=row, column=col, value=header)
    _add_header_style(ws, row, len(headers))
    row += 1

    by_category: Dict[FormulaCategory, list] = {}
    for field_path, formula in all_formulas.items():
        by_category.setdefault(formula.category, []).append((field_path, formula))

    for category in FormulaCategory:
        if category not in by_category:
            continue

        for field_path, formula in sorted(by_category[category], key=lambda x: x[0]):
            ws.cell(row=row, column=1, value=category.value)
            ws.cell(row=row, column=2, value=formula.name)
            ws.cell(row=row, column=3, value=field_path)
            ws.cell(row=row, column=4, value=formula.formula)
            ws.cell(row=row, column=5, value=", ".join(formula.inputs) if formula.inputs else "-")
            ws.cell(row=row, column=6, value=formula.notes if formula.notes else "-")
            row += 1

    ws.column_dimensions['A'].width = 15
    ws.column_dimensions['B'].width = 30
    ws.column_dimensions['C'].width = 30
    ws.column_dimensions['D'].width = 50
    ws.column_dimensions['E'].width = 40
    ws.column_dimensions['F'].width = 40


def _create_traced_calculations_sheet(ws, trace_context: TraceContext) -> None:
    """Create the Traced Calculations sheet."""
    row = 1
    row = _add_section_header(ws, "Traced Calculations - Actual Values Used", row)
    row += 2

    headers = ["Field Path", "Result", "Computed Formula", "Notes"]
    for col, header in enumerate(headers, 1):
        ws.cell(row=row, column=col, value=header)
    _add_header_style(ws, row, len(headers))
    row += 1

    for trace_key in sorted(trace_context.traces.keys()):
        traced = trace_context.traces[trace_key]
        unit = traced.formula_def.unit if traced.formula_def else "$"

        ws.cell(row=row, column=1, value=traced.field_path)
        ws.cell(row=row, column=2, value=_format_value(traced.value, unit))
        ws.cell(row=row, column=3, value=traced.computed_formula[:100])
        ws.cell(row=row, column=4, value=traced.notes if traced.notes else "-")
        row += 1

    ws.column_dimensions['A'].width = 30
    ws.column_dimensions['B'].width = 18
    ws.column_dimensions['C'].width = 80
    ws.column_dimensions['D'].width = 30

"""Tabular views of engine results as pandas DataFrames."""

from datetime import date
from typing import Dict, List, Optional

import pandas as pd
from dateutil.relativedelta import relativedelta

from ..calculations.cashflow import CashFlowResult
from ..calculations.scenario import ScenarioResult
from ..models.money import MonthlyArray


def month_labels(periods: int, start_date: date) -> List[str]:
    """Month-end style labels ("2025-01", "2025-02", ...) for each period."""
    return [(start_date + relativedelta(months=i)).strftime("%Y-%m") for i in range(periods)]


def _frame(columns: Dict[str, MonthlyArray], periods: int, start_date: Optional[date]) -> pd.DataFrame:
    df = pd.DataFrame({name: [float(v) for v in values] for name, values in columns.items()})
    df.index = pd.RangeIndex(periods, name="period")
    if start_date is not None:
        df.insert(0, "month", month_labels(periods, start_date))
    return df


def cash_flow_to_dataframe(result: CashFlowResult, start_date: Optional[date] = None) -> pd.DataFrame:
    """One row per period with the reconciled cash-flow buckets.

    Args:
        result: Output of compute_cash_flow().
        start_date: If given, adds a "month" label column.

    Returns:
        DataFrame indexed by period.
    """
    columns = {
        "from_operations": result.from_operations,
        "from_investing": result.from_investing,
        "from_financing": result.from_financing,
        "net_change": result.net_change,
        "cash_closing": result.cash_closing,
        "cash_error": result.detail.cash_errors,
    }
    return _frame(columns, result.periods, start_date)


def scenario_to_dataframe(result: ScenarioResult, start_date: Optional[date] = None) -> pd.DataFrame:
    """One row per period with every category row and both net cash flows."""
    columns = dict(result.rows)
    columns["unlevered_net_cash_flow"] = result.unlevered_net_cash_flow
    columns["levered_net_cash_flow"] = result.levered_net_cash_flow
    if result.waterfall is not None:
        columns["lp_distributions"] = result.waterfall.lp_distributions
        columns["gp_distributions"] = result.waterfall.gp_distributions
    return _frame(columns, result.periods, start_date)

"""Export module for audit reports and tabular views."""

from .audit_report import (
    AuditReportConfig,
    generate_audit_excel,
)
from .dataframes import cash_flow_to_dataframe, scenario_to_dataframe

__all__ = [
    "AuditReportConfig",
    "generate_audit_excel",
    "cash_flow_to_dataframe",
    "scenario_to_dataframe",
]

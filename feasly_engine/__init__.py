"""Feasibility cash-flow and KPI engine for real-estate development projects."""

import logging

from .models import ValidationError, CostItem, ConstructionItem, EngineSettings
from .calculations import (
    expand_cost,
    build_construction_row,
    compute_cash_flow,
    calc_irr,
    compute_kpis,
    run_scenario,
)

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ValidationError",
    "CostItem",
    "ConstructionItem",
    "EngineSettings",
    "expand_cost",
    "build_construction_row",
    "compute_cash_flow",
    "calc_irr",
    "compute_kpis",
    "run_scenario",
]

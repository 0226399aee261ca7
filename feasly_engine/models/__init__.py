"""Data models for the feasibility cash-flow engine."""

from .lookups import (
    CASH_TIE_OUT_TOLERANCE,
    DAYS_PER_MONTH,
    DEFAULT_IRR_GUESSES,
    IRR_MAX_ITERATIONS,
    IRR_TOLERANCE,
    LTM_WINDOW_MONTHS,
    PERIODS_PER_YEAR,
)
from .money import MonthlyArray, round2, to_decimal, zeros
from .scenario_config import (
    AmortizationType,
    DistributionFrequency,
    EngineSettings,
    PartnerRole,
    PrefCompounding,
    TestBasis,
)
from .items import (
    ValidationError,
    CostItem,
    ConstructionItem,
    SaleLine,
    RentalLine,
    LoanFacility,
    DepreciationPolicy,
    CovenantTerms,
    EquityTranche,
    HurdleTier,
    WaterfallTerms,
)

__all__ = [
    "CASH_TIE_OUT_TOLERANCE",
    "DAYS_PER_MONTH",
    "DEFAULT_IRR_GUESSES",
    "IRR_MAX_ITERATIONS",
    "IRR_TOLERANCE",
    "LTM_WINDOW_MONTHS",
    "PERIODS_PER_YEAR",
    "MonthlyArray",
    "round2",
    "to_decimal",
    "zeros",
    "AmortizationType",
    "DistributionFrequency",
    "EngineSettings",
    "PartnerRole",
    "PrefCompounding",
    "TestBasis",
    "ValidationError",
    "CostItem",
    "ConstructionItem",
    "SaleLine",
    "RentalLine",
    "LoanFacility",
    "DepreciationPolicy",
    "CovenantTerms",
    "EquityTranche",
    "HurdleTier",
    "WaterfallTerms",
]

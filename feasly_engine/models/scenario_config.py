"""Engine settings and option enums shared by the calculation modules."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Tuple

from .lookups import (
    CASH_TIE_OUT_TOLERANCE,
    DEFAULT_IRR_GUESSES,
    IRR_MAX_ITERATIONS,
    IRR_TOLERANCE,
    PERIODS_PER_YEAR,
)


class TestBasis(str, Enum):
    """Which ratio series a covenant breach is tested on."""
    __test__ = False  # not a pytest test class

    POINT = "point"  # Period ratio only
    LTM = "ltm"      # Last-twelve-months rolling ratio only
    BOTH = "both"    # Breach if either fails


class AmortizationType(str, Enum):
    """Loan principal repayment profile."""
    BULLET = "bullet"        # Full balance at maturity
    ANNUITY = "annuity"      # Level payment (interest + principal)
    STRAIGHT = "straight"    # Equal principal instalments


class PartnerRole(str, Enum):
    """Equity class in the distribution waterfall."""
    LP = "lp"
    GP = "gp"


class PrefCompounding(str, Enum):
    """How the preferred return accrues each month."""
    SIMPLE = "simple"      # rate / 12 on unreturned capital
    COMPOUND = "compound"  # effective monthly rate on unreturned capital plus unpaid pref


class DistributionFrequency(str, Enum):
    """How often distributable cash is paid out."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"  # Held until each quarter end (and the final period)


@dataclass(frozen=True)
class EngineSettings:
    """Tunable solver and diagnostic settings.

    Defaults come from ``lookups``. Settings are passed explicitly to the
    functions that need them; there is no global settings object.
    """
    irr_guesses: Tuple[float, ...] = DEFAULT_IRR_GUESSES
    irr_tolerance: float = IRR_TOLERANCE
    irr_max_iterations: int = IRR_MAX_ITERATIONS
    tie_out_tolerance: Decimal = CASH_TIE_OUT_TOLERANCE
    periods_per_year: int = PERIODS_PER_YEAR

    def __post_init__(self):
        if not self.irr_guesses:
            raise ValueError("irr_guesses must contain at least one guess")
        if self.irr_tolerance <= 0:
            raise ValueError("irr_tolerance must be positive")
        if self.irr_max_iterations < 1:
            raise ValueError("irr_max_iterations must be at least 1")
        if self.tie_out_tolerance <= 0:
            raise ValueError("tie_out_tolerance must be positive")

"""Engine constants: solver defaults, tolerances, and calendar conventions."""

from decimal import Decimal
from typing import Tuple

# IRR solver (Newton-Raphson). Guesses are tried in this order and the first
# one that converges wins, so the order selects the root for cash flows with
# several sign changes.
DEFAULT_IRR_GUESSES: Tuple[float, ...] = (0.1, 0.0, 0.2, -0.1, 0.3)
IRR_TOLERANCE = 1e-4
IRR_MAX_ITERATIONS = 200

# Absolute currency units, not relative
CASH_TIE_OUT_TOLERANCE = Decimal("0.01")

# Covenant testing
LTM_WINDOW_MONTHS = 12

# Calendar
PERIODS_PER_YEAR = 12
DAYS_PER_MONTH = Decimal(365) / Decimal(12)  # ~30.4167

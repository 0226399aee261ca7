"""Line-item input models for the cash-flow engine.

Each model is an immutable dataclass that validates itself on construction,
so a malformed item never reaches the calculation functions. Monetary and
rate fields are coerced to ``Decimal``.
"""

import re
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from .money import Number, ZERO, ONE, to_decimal
from .scenario_config import (
    AmortizationType,
    DistributionFrequency,
    PartnerRole,
    PrefCompounding,
    TestBasis,
)
from .lookups import LTM_WINDOW_MONTHS


class ValidationError(ValueError):
    """Raised when an engine input is malformed.

    These are programming errors on the caller's side and are never retried.
    """


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Alternative spellings accepted by from_dict()
_KEY_ALIASES = {
    "base_cost": "amount",
    "escalation": "escalation_rate",
}


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _require_period(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer period, got {value!r}")
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}")


def _require_non_negative(name: str, value: Decimal) -> None:
    if not value.is_finite() or value < ZERO:
        raise ValidationError(f"{name} must be a non-negative number, got {value}")


def _coerce(instance: Any, name: str) -> Decimal:
    """Coerce a frozen dataclass field to Decimal in place."""
    raw = getattr(instance, name)
    try:
        value = to_decimal(raw)
    except (TypeError, ArithmeticError, ValueError) as exc:
        raise ValidationError(f"{name} must be numeric, got {raw!r}") from exc
    object.__setattr__(instance, name, value)
    return value


class _FromDictMixin:
    """Build a dataclass from plain data with snake_case or camelCase keys."""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = _snake_case(key)
            name = _KEY_ALIASES.get(name, name)
            if name not in known:
                raise ValidationError(f"Unknown field {key!r} for {cls.__name__}")
            kwargs[name] = value
        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise ValidationError(f"Malformed {cls.__name__}: {exc}") from exc


@dataclass(frozen=True)
class CostItem(_FromDictMixin):
    """A single cost or revenue amount spread over a period range.

    Attributes:
        amount: Base amount before escalation.
        start_period: First period (absolute, 0-indexed) of the spread.
        end_period: Last period (inclusive) of the spread.
        escalation_rate: Annual compound escalation rate (e.g., 0.05).
    """

    amount: Number
    start_period: int
    end_period: int
    escalation_rate: Number = ZERO

    def __post_init__(self):
        _require_non_negative("amount", _coerce(self, "amount"))
        _require_non_negative("escalation_rate", _coerce(self, "escalation_rate"))
        _require_period("start_period", self.start_period)
        _require_period("end_period", self.end_period)
        if self.end_period < self.start_period:
            raise ValidationError(
                f"end_period ({self.end_period}) must be >= start_period ({self.start_period})"
            )

    @property
    def duration_months(self) -> int:
        """Elapsed months between start and end (0 for a single-period item)."""
        return self.end_period - self.start_period


@dataclass(frozen=True)
class ConstructionItem(CostItem):
    """Construction cost line with contractual retention.

    A share of every payment is withheld and released as one lump
    ``retention_release_lag`` periods after ``end_period``.
    """

    retention_percent: Number = ZERO
    retention_release_lag: int = 0

    def __post_init__(self):
        super().__post_init__()
        pct = _coerce(self, "retention_percent")
        if not pct.is_finite() or pct < ZERO or pct > ONE:
            raise ValidationError(f"retention_percent must be within [0, 1], got {pct}")
        _require_period("retention_release_lag", self.retention_release_lag)

    @property
    def release_period(self) -> int:
        """Period in which the retained amount is paid out."""
        return self.end_period + self.retention_release_lag


@dataclass(frozen=True)
class SaleLine(_FromDictMixin):
    """Unit sales recognised evenly over a period range."""

    units: int
    price_per_unit: Number
    start_period: int
    end_period: int
    escalation_rate: Number = ZERO

    def __post_init__(self):
        _require_period("units", self.units)
        _require_non_negative("price_per_unit", _coerce(self, "price_per_unit"))
        _require_non_negative("escalation_rate", _coerce(self, "escalation_rate"))
        _require_period("start_period", self.start_period)
        _require_period("end_period", self.end_period)
        if self.end_period < self.start_period:
            raise ValidationError("end_period must be >= start_period")

    @property
    def gross_amount(self) -> Decimal:
        return self.units * self.price_per_unit


@dataclass(frozen=True)
class RentalLine(_FromDictMixin):
    """Room/unit rental income (hospitality or residential)."""

    rooms: int
    adr: Number  # Average daily rate
    occupancy_rate: Number
    start_period: int
    end_period: int
    annual_escalation: Number = ZERO

    def __post_init__(self):
        _require_period("rooms", self.rooms)
        _require_non_negative("adr", _coerce(self, "adr"))
        occupancy = _coerce(self, "occupancy_rate")
        if not occupancy.is_finite() or occupancy < ZERO or occupancy > ONE:
            raise ValidationError(f"occupancy_rate must be within [0, 1], got {occupancy}")
        _require_non_negative("annual_escalation", _coerce(self, "annual_escalation"))
        _require_period("start_period", self.start_period)
        _require_period("end_period", self.end_period)
        if self.end_period < self.start_period:
            raise ValidationError("end_period must be >= start_period")


@dataclass(frozen=True)
class LoanFacility(_FromDictMixin):
    """Senior debt facility drawn against construction funding need.

    Draws are available from ``start_period`` until repayment begins.
    ``repayment_start`` defaults to ``maturity_period`` (bullet-style tail).
    """

    limit: Number
    annual_rate: Number
    start_period: int
    maturity_period: int
    amortization: AmortizationType = AmortizationType.BULLET
    repayment_start: Optional[int] = None
    capitalize_interest: bool = False
    upfront_fee_pct: Number = ZERO

    def __post_init__(self):
        _require_non_negative("limit", _coerce(self, "limit"))
        _require_non_negative("annual_rate", _coerce(self, "annual_rate"))
        _require_non_negative("upfront_fee_pct", _coerce(self, "upfront_fee_pct"))
        _require_period("start_period", self.start_period)
        _require_period("maturity_period", self.maturity_period)
        if self.maturity_period < self.start_period:
            raise ValidationError("maturity_period must be >= start_period")
        if not isinstance(self.amortization, AmortizationType):
            try:
                object.__setattr__(self, "amortization", AmortizationType(self.amortization))
            except ValueError as exc:
                raise ValidationError(f"Unknown amortization {self.amortization!r}") from exc
        if self.repayment_start is not None:
            _require_period("repayment_start", self.repayment_start)
            if not self.start_period <= self.repayment_start <= self.maturity_period:
                raise ValidationError(
                    "repayment_start must fall within [start_period, maturity_period]"
                )

    @property
    def first_repayment_period(self) -> int:
        if self.repayment_start is None:
            return self.maturity_period
        return self.repayment_start


@dataclass(frozen=True)
class DepreciationPolicy(_FromDictMixin):
    """Straight-line depreciation of a capex line."""

    start_month: int
    useful_life_months: int
    salvage_value: Number = ZERO

    def __post_init__(self):
        _require_period("start_month", self.start_month)
        _require_period("useful_life_months", self.useful_life_months)
        _require_non_negative("salvage_value", _coerce(self, "salvage_value"))


@dataclass(frozen=True)
class CovenantTerms(_FromDictMixin):
    """Portfolio covenant thresholds and test rules.

    A threshold of ``None`` disables that covenant.
    """

    dscr_min: Optional[float] = None
    icr_min: Optional[float] = None
    test_basis: TestBasis = TestBasis.POINT
    grace_period_months: int = 0
    strict_dscr: bool = False  # Include ongoing fees in debt service
    ltm_window: int = LTM_WINDOW_MONTHS

    def __post_init__(self):
        for name in ("dscr_min", "icr_min"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValidationError(f"{name} must be non-negative, got {value}")
        if not isinstance(self.test_basis, TestBasis):
            try:
                object.__setattr__(self, "test_basis", TestBasis(self.test_basis))
            except ValueError as exc:
                raise ValidationError(f"Unknown test_basis {self.test_basis!r}") from exc
        _require_period("grace_period_months", self.grace_period_months)
        if isinstance(self.ltm_window, bool) or not isinstance(self.ltm_window, int) or self.ltm_window < 1:
            raise ValidationError("ltm_window must be a positive integer")


@dataclass(frozen=True)
class EquityTranche(_FromDictMixin):
    """One equity class participating in the distribution waterfall."""

    key: str
    role: PartnerRole
    commitment: Number
    pref_rate_pa: Number = ZERO  # Annual preferred return, accrued monthly

    def __post_init__(self):
        if not self.key:
            raise ValidationError("EquityTranche.key must be non-empty")
        if not isinstance(self.role, PartnerRole):
            try:
                object.__setattr__(self, "role", PartnerRole(self.role))
            except ValueError as exc:
                raise ValidationError(f"Unknown role {self.role!r}") from exc
        _require_non_negative("commitment", _coerce(self, "commitment"))
        _require_non_negative("pref_rate_pa", _coerce(self, "pref_rate_pa"))


@dataclass(frozen=True)
class HurdleTier(_FromDictMixin):
    """One IRR-hurdle tier of the promote.

    Cash is split ``lp_split`` / ``gp_split`` until the LPs' IRR reaches
    ``irr_hurdle_pa`` (effective annual).
    """

    irr_hurdle_pa: Number
    lp_split: Number
    gp_split: Number

    def __post_init__(self):
        _require_non_negative("irr_hurdle_pa", _coerce(self, "irr_hurdle_pa"))
        lp = _coerce(self, "lp_split")
        gp = _coerce(self, "gp_split")
        if lp < ZERO or gp < ZERO or lp + gp != ONE:
            raise ValidationError(f"Tier lp_split + gp_split must equal 1, got {lp} + {gp}")


def _to_tier(value: Any) -> HurdleTier:
    if isinstance(value, HurdleTier):
        return value
    if isinstance(value, Mapping):
        return HurdleTier.from_dict(value)
    try:
        return HurdleTier(*value)
    except TypeError as exc:
        raise ValidationError(f"Malformed hurdle tier {value!r}") from exc


@dataclass(frozen=True)
class WaterfallTerms(_FromDictMixin):
    """Promote structure applied after return of capital and preferred return.

    Attributes:
        lp_split: LP share of residual profit when no hurdle tiers are given.
        gp_split: GP share of residual profit (promote).
        catch_up: If True, GP takes 100% of cash after the pref until it holds
            ``gp_target_share`` of all profit distributed so far.
        gp_target_share: GP target share of cumulative profit for catch-up and
            clawback; defaults to ``gp_split``.
        clawback: If True, GP profit above the target share at the end of the
            hold is returned to LPs.
        tiers: IRR-hurdle tiers in ascending hurdle order, given as
            ``HurdleTier`` objects, ``(irr_hurdle_pa, lp_split, gp_split)``
            tuples or mappings. Cash left after the last hurdle is split at
            the last tier's split.
        pref_compounding: Simple or compound preferred return.
        distribution_frequency: Monthly or quarterly payouts.
    """

    lp_split: Number = Decimal("0.8")
    gp_split: Number = Decimal("0.2")
    catch_up: bool = False
    gp_target_share: Optional[Number] = None
    clawback: bool = False
    tiers: Tuple[HurdleTier, ...] = ()
    pref_compounding: PrefCompounding = PrefCompounding.SIMPLE
    distribution_frequency: DistributionFrequency = DistributionFrequency.MONTHLY

    def __post_init__(self):
        lp = _coerce(self, "lp_split")
        gp = _coerce(self, "gp_split")
        if lp < ZERO or gp < ZERO or lp + gp != ONE:
            raise ValidationError(f"lp_split + gp_split must equal 1, got {lp} + {gp}")
        if self.gp_target_share is None:
            object.__setattr__(self, "gp_target_share", gp)
        target = _coerce(self, "gp_target_share")
        if target < ZERO or target >= ONE:
            raise ValidationError(f"gp_target_share must be within [0, 1), got {target}")

        tiers = tuple(_to_tier(t) for t in self.tiers)
        hurdles = [t.irr_hurdle_pa for t in tiers]
        if hurdles != sorted(hurdles):
            raise ValidationError(f"Hurdle tiers must be in ascending order, got {hurdles}")
        object.__setattr__(self, "tiers", tiers)

        for name, enum_type in (
            ("pref_compounding", PrefCompounding),
            ("distribution_frequency", DistributionFrequency),
        ):
            value = getattr(self, name)
            if not isinstance(value, enum_type):
                try:
                    object.__setattr__(self, name, enum_type(value))
                except ValueError as exc:
                    raise ValidationError(f"Unknown {name} {value!r}") from exc

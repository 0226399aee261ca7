"""Equity distribution waterfall with preferred return, GP catch-up, hurdles, and clawback.

Cash flows are from the investors' side: a negative period is a capital
call, a positive period is cash available for distribution. Each payout
runs through the tiers in order:

    1. Return of capital, pro rata by unreturned capital
    2. Preferred return, pro rata by accrued pref balance
    3. GP catch-up (optional), 100% to GP until the GP holds
       ``gp_target_share`` of all profit distributed so far
    4. IRR-hurdle tiers, each split at its own LP/GP ratio until the LPs'
       IRR reaches the tier's hurdle; without tiers a single
       ``lp_split`` / ``gp_split`` residual split

Clawback (optional) is settled in the final period.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from ..models.items import EquityTranche, HurdleTier, ValidationError, WaterfallTerms
from ..models.lookups import PERIODS_PER_YEAR
from ..models.money import CENT, MonthlyArray, Number, ONE, ZERO, round2, to_decimal, zeros
from ..models.scenario_config import DistributionFrequency, PartnerRole, PrefCompounding
from .metrics import annualize_rate, calc_irr, periodic_rate
from .trace import trace

logger = logging.getLogger(__name__)


@dataclass
class CapitalAccount:
    """Running ledger for one equity tranche."""

    key: str
    role: PartnerRole
    commitment: Decimal
    calls: MonthlyArray
    distributions: MonthlyArray
    pref_accrued: MonthlyArray
    contributed: Decimal = ZERO
    distributed: Decimal = ZERO
    unreturned_capital: Decimal = ZERO
    pref_balance: Decimal = ZERO
    profit_distributed: Decimal = ZERO  # Everything above return of capital

    @property
    def cash_flows(self) -> MonthlyArray:
        """Investor cash flows: calls negative, distributions positive."""
        return [d - c for c, d in zip(self.calls, self.distributions)]

    @property
    def moic(self) -> Optional[float]:
        if self.contributed <= ZERO:
            return None
        return float(self.distributed / self.contributed)


@dataclass
class TierAllocation:
    """How one payout was split across the tiers.

    ``hurdle_tiers`` holds the cash (LP plus GP) paid in each IRR-hurdle
    tier, in tier order; ``lp_split`` and ``gp_split`` are the totals
    across all split tiers.
    """

    period: int
    available: Decimal
    return_of_capital: Decimal = ZERO
    preferred_return: Decimal = ZERO
    catch_up: Decimal = ZERO
    lp_split: Decimal = ZERO
    gp_split: Decimal = ZERO
    clawback: Decimal = ZERO
    hurdle_tiers: List[Decimal] = field(default_factory=list)


@dataclass
class CatchUpEvent:
    period: int
    amount: Decimal
    gp_share_after: float


@dataclass
class WaterfallResult:
    """Distributions by tranche and role, with tier diagnostics and returns."""

    accounts: Dict[str, CapitalAccount]
    lp_distributions: MonthlyArray
    gp_distributions: MonthlyArray
    lp_cash_flows: MonthlyArray
    gp_cash_flows: MonthlyArray
    tier_log: List[TierAllocation] = field(default_factory=list)
    catch_up_events: List[CatchUpEvent] = field(default_factory=list)
    clawback_amount: Decimal = ZERO
    lp_irr: Optional[float] = None
    gp_irr: Optional[float] = None
    lp_irr_pa: Optional[float] = None
    gp_irr_pa: Optional[float] = None
    lp_moic: Optional[float] = None
    gp_moic: Optional[float] = None

    @property
    def total_distributed(self) -> Decimal:
        return sum(self.lp_distributions, ZERO) + sum(self.gp_distributions, ZERO)


def allocate_pro_rata(amount: Decimal, weights: Sequence[Decimal]) -> List[Decimal]:
    """Split ``amount`` by ``weights`` in cents; the last weighted entry takes the remainder.

    Returns all zeros when the weights sum to zero.
    """
    total = sum(weights, ZERO)
    shares = zeros(len(weights))
    if total <= ZERO or amount == ZERO:
        return shares
    weighted = [i for i, w in enumerate(weights) if w > ZERO]
    allocated = ZERO
    for i in weighted[:-1]:
        shares[i] = round2(amount * weights[i] / total)
        allocated += shares[i]
    shares[weighted[-1]] = amount - allocated
    return shares


def _irr_or_none(cash_flows: MonthlyArray) -> Optional[float]:
    # A rate only exists when money goes both ways
    if not any(v < ZERO for v in cash_flows) or not any(v > ZERO for v in cash_flows):
        return None
    return calc_irr(cash_flows)


def _moic(accounts: Sequence[CapitalAccount]) -> Optional[float]:
    contributed = sum((a.contributed for a in accounts), ZERO)
    if contributed <= ZERO:
        return None
    return float(sum((a.distributed for a in accounts), ZERO) / contributed)


class _Waterfall:
    """Mutable state for a single waterfall run."""

    def __init__(self, tranches: Sequence[EquityTranche], terms: WaterfallTerms, periods: int):
        self.terms = terms
        self.periods = periods
        self.accounts = [
            CapitalAccount(
                key=t.key,
                role=t.role,
                commitment=t.commitment,
                calls=zeros(periods),
                distributions=zeros(periods),
                pref_accrued=zeros(periods),
            )
            for t in tranches
        ]
        self.pref_rates = [t.pref_rate_pa for t in tranches]
        self.lps = [a for a in self.accounts if a.role == PartnerRole.LP]
        self.gps = [a for a in self.accounts if a.role == PartnerRole.GP]
        self.tier_log: List[TierAllocation] = []
        self.catch_up_events: List[CatchUpEvent] = []

    @property
    def profit_total(self) -> Decimal:
        return sum((a.profit_distributed for a in self.accounts), ZERO)

    @property
    def profit_gp(self) -> Decimal:
        return sum((a.profit_distributed for a in self.gps), ZERO)

    def is_payout_period(self, period: int) -> bool:
        if self.terms.distribution_frequency == DistributionFrequency.QUARTERLY:
            return (period + 1) % 3 == 0 or period == self.periods - 1
        return True

    def lp_cash_flows(self, period: int) -> MonthlyArray:
        """Combined LP cash flows for periods ``0..period``."""
        flows = zeros(period + 1)
        for account in self.lps:
            for t in range(period + 1):
                flows[t] += account.distributions[t] - account.calls[t]
        return flows

    def _pay(self, account: CapitalAccount, period: int, amount: Decimal, is_profit: bool) -> None:
        account.distributions[period] += amount
        account.distributed += amount
        if is_profit:
            account.profit_distributed += amount

    def _pay_by_commitment(self, group: List[CapitalAccount], period: int, amount: Decimal) -> None:
        shares = allocate_pro_rata(amount, [a.commitment for a in group])
        if sum(shares, ZERO) != amount:
            # Zero commitments: split evenly
            shares = allocate_pro_rata(amount, [ONE] * len(group))
        for account, share in zip(group, shares):
            self._pay(account, period, share, is_profit=True)

    def call_capital(self, period: int, amount: Decimal) -> None:
        shares = allocate_pro_rata(amount, [a.commitment for a in self.accounts])
        for account, share in zip(self.accounts, shares):
            account.calls[period] += share
            account.contributed += share
            account.unreturned_capital += share

    def accrue_pref(self, period: int) -> None:
        compound = self.terms.pref_compounding == PrefCompounding.COMPOUND
        for account, rate in zip(self.accounts, self.pref_rates):
            if rate <= ZERO:
                continue
            if compound:
                base = account.unreturned_capital + account.pref_balance
                monthly = periodic_rate(rate, PERIODS_PER_YEAR)
            else:
                base = account.unreturned_capital
                monthly = rate / PERIODS_PER_YEAR
            if base > ZERO:
                accrual = round2(base * monthly)
                account.pref_accrued[period] = accrual
                account.pref_balance += accrual

    def return_capital(self, period: int, cash: Decimal) -> Decimal:
        owed = sum((a.unreturned_capital for a in self.accounts), ZERO)
        payment = min(cash, owed)
        shares = allocate_pro_rata(payment, [a.unreturned_capital for a in self.accounts])
        paid = ZERO
        for account, share in zip(self.accounts, shares):
            share = min(share, account.unreturned_capital)
            account.unreturned_capital -= share
            self._pay(account, period, share, is_profit=False)
            paid += share
        return paid

    def pay_pref(self, period: int, cash: Decimal) -> Decimal:
        owed = sum((a.pref_balance for a in self.accounts), ZERO)
        payment = min(cash, owed)
        shares = allocate_pro_rata(payment, [a.pref_balance for a in self.accounts])
        paid = ZERO
        for account, share in zip(self.accounts, shares):
            share = min(share, account.pref_balance)
            account.pref_balance -= share
            self._pay(account, period, share, is_profit=True)
            paid += share
        return paid

    def catch_up(self, period: int, cash: Decimal) -> Decimal:
        """Pay the GP until it holds the target share of cumulative profit.

        x = (target x A - G) / (1 - target), where A is all profit and G
        the GP's profit distributed so far.
        """
        target = self.terms.gp_target_share
        if not self.gps or target <= ZERO:
            return ZERO
        needed = round2((target * self.profit_total - self.profit_gp) / (ONE - target))
        payment = min(cash, needed)
        if payment <= ZERO:
            return ZERO
        self._pay_by_commitment(self.gps, period, payment)
        share_after = float(self.profit_gp / self.profit_total)
        self.catch_up_events.append(CatchUpEvent(period, payment, share_after))
        logger.debug("GP catch-up of %s in period %d (GP share %.4f)", payment, period, share_after)
        return payment

    def split(self, period: int, cash: Decimal, lp_share: Decimal) -> Tuple[Decimal, Decimal]:
        lp_amount = round2(cash * lp_share)
        gp_amount = cash - lp_amount
        if not self.gps:
            lp_amount, gp_amount = cash, ZERO
        elif not self.lps:
            lp_amount, gp_amount = ZERO, cash
        if lp_amount:
            self._pay_by_commitment(self.lps, period, lp_amount)
        if gp_amount:
            self._pay_by_commitment(self.gps, period, gp_amount)
        return lp_amount, gp_amount

    def hurdle_boundary(self, period: int, cash: Decimal, tier: HurdleTier) -> Decimal:
        """Largest amount of ``cash`` this tier can pay before the LP IRR reaches its hurdle.

        The LP IRR only rises as the tier pays out more, so the boundary is
        found by binary search over whole cents, keeping the side below the
        hurdle.
        """
        hurdle = float(periodic_rate(tier.irr_hurdle_pa, PERIODS_PER_YEAR))
        history = self.lp_cash_flows(period)

        def reaches_hurdle(amount: Decimal) -> bool:
            flows = list(history)
            flows[-1] += round2(amount * tier.lp_split)
            irr = _irr_or_none(flows)
            return irr is not None and irr >= hurdle

        if reaches_hurdle(ZERO):
            return ZERO
        if not reaches_hurdle(cash):
            return cash

        low, high = 0, int(cash / CENT)
        while high - low > 1:
            mid = (low + high) // 2
            if reaches_hurdle(mid * CENT):
                high = mid
            else:
                low = mid
        return low * CENT

    def pay_tiers(self, period: int, cash: Decimal, entry: TierAllocation) -> None:
        """Run cash through the IRR-hurdle tiers; the last tier takes whatever is left."""
        tiers = self.terms.tiers
        remaining = cash
        for index, tier in enumerate(tiers):
            if index == len(tiers) - 1 or not self.lps:
                amount = remaining
            else:
                amount = self.hurdle_boundary(period, remaining, tier)
            if amount > ZERO:
                lp_amount, gp_amount = self.split(period, amount, tier.lp_split)
                entry.lp_split += lp_amount
                entry.gp_split += gp_amount
            entry.hurdle_tiers.append(amount)
            remaining -= amount

    def distribute(self, period: int, cash: Decimal) -> None:
        entry = TierAllocation(period=period, available=cash)
        remaining = cash

        entry.return_of_capital = self.return_capital(period, remaining)
        remaining -= entry.return_of_capital

        if remaining > ZERO:
            entry.preferred_return = self.pay_pref(period, remaining)
            remaining -= entry.preferred_return

        if remaining > ZERO and self.terms.catch_up:
            entry.catch_up = self.catch_up(period, remaining)
            remaining -= entry.catch_up

        if remaining > ZERO:
            if self.terms.tiers:
                self.pay_tiers(period, remaining, entry)
            else:
                entry.lp_split, entry.gp_split = self.split(period, remaining, self.terms.lp_split)

        self.tier_log.append(entry)

    def restore_lps(self, period: int, amount: Decimal) -> Decimal:
        """Pay ``amount`` to LPs against their unreturned capital, then unpaid pref.

        Shares follow each LP's outstanding balance. Returns the part of
        ``amount`` that was not needed.
        """
        weights = [a.unreturned_capital + a.pref_balance for a in self.lps]
        owed = sum(weights, ZERO)
        restored = ZERO
        for account, share, outstanding in zip(
            self.lps, allocate_pro_rata(min(amount, owed), weights), weights
        ):
            share = min(share, outstanding)
            capital = min(share, account.unreturned_capital)
            account.unreturned_capital -= capital
            self._pay(account, period, capital, is_profit=False)
            pref = share - capital
            account.pref_balance -= pref
            self._pay(account, period, pref, is_profit=True)
            restored += share
        return amount - restored

    def settle_clawback(self) -> Decimal:
        """Return GP profit to the LPs in the final period.

        The GP gives back the larger of its profit above the target share
        and the LPs' outstanding capital plus unpaid pref, capped at the
        profit it has received. LPs are made whole first; only the rest is
        booked as LP profit.
        """
        if not self.gps or not self.lps or self.periods == 0:
            return ZERO
        target = self.terms.gp_target_share
        gp_profit = self.profit_gp
        over_target = self.profit_gp - target * self.profit_total
        lp_shortfall = sum((a.unreturned_capital + a.pref_balance for a in self.lps), ZERO)
        amount = round2(min(max(over_target, lp_shortfall, ZERO), gp_profit))
        if amount <= ZERO:
            return ZERO

        last = self.periods - 1
        gp_shares = allocate_pro_rata(amount, [a.profit_distributed for a in self.gps])
        for account, share in zip(self.gps, gp_shares):
            account.distributions[last] -= share
            account.distributed -= share
            account.profit_distributed -= share

        excess = self.restore_lps(last, amount)
        if excess > ZERO:
            self._pay_by_commitment(self.lps, last, excess)

        if self.tier_log and self.tier_log[-1].period == last:
            self.tier_log[-1].clawback = amount
        else:
            self.tier_log.append(TierAllocation(period=last, available=ZERO, clawback=amount))
        logger.info("GP clawback of %s settled in period %d", amount, last)
        return amount


def compute_equity_waterfall(
    investor_cash_flow: Sequence[Optional[Number]],
    tranches: Sequence[EquityTranche],
    terms: Optional[WaterfallTerms] = None,
) -> WaterfallResult:
    """Run cash through the distribution waterfall.

    Capital calls are allocated by commitment. Preferred return accrues
    monthly on each tranche's unreturned capital (after that period's
    call), at the tranche's ``pref_rate_pa``: simple (rate / 12) or
    compound (effective monthly rate, also on unpaid pref). With quarterly
    distribution, positive cash is held and paid out at each quarter end
    and in the final period.

    Args:
        investor_cash_flow: Per-period cash, negative = call, positive =
            distributable. Rounded to cents on entry.
        tranches: Participating equity tranches (at least one).
        terms: Split, hurdle, catch-up, clawback, and timing terms.

    Returns:
        WaterfallResult with per-tranche ledgers and LP/GP returns.

    Raises:
        ValidationError: If there are no tranches, duplicate keys, or a call
            with zero total commitment.

    Example:
        >>> result = compute_equity_waterfall(
        ...     [-1000, 0, 1500],
        ...     [EquityTranche("lp", "lp", 900), EquityTranche("gp", "gp", 100)],
        ...     WaterfallTerms(lp_split=0.8, gp_split=0.2),
        ... )
        >>> result.lp_distributions[2], result.gp_distributions[2]
        (Decimal('1300.00'), Decimal('200.00'))
    """
    terms = terms or WaterfallTerms()
    tranches = list(tranches)
    if not tranches:
        raise ValidationError("At least one equity tranche is required")
    keys = [t.key for t in tranches]
    if len(set(keys)) != len(keys):
        raise ValidationError(f"Duplicate tranche keys: {keys}")

    flows = [round2(to_decimal(v)) for v in investor_cash_flow]
    periods = len(flows)
    if any(v < ZERO for v in flows) and sum((t.commitment for t in tranches), ZERO) <= ZERO:
        raise ValidationError("Capital calls need a positive total commitment")

    waterfall = _Waterfall(tranches, terms, periods)
    held = ZERO
    for period, value in enumerate(flows):
        if value < ZERO:
            waterfall.call_capital(period, -value)
        waterfall.accrue_pref(period)
        if value > ZERO:
            held += value
        if held > ZERO and waterfall.is_payout_period(period):
            waterfall.distribute(period, held)
            held = ZERO

    clawback = waterfall.settle_clawback() if terms.clawback else ZERO

    lp_distributions = zeros(periods)
    gp_distributions = zeros(periods)
    lp_cash_flows = zeros(periods)
    gp_cash_flows = zeros(periods)
    for account in waterfall.accounts:
        dist_row = lp_distributions if account.role == PartnerRole.LP else gp_distributions
        cf_row = lp_cash_flows if account.role == PartnerRole.LP else gp_cash_flows
        for t, (dist, flow) in enumerate(zip(account.distributions, account.cash_flows)):
            dist_row[t] += dist
            cf_row[t] += flow

    lp_irr = _irr_or_none(lp_cash_flows)
    gp_irr = _irr_or_none(gp_cash_flows)

    trace("waterfall.lp_distributions", sum(lp_distributions, ZERO), {"cash.equity_cf": sum(flows, ZERO)})
    trace("waterfall.gp_distributions", sum(gp_distributions, ZERO), {"cash.equity_cf": sum(flows, ZERO)})

    return WaterfallResult(
        accounts={a.key: a for a in waterfall.accounts},
        lp_distributions=lp_distributions,
        gp_distributions=gp_distributions,
        lp_cash_flows=lp_cash_flows,
        gp_cash_flows=gp_cash_flows,
        tier_log=waterfall.tier_log,
        catch_up_events=waterfall.catch_up_events,
        clawback_amount=clawback,
        lp_irr=lp_irr,
        gp_irr=gp_irr,
        lp_irr_pa=annualize_rate(lp_irr),
        gp_irr_pa=annualize_rate(gp_irr),
        lp_moic=_moic(waterfall.lps),
        gp_moic=_moic(waterfall.gps),
    )

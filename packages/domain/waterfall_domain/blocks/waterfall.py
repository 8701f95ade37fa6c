"""Waterfall computation block.

Allocates one fund distribution across an ordered set of tiers:
1. Return of capital (pro-rata to unreturned capital)
2. Preferred return (pro-rata to unpaid hurdle return)
3. GP catch-up (until the GP holds its target share of profit)
4. Carried interest split / residual (everything left, pro-rata to contributed capital)

Each tier absorbs min(remaining pool, tier capacity); its take is split
between the GP (tier.gp_share_percent) and the LPs, and the LP part is
allocated across investors by their entitlement within that tier.

run_waterfall() is the pure calculation; WaterfallBlock wraps it for the
block executor and flattens the result into DataFrames.
"""

import logging
from typing import Dict, List, Optional, Sequence
from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from datetime import date
import pandas as pd

from .base import Block, BlockContext
from ..errors import InvalidInputError
from ..schemas import (
    CalculationCFG,
    DistributionRequest,
    GPAllocation,
    InvestorAllocation,
    InvestorCapitalAccount,
    TierAllocation,
    TierDistributionResult,
    TierType,
    WaterfallConfig,
    WaterfallDistribution,
    WaterfallTier,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

# Working precision for one run; wide enough that sums and differences of
# working-scale amounts are exact.
_PRECISION = 40

SYNTHETIC_RESIDUAL_TIER_ID = "unallocated_residual"


# =============================================================================
# Validation
# =============================================================================

def to_decimal(value, what: str = "amount") -> Decimal:
    """Coerce a caller-supplied number to a finite Decimal.

    Floats go through str() so 0.1 becomes Decimal('0.1'), not its binary
    expansion.
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"{what} must be a number, got {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInputError(f"{what} must be a number, got {value!r}") from None
    if not result.is_finite():
        raise InvalidInputError(f"{what} must be finite, got {value!r}")
    return result


def validate_waterfall_config(config: WaterfallConfig) -> None:
    """Check the tier structure before anything is allocated.

    Raises:
        InvalidInputError: duplicate tier ids, duplicate orders, an absorbing
            tier before the last position, no final absorbing tier (when
            required), or a catch-up tier that can never reach its target
    """
    seen_ids = set()
    for tier in config.tiers:
        if tier.id in seen_ids:
            raise InvalidInputError(f"Duplicate tier id '{tier.id}' in waterfall '{config.id}'")
        seen_ids.add(tier.id)

    ordered = config.sorted_tiers()
    for previous, current in zip(ordered, ordered[1:]):
        if current.order == previous.order:
            raise InvalidInputError(
                f"Tiers '{previous.id}' and '{current.id}' both have order {current.order}; "
                f"tier order must be strictly increasing"
            )

    for tier in ordered[:-1]:
        if tier.is_absorbing:
            raise InvalidInputError(
                f"Tier '{tier.id}' ({tier.tier_type}) absorbs the remaining pool and must be "
                f"the last tier, but tier '{ordered[-1].id}' follows it"
            )

    if config.require_residual_tier and not ordered[-1].is_absorbing:
        raise InvalidInputError(
            f"Waterfall '{config.id}' has no residual tier: the last tier must be "
            f"{TierType.CARRIED_INTEREST_SPLIT.value} or {TierType.RESIDUAL.value}"
        )

    for tier in ordered:
        if tier.tier_type == TierType.GP_CATCH_UP and tier.gp_share_percent <= tier.catch_up_target_percent:
            raise InvalidInputError(
                f"Catch-up tier '{tier.id}' pays the GP {tier.gp_share_percent}% which cannot "
                f"reach a {tier.catch_up_target_percent}% target; GP share must exceed the target"
            )


def _validate_accounts(accounts: Sequence[InvestorCapitalAccount], amount: Decimal) -> None:
    seen = set()
    for account in accounts:
        if account.investor_id in seen:
            raise InvalidInputError(f"Duplicate capital account for investor '{account.investor_id}'")
        seen.add(account.investor_id)

    if amount > 0 and not accounts:
        raise InvalidInputError(
            f"Cannot distribute {amount} with no investor capital accounts"
        )


# =============================================================================
# Calculation
# =============================================================================

class _WaterfallRun:
    """Mutable state for a single run_waterfall() call."""

    def __init__(
        self,
        config: WaterfallConfig,
        accounts: List[InvestorCapitalAccount],
        distribution_date: date,
        cfg: CalculationCFG,
    ):
        self.config = config
        self.accounts = accounts
        self.distribution_date = distribution_date
        self.cfg = cfg
        self.quantum = cfg.working_quantum

        self.tier_results: List[TierDistributionResult] = []
        self.gp_allocations: List[TierAllocation] = []
        self.investor_tiers: Dict[str, List[TierAllocation]] = {a.investor_id: [] for a in accounts}

    # -- capacities -------------------------------------------------------

    def years_elapsed(self, account: InvestorCapitalAccount) -> Decimal:
        start = account.contribution_date or self.config.fund_start_date
        if start is None:
            return ONE
        days = max(0, (self.distribution_date - start).days)
        return Decimal(days) / self.cfg.days_per_year

    def preferred_return_due(self, account: InvestorCapitalAccount, tier: WaterfallTier) -> Decimal:
        """Unpaid preferred return for one investor under this tier's hurdle."""
        if account.preferred_return_accrued > 0:
            accrued = account.preferred_return_accrued
        else:
            rate = tier.hurdle_rate_percent / HUNDRED
            years = self.years_elapsed(account)
            if self.config.preferred_return_compounding == "compound":
                growth = (ONE + rate) ** years - ONE
            else:
                growth = rate * years
            accrued = account.capital_contributed * growth
        return max(ZERO, accrued - account.preferred_return_paid).quantize(self.quantum)

    def entitlements(self, tier: WaterfallTier) -> Dict[str, Decimal]:
        """Per-investor weight used to split this tier's LP amount."""
        if tier.tier_type == TierType.RETURN_OF_CAPITAL:
            return {a.investor_id: a.unreturned_capital for a in self.accounts}
        if tier.tier_type == TierType.PREFERRED_RETURN:
            return {a.investor_id: self.preferred_return_due(a, tier) for a in self.accounts}
        return {a.investor_id: a.capital_contributed for a in self.accounts}

    def catch_up_capacity(self, tier: WaterfallTier) -> Decimal:
        """Amount that lifts the GP to its target share of profit so far.

        With P profit distributed so far (LP profit plus everything the GP
        has had) and G the GP's take, distributing x at GP share g ends at
        (G + g*x) / (P + x) == target, so x = (target*P - G) / (g - target).
        """
        gp_so_far = sum((r.gp_amount for r in self.tier_results), ZERO)
        lp_profit = sum(
            (r.lp_amount for r in self.tier_results if r.tier_type != TierType.RETURN_OF_CAPITAL),
            ZERO,
        )
        profit = lp_profit + gp_so_far
        target = tier.catch_up_target_percent / HUNDRED
        gp_share = tier.gp_share_percent / HUNDRED
        needed = (target * profit - gp_so_far) / (gp_share - target)
        return max(ZERO, needed).quantize(self.quantum)

    def capacity(self, tier: WaterfallTier, weights: Dict[str, Decimal], remaining: Decimal) -> Decimal:
        if tier.is_absorbing:
            return remaining
        if tier.tier_type == TierType.GP_CATCH_UP:
            return self.catch_up_capacity(tier)
        return sum(weights.values(), ZERO)

    # -- allocation -------------------------------------------------------

    def allocate_pro_rata(self, amount: Decimal, weights: Dict[str, Decimal]) -> Dict[str, Decimal]:
        """Split amount by weight.

        Shares are truncated to working scale and the last weighted investor
        takes the remainder, so the parts always sum to amount. Investors
        with zero weight get nothing; if nobody has weight nobody is paid.
        """
        total = sum(weights.values(), ZERO)
        shares = {investor_id: ZERO for investor_id in weights}
        if amount <= 0:
            return shares
        if total <= 0:
            logger.warning("No investor entitlement to receive %s; LP amount left unallocated", amount)
            return shares

        weighted = [investor_id for investor_id, w in weights.items() if w > 0]
        allocated = ZERO
        for investor_id in weighted[:-1]:
            share = (amount * weights[investor_id] / total).quantize(self.quantum, rounding=ROUND_DOWN)
            shares[investor_id] = share
            allocated += share
        shares[weighted[-1]] = amount - allocated
        return shares

    def fill(self, tier: WaterfallTier, remaining: Decimal) -> Decimal:
        """Run one tier against the remaining pool; returns the new remaining."""
        if remaining <= 0:
            self.record(tier, remaining, ZERO, ZERO, ZERO)
            return remaining

        weights = self.entitlements(tier)
        capacity = self.capacity(tier, weights, remaining)
        amount = max(ZERO, min(remaining, capacity))

        gp_amount = amount * tier.gp_share_percent / HUNDRED
        lp_amount = amount - gp_amount

        for investor_id, share in self.allocate_pro_rata(lp_amount, weights).items():
            if share > 0:
                self.investor_tiers[investor_id].append(
                    TierAllocation(tier_id=tier.id, tier_name=tier.name, amount=share)
                )
        if gp_amount > 0:
            self.gp_allocations.append(
                TierAllocation(tier_id=tier.id, tier_name=tier.name, amount=gp_amount)
            )

        logger.debug(
            "Tier %s (%s): capacity=%s distributed=%s lp=%s gp=%s",
            tier.id, tier.tier_type, capacity, amount, lp_amount, gp_amount,
        )
        self.record(tier, remaining, amount, lp_amount, gp_amount)
        return remaining - amount

    def fill_synthetic_residual(self, remaining: Decimal) -> None:
        """Pay leftover cash 100% to LPs when the config has no residual tier."""
        last_order = self.tier_results[-1].order if self.tier_results else 0
        tier = WaterfallTier(
            id=SYNTHETIC_RESIDUAL_TIER_ID,
            name="Unallocated Residual",
            tier_type=TierType.RESIDUAL,
            order=last_order + 1,
            gp_share_percent=ZERO,
        )
        logger.debug("Waterfall '%s' has %s left after its last tier", self.config.id, remaining)
        self.fill(tier, remaining)

    def record(self, tier: WaterfallTier, available: Decimal, amount: Decimal,
               lp_amount: Decimal, gp_amount: Decimal) -> None:
        self.tier_results.append(TierDistributionResult(
            tier_id=tier.id,
            tier_name=tier.name,
            tier_type=tier.tier_type,
            order=tier.order,
            amount_available=available,
            amount_distributed=amount,
            remaining_after_tier=available - amount,
            lp_amount=lp_amount,
            gp_amount=gp_amount,
        ))

    def investor_allocations(self) -> List[InvestorAllocation]:
        total_contributed = sum((a.capital_contributed for a in self.accounts), ZERO)
        allocations = []
        for account in self.accounts:
            tiers = self.investor_tiers[account.investor_id]
            ownership = (
                (account.capital_contributed / total_contributed * HUNDRED).quantize(self.quantum)
                if total_contributed > 0
                else ZERO
            )
            allocations.append(InvestorAllocation(
                investor_id=account.investor_id,
                investor_name=account.investor_name,
                ownership_percent=ownership,
                tier_allocations=tiers,
                total_allocation=sum((t.amount for t in tiers), ZERO),
            ))
        return allocations


def run_waterfall(
    config: WaterfallConfig,
    distributable_amount,
    accounts: Sequence[InvestorCapitalAccount],
    fund_id: str,
    distribution_date: date,
    cfg: Optional[CalculationCFG] = None,
) -> WaterfallDistribution:
    """Allocate a distribution across the waterfall's tiers and investors.

    Pure and deterministic: the accounts are read, never modified, and the
    same inputs always produce the same result.

    Args:
        config: Tier structure
        distributable_amount: Cash to distribute (Decimal, int, str or float)
        accounts: Capital account snapshots, one per investor
        fund_id: Fund making the distribution
        distribution_date: Distribution date (end of preferred return accrual)
        cfg: Optional calculation settings

    Returns:
        WaterfallDistribution with one result per tier in fill order

    Raises:
        InvalidInputError: Negative amount, malformed config, duplicate
            investor ids, or a positive amount with no investors

    Example:
        result = run_waterfall(standard_waterfall(), Decimal("1200000"), accounts,
                               "fund-001", date(2024, 12, 31))
        result.tier("tier-1").amount_distributed
    """
    cfg = cfg or CalculationCFG()
    accounts = list(accounts)

    with localcontext() as ctx:
        ctx.prec = _PRECISION

        amount = to_decimal(distributable_amount, "distributable_amount")
        if amount < 0:
            raise InvalidInputError(f"Distributable amount must not be negative, got {amount}")
        validate_waterfall_config(config)
        _validate_accounts(accounts, amount)

        run = _WaterfallRun(config, accounts, distribution_date, cfg)
        remaining = amount
        for tier in config.sorted_tiers():
            remaining = run.fill(tier, remaining)

        if remaining > 0:
            run.fill_synthetic_residual(remaining)

        gp_total = sum((r.gp_amount for r in run.tier_results), ZERO)
        result = WaterfallDistribution(
            fund_id=fund_id,
            distribution_date=distribution_date,
            total_distributable=amount,
            tier_distributions=run.tier_results,
            gp_allocation=GPAllocation(tier_allocations=run.gp_allocations, total_amount=gp_total),
            investor_allocations=run.investor_allocations(),
        )

    logger.debug(
        "Waterfall '%s' for fund %s on %s: distributed %s (GP %s) across %d tiers",
        config.id, fund_id, distribution_date, amount, gp_total, len(run.tier_results),
    )
    return result


# =============================================================================
# Block
# =============================================================================

class WaterfallBlock(Block):
    """Runs one fund's waterfall from context inputs.

    Inputs (from context):
        - waterfall_config: WaterfallConfig
        - capital_accounts: list of InvestorCapitalAccount
        - distribution_request: DistributionRequest

    Outputs (to context):
        - waterfall_result: WaterfallDistribution
        - waterfall_tiers: DataFrame, one row per tier in fill order:
            * order, tier_id, tier_name, tier_type
            * amount_available, amount_distributed, lp_amount, gp_amount, amount_remaining
        - waterfall_by_investor: DataFrame, one row per investor:
            * investor_id, investor_name, ownership_pct
            * total_allocation, distribution_pct (share of total distributable)
        - waterfall_allocations: DataFrame, one row per (recipient, tier) with an amount:
            * recipient ("LP" or "GP"), investor_id, tier_id, tier_name, amount

    Example:
        context = BlockContext()
        context.set("waterfall_config", standard_waterfall())
        context.set("capital_accounts", accounts)
        context.set("distribution_request", DistributionRequest(
            fund_id="fund-001", distribution_date=date(2024, 12, 31),
            distributable_amount=Decimal("1000000")))

        WaterfallBlock().execute(context)
        tiers_df = context.get("waterfall_tiers")
    """

    def __init__(
        self,
        config_key: str = "waterfall_config",
        accounts_key: str = "capital_accounts",
        request_key: str = "distribution_request",
        cfg: Optional[CalculationCFG] = None,
    ):
        self.config_key = config_key
        self.accounts_key = accounts_key
        self.request_key = request_key
        self.cfg = cfg

    def inputs(self) -> List[str]:
        return [self.config_key, self.accounts_key, self.request_key]

    def outputs(self) -> List[str]:
        return [
            "waterfall_result",
            "waterfall_tiers",
            "waterfall_by_investor",
            "waterfall_allocations",
        ]

    def execute(self, context: BlockContext) -> None:
        config: WaterfallConfig = context.get(self.config_key)
        accounts: List[InvestorCapitalAccount] = context.get(self.accounts_key)
        request: DistributionRequest = context.get(self.request_key)

        result = run_waterfall(
            config,
            request.distributable_amount,
            accounts,
            request.fund_id,
            request.distribution_date,
            cfg=self.cfg,
        )

        context.set("waterfall_result", result)
        context.set("waterfall_tiers", tiers_frame(result))
        context.set("waterfall_by_investor", self._by_investor_frame(result))
        context.set("waterfall_allocations", self._allocations_frame(result))

    def _by_investor_frame(self, result: WaterfallDistribution) -> pd.DataFrame:
        columns = ["investor_id", "investor_name", "ownership_pct", "total_allocation", "distribution_pct"]
        total = result.total_distributable
        rows = [
            {
                "investor_id": a.investor_id,
                "investor_name": a.investor_name,
                "ownership_pct": float(a.ownership_percent),
                "total_allocation": float(a.total_allocation),
                "distribution_pct": float(a.total_allocation / total * HUNDRED) if total > 0 else 0.0,
            }
            for a in result.investor_allocations
        ]
        df = pd.DataFrame(rows, columns=columns)
        if not df.empty:
            df = df.sort_values("total_allocation", ascending=False, kind="stable").reset_index(drop=True)
        return df

    def _allocations_frame(self, result: WaterfallDistribution) -> pd.DataFrame:
        columns = ["recipient", "investor_id", "tier_id", "tier_name", "amount"]
        rows = []
        for allocation in result.investor_allocations:
            for t in allocation.tier_allocations:
                rows.append({
                    "recipient": "LP",
                    "investor_id": allocation.investor_id,
                    "tier_id": t.tier_id,
                    "tier_name": t.tier_name,
                    "amount": float(t.amount),
                })
        for t in result.gp_allocation.tier_allocations:
            rows.append({
                "recipient": "GP",
                "investor_id": None,
                "tier_id": t.tier_id,
                "tier_name": t.tier_name,
                "amount": float(t.amount),
            })
        return pd.DataFrame(rows, columns=columns)


def tiers_frame(result: WaterfallDistribution) -> pd.DataFrame:
    """One row per tier in fill order (amounts as floats for display)."""
    columns = [
        "order", "tier_id", "tier_name", "tier_type",
        "amount_available", "amount_distributed", "lp_amount", "gp_amount", "amount_remaining",
    ]
    rows = [
        {
            "order": t.order,
            "tier_id": t.tier_id,
            "tier_name": t.tier_name,
            "tier_type": t.tier_type,
            "amount_available": float(t.amount_available),
            "amount_distributed": float(t.amount_distributed),
            "lp_amount": float(t.lp_amount),
            "gp_amount": float(t.gp_amount),
            "amount_remaining": float(t.remaining_after_tier),
        }
        for t in result.tier_distributions
    ]
    return pd.DataFrame(rows, columns=columns)

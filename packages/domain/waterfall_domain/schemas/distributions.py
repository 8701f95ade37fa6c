"""Waterfall distribution request and result models.

The result of one waterfall run is a fixed record shape: one
TierDistributionResult per tier (in fill order), a per-investor breakdown,
and the aggregated GP allocation.
"""

from typing import List, Optional
from decimal import Decimal
from datetime import date
from pydantic import Field

from .base import DomainModel, FundId, InvestorId, MoneyAmount, SignedAmount, TierId
from .tiers import TierType


# =============================================================================
# Request
# =============================================================================

class DistributionRequest(DomainModel):
    """Scalar inputs for one waterfall run.

    The amount is not range-checked here; a negative amount is rejected by the
    calculation itself with InvalidInputError.
    """

    fund_id: FundId = Field(
        description="Fund the distribution is made from"
    )

    distribution_date: date = Field(
        description="Distribution date (end of preferred return accrual)"
    )

    distributable_amount: SignedAmount = Field(
        description="Cash available to distribute through the waterfall"
    )


# =============================================================================
# Tier and Allocation Results
# =============================================================================

class TierDistributionResult(DomainModel):
    """How much one tier absorbed and how it split between LPs and the GP."""

    tier_id: TierId
    tier_name: str
    tier_type: TierType
    order: int

    amount_available: MoneyAmount = Field(
        description="Pool remaining when the tier was entered"
    )

    amount_distributed: MoneyAmount = Field(
        description="Amount this tier absorbed (never more than amount_available)"
    )

    remaining_after_tier: MoneyAmount = Field(
        description="Pool remaining after this tier"
    )

    lp_amount: MoneyAmount
    gp_amount: MoneyAmount


class TierAllocation(DomainModel):
    """One recipient's share of one tier."""

    tier_id: TierId
    tier_name: str
    amount: MoneyAmount


class InvestorAllocation(DomainModel):
    """Everything one LP received from this distribution."""

    investor_id: InvestorId
    investor_name: str = ""

    ownership_percent: Decimal = Field(
        default=Decimal("0"),
        description="Share of total contributed capital, in points"
    )

    tier_allocations: List[TierAllocation] = Field(default_factory=list)

    total_allocation: MoneyAmount = Field(default=Decimal("0"))

    def amount_for_tier(self, tier_id: str) -> Decimal:
        """Amount received from a tier (0 if the investor had no share of it)."""
        return sum(
            (a.amount for a in self.tier_allocations if a.tier_id == tier_id),
            Decimal("0"),
        )


class GPAllocation(DomainModel):
    """Aggregated GP take across tiers."""

    tier_allocations: List[TierAllocation] = Field(default_factory=list)
    total_amount: MoneyAmount = Field(default=Decimal("0"))


# =============================================================================
# Waterfall Distribution
# =============================================================================

class WaterfallDistribution(DomainModel):
    """Output of one waterfall run.

    Invariants:
        - sum(t.amount_distributed for t in tier_distributions) == total_distributable
        - t.lp_amount + t.gp_amount == t.amount_distributed for every tier
        - gp_allocation.total_amount == sum(t.gp_amount for t in tier_distributions)
    """

    fund_id: FundId
    distribution_date: date
    total_distributable: MoneyAmount

    tier_distributions: List[TierDistributionResult] = Field(default_factory=list)
    gp_allocation: GPAllocation = Field(default_factory=GPAllocation)
    investor_allocations: List[InvestorAllocation] = Field(default_factory=list)

    @property
    def total_lp_amount(self) -> Decimal:
        return sum((t.lp_amount for t in self.tier_distributions), Decimal("0"))

    @property
    def total_gp_amount(self) -> Decimal:
        return self.gp_allocation.total_amount

    def tier(self, tier_id: str) -> Optional[TierDistributionResult]:
        """Look up a tier result by tier id."""
        return next((t for t in self.tier_distributions if t.tier_id == tier_id), None)

    def investor(self, investor_id: str) -> Optional[InvestorAllocation]:
        """Look up an investor's allocation by investor id."""
        return next(
            (a for a in self.investor_allocations if a.investor_id == investor_id),
            None,
        )

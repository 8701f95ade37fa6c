"""Waterfall tier and structure models.

A waterfall is an ordered sequence of tiers. Each tier has a capacity rule
(how much it is entitled to absorb) and a GP share (how much of what it
absorbs goes to the General Partner instead of the Limited Partners).

Common structures:
    European (standard): return of capital, preferred return, GP catch-up,
        then carried interest split.
    American: return of capital, preferred return, then carried interest
        split with no catch-up.
"""

from enum import Enum
from typing import List, Literal, Optional
from decimal import Decimal
from datetime import date
from pydantic import Field, model_validator

from .base import DomainModel, PercentPoints, TierId


# =============================================================================
# Tier Type
# =============================================================================

class TierType(str, Enum):
    """Closed set of tier capacity rules."""

    RETURN_OF_CAPITAL = "RETURN_OF_CAPITAL"
    PREFERRED_RETURN = "PREFERRED_RETURN"
    GP_CATCH_UP = "GP_CATCH_UP"
    CARRIED_INTEREST_SPLIT = "CARRIED_INTEREST_SPLIT"
    RESIDUAL = "RESIDUAL"


# Tier types whose capacity is "everything that remains"
ABSORBING_TIER_TYPES = frozenset({TierType.CARRIED_INTEREST_SPLIT, TierType.RESIDUAL})


# =============================================================================
# Waterfall Tier
# =============================================================================

class WaterfallTier(DomainModel):
    """One rule in the waterfall's ordered sequence.

    Capacity by type:
        - RETURN_OF_CAPITAL: unreturned capital across investors
        - PREFERRED_RETURN: unpaid hurdle return across investors
        - GP_CATCH_UP: amount needed to bring the GP up to its target share of profit
        - CARRIED_INTEREST_SPLIT / RESIDUAL: whatever remains

    Example:
        Standard 20% carry after an 8% hurdle:
            WaterfallTier(id="tier-2", name="Preferred Return (8%)",
                          tier_type="PREFERRED_RETURN", order=2, hurdle_rate_percent=8)
            WaterfallTier(id="tier-3", name="GP Catch-Up",
                          tier_type="GP_CATCH_UP", order=3, catch_up_target_percent=20)
            WaterfallTier(id="tier-4", name="Carried Interest Split",
                          tier_type="CARRIED_INTEREST_SPLIT", order=4, gp_share_percent=20)
    """

    id: TierId = Field(
        description="Stable identifier (also used for UI color/ordering)"
    )

    name: str = Field(
        description="Display name (e.g., 'Return of Capital')"
    )

    tier_type: TierType = Field(
        description="Capacity rule for this tier"
    )

    order: int = Field(
        description="Fill order (ascending; must be unique within a waterfall)"
    )

    gp_share_percent: PercentPoints = Field(
        default=Decimal("0"),
        description="Share of this tier's distribution paid to the GP. Defaults to 100 for GP_CATCH_UP, 0 otherwise."
    )

    hurdle_rate_percent: PercentPoints = Field(
        default=Decimal("8"),
        description="Annual hurdle rate in points (PREFERRED_RETURN tiers only)"
    )

    catch_up_target_percent: PercentPoints = Field(
        default=Decimal("20"),
        description="GP target share of total profit in points (GP_CATCH_UP tiers only)"
    )

    @model_validator(mode='before')
    @classmethod
    def default_catch_up_gp_share(cls, data):
        """A catch-up tier pays the GP in full unless told otherwise."""
        if isinstance(data, dict) and data.get("gp_share_percent") is None:
            data = dict(data)
            data.pop("gp_share_percent", None)
            if data.get("tier_type") == TierType.GP_CATCH_UP:
                data["gp_share_percent"] = Decimal("100")
        return data

    @property
    def is_absorbing(self) -> bool:
        """True for tiers that take everything left in the pool."""
        return self.tier_type in ABSORBING_TIER_TYPES


# =============================================================================
# Waterfall Config
# =============================================================================

class WaterfallConfig(DomainModel):
    """Ordered tiers plus fund-level waterfall parameters.

    A well-formed config has exactly one absorbing tier (CARRIED_INTEREST_SPLIT
    or RESIDUAL) and it sits last in fill order, so every dollar lands in some
    tier. Structural checks run when the waterfall is calculated, so a
    malformed config fails before any allocation happens.

    Preferred return accrual:
        The hurdle accrues from each account's contribution_date (or the
        fund_start_date when the account has none) to the distribution date.
        With neither date available the hurdle applies for one full year.
    """

    id: str = Field(
        description="Structure identifier (e.g., 'standard-4-tier')"
    )

    name: str = Field(
        description="Human-readable structure name"
    )

    description: str = Field(
        default="",
        description="Short description for display"
    )

    tiers: List[WaterfallTier] = Field(
        min_length=1,
        description="Tiers in any order; they are filled by ascending `order`"
    )

    fund_start_date: Optional[date] = Field(
        default=None,
        description="Default preferred return accrual start for accounts without a contribution date"
    )

    preferred_return_compounding: Literal["compound", "simple"] = Field(
        default="compound",
        description="'compound' compounds the hurdle annually; 'simple' accrues it linearly"
    )

    require_residual_tier: bool = Field(
        default=True,
        description="Reject configs without a final absorbing tier. When False, leftover cash "
                    "goes to a synthetic residual bucket paid 100% to LPs."
    )

    def sorted_tiers(self) -> List[WaterfallTier]:
        """Tiers in fill order."""
        return sorted(self.tiers, key=lambda t: t.order)

    def residual_tier(self) -> Optional[WaterfallTier]:
        """The last tier in fill order if it is absorbing, else None."""
        ordered = self.sorted_tiers()
        if ordered and ordered[-1].is_absorbing:
            return ordered[-1]
        return None


# =============================================================================
# Standard Structures
# =============================================================================

def standard_waterfall() -> WaterfallConfig:
    """Standard 4-tier (European-style) waterfall.

    Return of capital, 8% preferred return, 100% GP catch-up to 20%, then an
    80/20 split.
    """
    return WaterfallConfig(
        id="standard-4-tier",
        name="Standard 4-Tier Waterfall",
        description="Return of capital, 8% preferred return, GP catch-up to 20%, then 80/20 split",
        tiers=[
            WaterfallTier(id="tier-1", name="Return of Capital",
                          tier_type=TierType.RETURN_OF_CAPITAL, order=1),
            WaterfallTier(id="tier-2", name="Preferred Return (8%)",
                          tier_type=TierType.PREFERRED_RETURN, order=2,
                          hurdle_rate_percent=Decimal("8")),
            WaterfallTier(id="tier-3", name="GP Catch-Up",
                          tier_type=TierType.GP_CATCH_UP, order=3,
                          gp_share_percent=Decimal("100"),
                          catch_up_target_percent=Decimal("20")),
            WaterfallTier(id="tier-4", name="Carried Interest Split",
                          tier_type=TierType.CARRIED_INTEREST_SPLIT, order=4,
                          gp_share_percent=Decimal("20")),
        ],
    )


def american_waterfall() -> WaterfallConfig:
    """American-style 3-tier waterfall (no catch-up)."""
    return WaterfallConfig(
        id="american-3-tier",
        name="American-Style 3-Tier Waterfall",
        description="Return of capital, 8% preferred return, then 80/20 split (no catch-up)",
        tiers=[
            WaterfallTier(id="tier-1", name="Return of Capital",
                          tier_type=TierType.RETURN_OF_CAPITAL, order=1),
            WaterfallTier(id="tier-2", name="Preferred Return (8%)",
                          tier_type=TierType.PREFERRED_RETURN, order=2,
                          hurdle_rate_percent=Decimal("8")),
            WaterfallTier(id="tier-3", name="Profit Split",
                          tier_type=TierType.CARRIED_INTEREST_SPLIT, order=3,
                          gp_share_percent=Decimal("20")),
        ],
    )

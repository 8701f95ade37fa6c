"""Fund waterfall domain schemas.

This package contains all Pydantic models for the waterfall domain layer:
- Base types and conventions
- Waterfall tiers and structures
- Investor capital accounts
- Distribution requests and results
- Fund hierarchy and cascade results
- Calculation settings

Usage:
    from waterfall_domain.schemas import (
        WaterfallConfig, WaterfallTier, TierType, InvestorCapitalAccount,
        FundNode, standard_waterfall,
    )
"""

# Base types
from .base import (
    DomainModel,
    MoneyAmount,
    SignedAmount,
    PercentPoints,
    Rate,
    FundId,
    InvestorId,
    TierId,
)

# Tiers and structures
from .tiers import (
    TierType,
    ABSORBING_TIER_TYPES,
    WaterfallTier,
    WaterfallConfig,
    standard_waterfall,
    american_waterfall,
)

# Capital accounts
from .capital_accounts import InvestorCapitalAccount

# Distributions
from .distributions import (
    DistributionRequest,
    TierDistributionResult,
    TierAllocation,
    InvestorAllocation,
    GPAllocation,
    WaterfallDistribution,
)

# Hierarchy
from .hierarchy import (
    FundNode,
    FundRecord,
    CascadeRequest,
    CascadeNodeResult,
    CascadeResult,
)

# Settings
from .settings import CalculationCFG

__all__ = [
    # Base types
    "DomainModel",
    "MoneyAmount",
    "SignedAmount",
    "PercentPoints",
    "Rate",
    "FundId",
    "InvestorId",
    "TierId",
    # Tiers
    "TierType",
    "ABSORBING_TIER_TYPES",
    "WaterfallTier",
    "WaterfallConfig",
    "standard_waterfall",
    "american_waterfall",
    # Capital accounts
    "InvestorCapitalAccount",
    # Distributions
    "DistributionRequest",
    "TierDistributionResult",
    "TierAllocation",
    "InvestorAllocation",
    "GPAllocation",
    "WaterfallDistribution",
    # Hierarchy
    "FundNode",
    "FundRecord",
    "CascadeRequest",
    "CascadeNodeResult",
    "CascadeResult",
    # Settings
    "CalculationCFG",
]

"""Base classes and type system for fund waterfall models.

This module provides the foundational types and base class used throughout
the waterfall schema system.
"""

from decimal import Decimal
from typing import Annotated
from pydantic import BaseModel, Field, ConfigDict

# =============================================================================
# Base Model
# =============================================================================

class DomainModel(BaseModel):
    """Base class for all domain models.

    Provides common configuration for all Pydantic models in the domain layer:
    - Validation on assignment for runtime safety
    - Support for Decimal and date types
    - Enum value serialization
    """

    model_config = ConfigDict(
        frozen=False,
        validate_assignment=True,
        use_enum_values=True,
        arbitrary_types_allowed=True,
    )


# =============================================================================
# Type Aliases - Numeric
# =============================================================================

MoneyAmount = Annotated[
    Decimal,
    Field(ge=0, description="Currency amount (non-negative)")
]

SignedAmount = Annotated[
    Decimal,
    Field(description="Currency amount that may be negative (e.g. a requested distribution before validation)")
]

PercentPoints = Annotated[
    Decimal,
    Field(ge=0, le=100, description="Percentage in points (0 to 100, e.g. 20 = 20%)")
]

Rate = Annotated[
    Decimal,
    Field(ge=0, le=1, description="Rate as decimal (0.0 to 1.0)")
]


# =============================================================================
# ID Conventions
# =============================================================================

FundId = Annotated[
    str,
    Field(min_length=1, description="Fund identifier (e.g., 'sub-fund-a-001')")
]

InvestorId = Annotated[
    str,
    Field(min_length=1, description="Investor identifier (e.g., 'inv-001')")
]

TierId = Annotated[
    str,
    Field(min_length=1, description="Stable tier identifier, also used for UI ordering (e.g., 'tier-1')")
]

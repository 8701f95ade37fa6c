"""Calculation settings.

CalculationCFG is optional everywhere; the defaults match what fund
administrators expect from the calculator.
"""

from decimal import Decimal
from pydantic import Field

from .base import DomainModel


class CalculationCFG(DomainModel):
    """Numeric settings shared by the waterfall and cascade calculations.

    working_decimal_places:
        Scale at which non-terminating intermediate values (compounded
        preferred return, pro-rata shares, catch-up ratio) are held. Money is
        never rounded to cents inside the calculation; only the formatting
        helpers round for display.

    days_per_year:
        Day count basis for preferred return accrual (Actual/365.25).
    """

    working_decimal_places: int = Field(
        default=12,
        ge=2,
        le=18,
        description="Decimal places held for non-terminating intermediate values"
    )

    days_per_year: Decimal = Field(
        default=Decimal("365.25"),
        gt=0,
        description="Days per year for preferred return accrual"
    )

    @property
    def working_quantum(self) -> Decimal:
        """Smallest unit at working scale (e.g. Decimal('1E-12'))."""
        return Decimal(1).scaleb(-self.working_decimal_places)

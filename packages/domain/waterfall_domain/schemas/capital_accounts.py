"""Investor capital account snapshots.

A capital account is the running ledger for one (investor, fund) pair. The
waterfall reads a snapshot taken before the distribution; persisting updated
totals afterwards belongs to the caller.
"""

from typing import Optional
from decimal import Decimal
from datetime import date
from pydantic import Field

from .base import DomainModel, InvestorId, MoneyAmount


class InvestorCapitalAccount(DomainModel):
    """Capital account snapshot for one investor in one fund.

    Examples:
        New LP with nothing returned yet:
            capital_contributed=500_000, capital_returned=0

        LP already made whole on capital:
            capital_contributed=500_000, capital_returned=500_000
            (unreturned_capital == 0, so no return-of-capital entitlement)

    capital_returned above capital_contributed is accepted; unreturned capital
    is floored at zero rather than rejected.
    """

    investor_id: InvestorId = Field(
        description="Investor identifier"
    )

    investor_name: str = Field(
        default="",
        description="Display name"
    )

    capital_contributed: MoneyAmount = Field(
        default=Decimal("0"),
        description="Cumulative paid-in capital"
    )

    capital_returned: MoneyAmount = Field(
        default=Decimal("0"),
        description="Cumulative capital returned before this distribution"
    )

    preferred_return_accrued: MoneyAmount = Field(
        default=Decimal("0"),
        description="Recorded cumulative preferred return accrual. When positive it is used "
                    "instead of the hurdle computed from dates."
    )

    preferred_return_paid: MoneyAmount = Field(
        default=Decimal("0"),
        description="Cumulative preferred return paid before this distribution"
    )

    distributions_received: MoneyAmount = Field(
        default=Decimal("0"),
        description="Lifetime distributions received before this distribution"
    )

    contribution_date: Optional[date] = Field(
        default=None,
        description="Date capital was paid in; preferred return accrues from here"
    )

    @property
    def unreturned_capital(self) -> Decimal:
        """Capital still owed back to the investor (never negative)."""
        return max(Decimal("0"), self.capital_contributed - self.capital_returned)

"""Shared fixtures: the demo fund hierarchy and its investors.

Parent fund with three LPs (100M committed and paid in), two sub-funds that
it owns 55% / 45% of, each taxed at 21% on everything but return of capital.
Sub-fund capital accounts are the parent investors' contributions scaled to
the capital each sub-fund deployed.
"""

from decimal import Decimal
from datetime import date

import pytest

from waterfall_domain.schemas import (
    FundNode,
    InvestorCapitalAccount,
    WaterfallTier,
    WaterfallConfig,
    TierType,
    standard_waterfall,
)


PARENT_INVESTORS = [
    ("inv-001", "Pension Fund Alpha", Decimal("50000000")),
    ("inv-002", "Family Office Beta", Decimal("30000000")),
    ("inv-003", "Endowment Gamma", Decimal("20000000")),
]
PARENT_TOTAL_CONTRIBUTED = Decimal("100000000")

SUB_FUND_A_DEPLOYED = Decimal("30000000")
SUB_FUND_B_DEPLOYED = Decimal("25000000")

CONTRIBUTION_DATE = date(2023, 1, 1)
AS_OF = date(2024, 12, 31)


def _scaled_accounts(deployed: Decimal):
    return [
        InvestorCapitalAccount(
            investor_id=investor_id,
            investor_name=name,
            capital_contributed=contributed / PARENT_TOTAL_CONTRIBUTED * deployed,
            contribution_date=CONTRIBUTION_DATE,
        )
        for investor_id, name, contributed in PARENT_INVESTORS
    ]


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def parent_accounts():
    """Parent fund LPs with all committed capital paid in."""
    return [
        InvestorCapitalAccount(
            investor_id=investor_id,
            investor_name=name,
            capital_contributed=contributed,
            contribution_date=CONTRIBUTION_DATE,
        )
        for investor_id, name, contributed in PARENT_INVESTORS
    ]


@pytest.fixture
def sub_fund_a_accounts():
    """15M / 9M / 6M of Sub-Fund A's 30M deployed."""
    return _scaled_accounts(SUB_FUND_A_DEPLOYED)


@pytest.fixture
def sub_fund_b_accounts():
    """12.5M / 7.5M / 5M of Sub-Fund B's 25M deployed."""
    return _scaled_accounts(SUB_FUND_B_DEPLOYED)


@pytest.fixture
def accounts_by_fund(sub_fund_a_accounts, sub_fund_b_accounts):
    return {
        "sub-fund-a": sub_fund_a_accounts,
        "sub-fund-b": sub_fund_b_accounts,
    }


@pytest.fixture
def demo_hierarchy():
    """Parent fund (pass-through, untaxed) owning two taxed sub-funds."""
    return FundNode(
        fund_id="parent-fund",
        fund_name="Parent Fund",
        children=[
            FundNode(
                fund_id="sub-fund-a",
                fund_name="Sub-Fund A",
                ownership_percent_of_parent=Decimal("55"),
                waterfall_config=standard_waterfall(),
                tax_rate=Decimal("0.21"),
            ),
            FundNode(
                fund_id="sub-fund-b",
                fund_name="Sub-Fund B",
                ownership_percent_of_parent=Decimal("45"),
                waterfall_config=standard_waterfall(),
                tax_rate=Decimal("0.21"),
            ),
        ],
    )


@pytest.fixture
def capital_and_residual_config():
    """Return of capital, then everything else split 80/20."""
    return WaterfallConfig(
        id="roc-plus-residual",
        name="Return of Capital + Residual",
        tiers=[
            WaterfallTier(id="tier-1", name="Return of Capital",
                          tier_type=TierType.RETURN_OF_CAPITAL, order=1,
                          gp_share_percent=Decimal("0")),
            WaterfallTier(id="tier-2", name="Residual",
                          tier_type=TierType.RESIDUAL, order=2,
                          gp_share_percent=Decimal("20")),
        ],
    )


@pytest.fixture
def two_equal_investors():
    return [
        InvestorCapitalAccount(investor_id="lp-1", investor_name="LP One",
                               capital_contributed=Decimal("500000")),
        InvestorCapitalAccount(investor_id="lp-2", investor_name="LP Two",
                               capital_contributed=Decimal("500000")),
    ]

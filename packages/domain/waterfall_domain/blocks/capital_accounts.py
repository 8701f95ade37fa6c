"""Capital account computation blocks.

Summarizes investor capital accounts and rolls them forward after a
waterfall run.

Output DataFrames:
- capital_account_summary: Per-investor ledger with ownership and unreturned capital
- capital_account_rollforward: Opening balance, this distribution, closing balance
"""

from typing import Dict, List, Sequence
from decimal import Decimal
import pandas as pd

from .base import Block, BlockContext
from ..schemas import InvestorCapitalAccount, TierType, WaterfallDistribution

ZERO = Decimal("0")


def roll_forward_accounts(
    accounts: Sequence[InvestorCapitalAccount],
    result: WaterfallDistribution,
) -> List[InvestorCapitalAccount]:
    """Apply a waterfall result to capital account snapshots.

    Returns new snapshots; the inputs are not modified. Return-of-capital
    allocations advance capital_returned, preferred-return allocations
    advance preferred_return_paid, and everything an investor received
    advances distributions_received. Storing the new snapshots is up to the
    caller.

    Example:
        result = run_waterfall(config, amount, accounts, fund_id, as_of)
        next_accounts = roll_forward_accounts(accounts, result)
    """
    tier_types: Dict[str, str] = {t.tier_id: t.tier_type for t in result.tier_distributions}

    rolled = []
    for account in accounts:
        allocation = result.investor(account.investor_id)
        if allocation is None:
            rolled.append(account.model_copy())
            continue

        capital = ZERO
        preferred = ZERO
        for tier_allocation in allocation.tier_allocations:
            tier_type = tier_types.get(tier_allocation.tier_id)
            if tier_type == TierType.RETURN_OF_CAPITAL:
                capital += tier_allocation.amount
            elif tier_type == TierType.PREFERRED_RETURN:
                preferred += tier_allocation.amount

        rolled.append(account.model_copy(update={
            "capital_returned": account.capital_returned + capital,
            "preferred_return_paid": account.preferred_return_paid + preferred,
            "distributions_received": account.distributions_received + allocation.total_allocation,
        }))

    return rolled


class CapitalAccountBlock(Block):
    """Converts capital account snapshots to a summary DataFrame.

    Inputs (from context):
        - capital_accounts: list of InvestorCapitalAccount

    Outputs (to context):
        - capital_account_summary: DataFrame with columns:
            * investor_id, investor_name
            * capital_contributed, capital_returned, unreturned_capital
            * preferred_return_accrued, preferred_return_paid
            * distributions_received
            * ownership_pct: Share of total contributed capital
    """

    def __init__(self, accounts_key: str = "capital_accounts"):
        self.accounts_key = accounts_key

    def inputs(self) -> List[str]:
        return [self.accounts_key]

    def outputs(self) -> List[str]:
        return ["capital_account_summary"]

    def execute(self, context: BlockContext) -> None:
        accounts: List[InvestorCapitalAccount] = context.get(self.accounts_key)
        context.set("capital_account_summary", summarize_capital_accounts(accounts))


class CapitalAccountRollforwardBlock(Block):
    """Rolls capital accounts forward by a waterfall result.

    Inputs (from context):
        - capital_accounts: list of InvestorCapitalAccount (opening snapshots)
        - waterfall_result: WaterfallDistribution (from WaterfallBlock)

    Outputs (to context):
        - capital_accounts_after: list of InvestorCapitalAccount (closing snapshots)
        - capital_account_rollforward: DataFrame with columns:
            * investor_id
            * opening_capital_returned, capital_returned_this_period, closing_capital_returned
            * opening_preferred_paid, preferred_paid_this_period, closing_preferred_paid
            * closing_unreturned_capital
            * distributions_this_period
    """

    def __init__(
        self,
        accounts_key: str = "capital_accounts",
        result_key: str = "waterfall_result",
    ):
        self.accounts_key = accounts_key
        self.result_key = result_key

    def inputs(self) -> List[str]:
        return [self.accounts_key, self.result_key]

    def outputs(self) -> List[str]:
        return ["capital_accounts_after", "capital_account_rollforward"]

    def execute(self, context: BlockContext) -> None:
        opening: List[InvestorCapitalAccount] = context.get(self.accounts_key)
        result: WaterfallDistribution = context.get(self.result_key)

        closing = roll_forward_accounts(opening, result)

        rows = []
        for before, after in zip(opening, closing):
            rows.append({
                "investor_id": before.investor_id,
                "opening_capital_returned": float(before.capital_returned),
                "capital_returned_this_period": float(after.capital_returned - before.capital_returned),
                "closing_capital_returned": float(after.capital_returned),
                "opening_preferred_paid": float(before.preferred_return_paid),
                "preferred_paid_this_period": float(after.preferred_return_paid - before.preferred_return_paid),
                "closing_preferred_paid": float(after.preferred_return_paid),
                "closing_unreturned_capital": float(after.unreturned_capital),
                "distributions_this_period": float(after.distributions_received - before.distributions_received),
            })

        context.set("capital_accounts_after", closing)
        context.set("capital_account_rollforward", pd.DataFrame(rows))


def summarize_capital_accounts(accounts: Sequence[InvestorCapitalAccount]) -> pd.DataFrame:
    """Per-investor capital account summary.

    Returns:
        DataFrame with one row per account, in input order
    """
    columns = [
        "investor_id",
        "investor_name",
        "capital_contributed",
        "capital_returned",
        "unreturned_capital",
        "preferred_return_accrued",
        "preferred_return_paid",
        "distributions_received",
        "ownership_pct",
    ]

    total_contributed = sum((a.capital_contributed for a in accounts), ZERO)

    rows = []
    for account in accounts:
        ownership_pct = (
            float(account.capital_contributed / total_contributed * 100)
            if total_contributed > 0
            else 0.0
        )
        rows.append({
            "investor_id": account.investor_id,
            "investor_name": account.investor_name,
            "capital_contributed": float(account.capital_contributed),
            "capital_returned": float(account.capital_returned),
            "unreturned_capital": float(account.unreturned_capital),
            "preferred_return_accrued": float(account.preferred_return_accrued),
            "preferred_return_paid": float(account.preferred_return_paid),
            "distributions_received": float(account.distributions_received),
            "ownership_pct": ownership_pct,
        })

    return pd.DataFrame(rows, columns=columns)

"""Cascade computation block.

Runs a distribution through a tree of funds, parent before children:
1. Per fund: a fund with a waterfall runs it on its allocation using its
   own investors' capital accounts; a fund without one passes it through
2. Tax: every non-return-of-capital tier is taxed at the fund's rate
   (pass-through funds are taxed on the full allocation)
3. Push-down: the fund's after-tax amount is split among its children by
   ownership percentage; whatever the children do not take is retained
   (the root receives the full root allocation)
4. Fan-in: each fund reports the sum of its children's after-tax amounts

Every dollar entering the root is either taxed at some fund or retained at
some fund, so sum(retained_amount) == root_allocation - total tax. With
sibling percentages summing to 100 that is the leaves' after-tax total.

Funds are evaluated depth-first. Any InvalidInputError aborts the whole run.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence
from decimal import Decimal, ROUND_DOWN, localcontext
from datetime import date
import pandas as pd

from .base import Block, BlockContext
from .waterfall import _PRECISION, run_waterfall, tiers_frame, to_decimal, validate_waterfall_config
from ..errors import InvalidInputError
from ..schemas import (
    CalculationCFG,
    CascadeNodeResult,
    CascadeRequest,
    CascadeResult,
    FundNode,
    FundRecord,
    InvestorCapitalAccount,
    TierType,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

AccountsByFund = Mapping[str, Sequence[InvestorCapitalAccount]]


# =============================================================================
# Hierarchy Assembly and Validation
# =============================================================================

def build_fund_tree(records: Sequence[FundRecord]) -> FundNode:
    """Assemble flat fund rows into a FundNode tree.

    Children keep the order their rows were given in.

    Raises:
        InvalidInputError: duplicate fund ids, no root or several roots, a
            parent id that does not exist, or rows caught in a cycle
    """
    by_id: Dict[str, FundRecord] = {}
    for record in records:
        if record.fund_id in by_id:
            raise InvalidInputError(f"Duplicate fund id '{record.fund_id}' in hierarchy")
        by_id[record.fund_id] = record

    roots = [r for r in records if r.parent_id is None]
    if len(roots) != 1:
        raise InvalidInputError(
            f"Fund hierarchy must have exactly one root, found {len(roots)}: "
            f"{[r.fund_id for r in roots]}"
        )

    children_of: Dict[str, List[FundRecord]] = {fund_id: [] for fund_id in by_id}
    for record in records:
        if record.parent_id is None:
            continue
        if record.parent_id not in by_id:
            raise InvalidInputError(
                f"Fund '{record.fund_id}' names parent '{record.parent_id}' which is not in the hierarchy"
            )
        children_of[record.parent_id].append(record)

    reached = set()

    def build(record: FundRecord) -> FundNode:
        reached.add(record.fund_id)
        return FundNode(
            fund_id=record.fund_id,
            fund_name=record.fund_name,
            ownership_percent_of_parent=record.ownership_percent_of_parent,
            waterfall_config=record.waterfall_config,
            tax_rate=record.tax_rate,
            children=[build(child) for child in children_of[record.fund_id]],
        )

    root = build(roots[0])

    unreached = [fund_id for fund_id in by_id if fund_id not in reached]
    if unreached:
        raise InvalidInputError(f"Fund hierarchy contains a cycle through {unreached}")

    return root


def validate_hierarchy(root: FundNode) -> None:
    """Check the whole tree before any fund is calculated.

    Raises:
        InvalidInputError: duplicate fund ids, sibling ownership above 100%,
            or a malformed waterfall config anywhere in the tree
    """
    seen = set()
    for node in root.iter_nodes():
        if node.fund_id in seen:
            raise InvalidInputError(f"Fund '{node.fund_id}' appears more than once in the hierarchy")
        seen.add(node.fund_id)

        sibling_total = sum((c.ownership_percent_of_parent for c in node.children), ZERO)
        if sibling_total > HUNDRED:
            raise InvalidInputError(
                f"Children of fund '{node.fund_id}' claim {sibling_total}% ownership; "
                f"sibling percentages must not exceed 100%"
            )

        if node.waterfall_config is not None:
            validate_waterfall_config(node.waterfall_config)


# =============================================================================
# Cascade
# =============================================================================

def _evaluate(
    node: FundNode,
    allocation: Decimal,
    depth: int,
    accounts_by_fund: AccountsByFund,
    as_of_date: date,
    cfg: CalculationCFG,
) -> CascadeNodeResult:
    waterfall_result = None
    if node.waterfall_config is not None:
        waterfall_result = run_waterfall(
            node.waterfall_config,
            allocation,
            accounts_by_fund.get(node.fund_id, []),
            node.fund_id,
            as_of_date,
            cfg=cfg,
        )
        gross = sum((t.amount_distributed for t in waterfall_result.tier_distributions), ZERO)
        taxable = sum(
            (t.amount_distributed for t in waterfall_result.tier_distributions
             if t.tier_type != TierType.RETURN_OF_CAPITAL),
            ZERO,
        )
    else:
        gross = allocation
        taxable = allocation

    tax_amount = taxable * node.tax_rate
    after_tax = gross - tax_amount

    # Truncated to working scale: children never take more than after_tax
    child_allocations = [
        (child, (after_tax * child.ownership_percent_of_parent / HUNDRED).quantize(
            cfg.working_quantum, rounding=ROUND_DOWN))
        for child in node.children
    ]
    retained = after_tax - sum((amount for _, amount in child_allocations), ZERO)

    logger.debug(
        "Cascade fund %s (depth %d): allocated=%s waterfall=%s tax=%s after_tax=%s retained=%s",
        node.fund_id, depth, allocation, waterfall_result is not None, tax_amount, after_tax, retained,
    )

    children = [
        _evaluate(child, amount, depth + 1, accounts_by_fund, as_of_date, cfg)
        for child, amount in child_allocations
    ]

    return CascadeNodeResult(
        fund_id=node.fund_id,
        fund_name=node.fund_name,
        depth=depth,
        ownership_percent_of_parent=node.ownership_percent_of_parent,
        allocated_amount=allocation,
        retained_amount=retained,
        waterfall_result=waterfall_result,
        tax_rate=node.tax_rate,
        tax_amount=tax_amount,
        after_tax_amount=after_tax,
        children_after_tax_total=sum((c.after_tax_amount for c in children), ZERO),
        children=children,
    )


def run_cascade(
    root_allocation,
    hierarchy_root: FundNode,
    accounts_by_fund: Optional[AccountsByFund],
    as_of_date: date,
    cfg: Optional[CalculationCFG] = None,
) -> CascadeResult:
    """Push a distribution down a fund tree and fan after-tax amounts back up.

    Args:
        root_allocation: Amount entering at the root fund
        hierarchy_root: Root of the fund tree
        accounts_by_fund: Capital accounts per fund id; funds with a
            waterfall and no entry are treated as having no investors
        as_of_date: Distribution date for every waterfall in the tree
        cfg: Optional calculation settings

    Returns:
        CascadeResult mirroring the hierarchy

    Raises:
        InvalidInputError: Negative root allocation, a malformed hierarchy,
            or any error from a fund's waterfall. Nothing partial is returned.

    Example:
        result = run_cascade(Decimal("1000000"), root, {"sub-fund-a": accounts_a},
                             date(2024, 12, 31))
        result.node("sub-fund-a").after_tax_amount
    """
    cfg = cfg or CalculationCFG()
    accounts_by_fund = accounts_by_fund or {}

    with localcontext() as ctx:
        ctx.prec = _PRECISION

        amount = to_decimal(root_allocation, "root_allocation")
        if amount < 0:
            raise InvalidInputError(f"Root allocation must not be negative, got {amount}")
        validate_hierarchy(hierarchy_root)

        root_result = _evaluate(hierarchy_root, amount, 0, accounts_by_fund, as_of_date, cfg)

    result = CascadeResult(as_of_date=as_of_date, root_allocation=amount, root=root_result)
    logger.debug(
        "Cascade from %s on %s: %s allocated, %s tax collected",
        hierarchy_root.fund_id, as_of_date, amount, result.total_tax,
    )
    return result


# =============================================================================
# Block
# =============================================================================

class CascadeBlock(Block):
    """Runs a multi-level cascade from context inputs.

    Inputs (from context):
        - fund_hierarchy: FundNode (root of the tree)
        - accounts_by_fund: dict of fund_id -> list of InvestorCapitalAccount
        - cascade_request: CascadeRequest

    Outputs (to context):
        - cascade_result: CascadeResult
        - cascade_nodes: DataFrame, one row per fund (depth-first):
            * fund_id, fund_name, parent_id, depth, ownership_pct
            * allocated_amount, retained_amount, has_waterfall
            * tax_rate, tax_amount, after_tax_amount, children_after_tax_total
        - cascade_tiers: DataFrame, one row per tier of every fund that ran a waterfall:
            * fund_id plus the waterfall_tiers columns
            * tax_amount, after_tax_amount (per tier; return of capital is untaxed)
    """

    def __init__(
        self,
        hierarchy_key: str = "fund_hierarchy",
        accounts_key: str = "accounts_by_fund",
        request_key: str = "cascade_request",
        cfg: Optional[CalculationCFG] = None,
    ):
        self.hierarchy_key = hierarchy_key
        self.accounts_key = accounts_key
        self.request_key = request_key
        self.cfg = cfg

    def inputs(self) -> List[str]:
        return [self.hierarchy_key, self.accounts_key, self.request_key]

    def outputs(self) -> List[str]:
        return ["cascade_result", "cascade_nodes", "cascade_tiers"]

    def execute(self, context: BlockContext) -> None:
        root: FundNode = context.get(self.hierarchy_key)
        accounts_by_fund: AccountsByFund = context.get(self.accounts_key)
        request: CascadeRequest = context.get(self.request_key)

        result = run_cascade(
            request.root_allocation,
            root,
            accounts_by_fund,
            request.as_of_date,
            cfg=self.cfg,
        )

        context.set("cascade_result", result)
        context.set("cascade_nodes", self._nodes_frame(result))
        context.set("cascade_tiers", self._tiers_frame(result))

    def _nodes_frame(self, result: CascadeResult) -> pd.DataFrame:
        rows = []

        def visit(node: CascadeNodeResult, parent_id: Optional[str]) -> None:
            rows.append({
                "fund_id": node.fund_id,
                "fund_name": node.fund_name,
                "parent_id": parent_id,
                "depth": node.depth,
                "ownership_pct": float(node.ownership_percent_of_parent),
                "allocated_amount": float(node.allocated_amount),
                "retained_amount": float(node.retained_amount),
                "has_waterfall": node.has_waterfall,
                "tax_rate": float(node.tax_rate),
                "tax_amount": float(node.tax_amount),
                "after_tax_amount": float(node.after_tax_amount),
                "children_after_tax_total": float(node.children_after_tax_total),
            })
            for child in node.children:
                visit(child, node.fund_id)

        visit(result.root, None)
        return pd.DataFrame(rows)

    def _tiers_frame(self, result: CascadeResult) -> pd.DataFrame:
        frames = []
        for node in result.iter_nodes():
            if node.waterfall_result is None:
                continue
            df = tiers_frame(node.waterfall_result)
            taxable = df["tier_type"] != TierType.RETURN_OF_CAPITAL.value
            df["tax_amount"] = df["amount_distributed"].where(taxable, 0.0) * float(node.tax_rate)
            df["after_tax_amount"] = df["amount_distributed"] - df["tax_amount"]
            df.insert(0, "fund_id", node.fund_id)
            frames.append(df)

        if not frames:
            return pd.DataFrame(columns=["fund_id", "order", "tier_id", "tier_name", "tier_type",
                                         "amount_available", "amount_distributed", "lp_amount",
                                         "gp_amount", "amount_remaining", "tax_amount",
                                         "after_tax_amount"])
        return pd.concat(frames, ignore_index=True)

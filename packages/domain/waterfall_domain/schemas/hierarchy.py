"""Fund hierarchy and cascade result models.

A cascade runs over a tree of funds. Each fund runs its waterfall (or passes
its allocation through) and pays tax; its after-tax amount is then pushed
down to its children by ownership percentage, and the children's after-tax
amounts fan back in to the parent.

Example hierarchy:
    Portfolio projects (root, no waterfall)
        ├── Sub-Fund A (55%, standard waterfall, 21% tax)
        └── Sub-Fund B (45%, standard waterfall, 21% tax)
"""

from typing import Iterator, List, Optional
from decimal import Decimal
from datetime import date
from pydantic import Field

from .base import DomainModel, FundId, MoneyAmount, PercentPoints, Rate, SignedAmount
from .tiers import WaterfallConfig
from .distributions import WaterfallDistribution


# =============================================================================
# Hierarchy Inputs
# =============================================================================

class FundNode(DomainModel):
    """One fund in the hierarchy, with its children.

    Siblings' ownership percentages need not sum to 100; whatever part of the
    parent's after-tax amount they leave unallocated stays with the parent.
    Above 100 is rejected when the cascade runs.
    """

    fund_id: FundId = Field(
        description="Fund identifier (unique within the tree)"
    )

    fund_name: str = Field(
        default="",
        description="Display name"
    )

    ownership_percent_of_parent: PercentPoints = Field(
        default=Decimal("100"),
        description="Share of the parent's after-tax amount this fund receives (ignored at the root)"
    )

    waterfall_config: Optional[WaterfallConfig] = Field(
        default=None,
        description="Waterfall run on this fund's allocation; None passes the allocation through"
    )

    tax_rate: Rate = Field(
        default=Decimal("0"),
        description="Flat tax applied at this fund before its amount flows upward"
    )

    children: List["FundNode"] = Field(
        default_factory=list,
        description="Sub-funds / projects owned by this fund"
    )

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_nodes(self) -> Iterator["FundNode"]:
        """Depth-first, parent before children."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()


class FundRecord(DomainModel):
    """Flat hierarchy row as supplied by the structure/investor store.

    Rows are assembled into a FundNode tree with build_fund_tree().
    """

    fund_id: FundId
    fund_name: str = ""
    parent_id: Optional[str] = None
    ownership_percent_of_parent: PercentPoints = Decimal("100")
    waterfall_config: Optional[WaterfallConfig] = None
    tax_rate: Rate = Decimal("0")


class CascadeRequest(DomainModel):
    """Scalar inputs for one cascade run."""

    root_allocation: SignedAmount = Field(
        description="Amount entering the hierarchy at the root"
    )

    as_of_date: date = Field(
        description="Distribution date used for every waterfall in the tree"
    )


# =============================================================================
# Cascade Results
# =============================================================================

class CascadeNodeResult(DomainModel):
    """Cascade outcome at one fund.

    allocated_amount / tax_amount / after_tax_amount describe the fund's own
    allocation. children_after_tax_total is what flowed up from its children;
    the two are reported separately and never netted against each other.
    """

    fund_id: FundId
    fund_name: str = ""
    depth: int = 0
    ownership_percent_of_parent: Decimal = Decimal("100")

    allocated_amount: MoneyAmount = Field(
        description="Amount pushed down to this fund"
    )

    retained_amount: MoneyAmount = Field(
        default=Decimal("0"),
        description="Part of after_tax_amount not passed to children (all of it at a leaf)"
    )

    waterfall_result: Optional[WaterfallDistribution] = Field(
        default=None,
        description="Full waterfall breakdown when the fund has a waterfall"
    )

    tax_rate: Decimal = Decimal("0")
    tax_amount: MoneyAmount = Decimal("0")
    after_tax_amount: MoneyAmount = Decimal("0")

    children_after_tax_total: MoneyAmount = Field(
        default=Decimal("0"),
        description="Sum of children's after_tax_amount (fan-in)"
    )

    children: List["CascadeNodeResult"] = Field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def has_waterfall(self) -> bool:
        return self.waterfall_result is not None

    def iter_nodes(self) -> Iterator["CascadeNodeResult"]:
        """Depth-first, parent before children."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()


class CascadeResult(DomainModel):
    """Tree of CascadeNodeResult mirroring the fund hierarchy."""

    as_of_date: date
    root_allocation: MoneyAmount
    root: CascadeNodeResult

    @property
    def total_tax(self) -> Decimal:
        """Tax collected at every node in the tree."""
        return sum((n.tax_amount for n in self.iter_nodes()), Decimal("0"))

    def iter_nodes(self) -> Iterator[CascadeNodeResult]:
        return self.root.iter_nodes()

    def leaves(self) -> List[CascadeNodeResult]:
        return [n for n in self.iter_nodes() if n.is_leaf]

    def node(self, fund_id: str) -> Optional[CascadeNodeResult]:
        """Look up a node result by fund id."""
        return next((n for n in self.iter_nodes() if n.fund_id == fund_id), None)


FundNode.model_rebuild()
CascadeNodeResult.model_rebuild()

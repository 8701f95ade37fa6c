"""Computation blocks for fund waterfall analysis.

This package contains the calculation layer: the pure waterfall and cascade
functions, and Block wrappers that turn their results into DataFrames for
reports or other consumers.

Architecture:
    Schemas (data models) → Blocks (computation) → DataFrames (output)

Key concepts:
- run_waterfall / run_cascade are pure functions; call them again whenever
  inputs change
- Each block declares its inputs and outputs by context key
- Dependency graph enables topological execution

Available blocks:
- WaterfallBlock: Allocates one fund's distribution across tiers and investors
- CapitalAccountBlock: Summarizes investor capital accounts
- CapitalAccountRollforwardBlock: Applies a waterfall result to capital accounts
- CascadeBlock: Pushes a distribution down a fund hierarchy and fans after-tax amounts up

Usage:
    from waterfall_domain.blocks import BlockContext, BlockExecutor, WaterfallBlock

    context = BlockContext()
    context.set("waterfall_config", standard_waterfall())
    context.set("capital_accounts", accounts)
    context.set("distribution_request", request)

    BlockExecutor([WaterfallBlock()]).execute(context)
    tiers_df = context.get("waterfall_tiers")
"""

from .base import Block, BlockExecutor, BlockContext, CircularDependencyError, topological_sort
from .waterfall import (
    WaterfallBlock,
    run_waterfall,
    tiers_frame,
    validate_waterfall_config,
    SYNTHETIC_RESIDUAL_TIER_ID,
)
from .capital_accounts import (
    CapitalAccountBlock,
    CapitalAccountRollforwardBlock,
    roll_forward_accounts,
    summarize_capital_accounts,
)
from .cascade import CascadeBlock, run_cascade, build_fund_tree, validate_hierarchy

__all__ = [
    "Block",
    "BlockExecutor",
    "BlockContext",
    "CircularDependencyError",
    "topological_sort",
    "WaterfallBlock",
    "run_waterfall",
    "tiers_frame",
    "validate_waterfall_config",
    "SYNTHETIC_RESIDUAL_TIER_ID",
    "CapitalAccountBlock",
    "CapitalAccountRollforwardBlock",
    "roll_forward_accounts",
    "summarize_capital_accounts",
    "CascadeBlock",
    "run_cascade",
    "build_fund_tree",
    "validate_hierarchy",
]

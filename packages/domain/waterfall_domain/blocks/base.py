"""Base classes for computation blocks.

Blocks wrap the pure waterfall and cascade calculations so page and report
code can wire them together by name:
- BlockContext holds named inputs and outputs
- Block declares what it reads and writes
- topological_sort orders blocks so producers run before consumers
- BlockExecutor runs the ordered blocks and checks their wiring
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, List, Optional
from dataclasses import dataclass, field


# =============================================================================
# Block Context
# =============================================================================

@dataclass
class BlockContext:
    """Named values shared between blocks.

    Example:
        context = BlockContext()
        context.set("waterfall_config", standard_waterfall())
        context.set("capital_accounts", accounts)
        context.set("distribution_request", request)

        WaterfallBlock().execute(context)
        tiers_df = context.get("waterfall_tiers")
    """

    _data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str) -> Any:
        """Get value from context.

        Raises:
            KeyError: If key not found in context
        """
        try:
            return self._data[key]
        except KeyError:
            raise KeyError(
                f"Key '{key}' not found in context. Available keys: {sorted(self._data)}"
            ) from None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return list(self._data)


# =============================================================================
# Block Base Class
# =============================================================================

class Block(ABC):
    """A named computation step.

    Subclasses declare the context keys they read (inputs) and write
    (outputs), and implement execute(). Key names are constructor arguments
    so the same block can run against several funds in one context.

    Subclass example:
        class GpTotalBlock(Block):
            def inputs(self) -> List[str]:
                return ["waterfall_result"]

            def outputs(self) -> List[str]:
                return ["gp_total"]

            def execute(self, context: BlockContext) -> None:
                result = context.get("waterfall_result")
                context.set("gp_total", result.gp_allocation.total_amount)
    """

    @abstractmethod
    def inputs(self) -> List[str]:
        """Context keys this block reads."""

    @abstractmethod
    def outputs(self) -> List[str]:
        """Context keys this block writes."""

    @abstractmethod
    def execute(self, context: BlockContext) -> None:
        """Read inputs from context, compute, write outputs to context."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(inputs={self.inputs()}, outputs={self.outputs()})"


# =============================================================================
# Dependency Resolution
# =============================================================================

class CircularDependencyError(Exception):
    """Raised when blocks feed each other in a loop."""
    pass


def topological_sort(blocks: List[Block]) -> List[Block]:
    """Order blocks so every block runs after the blocks producing its inputs.

    Kahn's algorithm. Inputs no block produces are expected in the initial
    context. Ties keep the caller's list order.

    Raises:
        ValueError: If two blocks write the same key
        CircularDependencyError: If the blocks form a cycle
    """
    producers: Dict[str, Block] = {}
    for block in blocks:
        for key in block.outputs():
            if key in producers:
                raise ValueError(
                    f"Multiple blocks produce '{key}': {producers[key]} and {block}"
                )
            producers[key] = block

    pending: Dict[int, int] = {id(block): 0 for block in blocks}
    consumers: Dict[int, List[Block]] = {id(block): [] for block in blocks}

    for block in blocks:
        for key in block.inputs():
            producer = producers.get(key)
            if producer is not None:
                consumers[id(producer)].append(block)
                pending[id(block)] += 1

    ready: Deque[Block] = deque(b for b in blocks if pending[id(b)] == 0)
    ordered: List[Block] = []

    while ready:
        block = ready.popleft()
        ordered.append(block)
        for consumer in consumers[id(block)]:
            pending[id(consumer)] -= 1
            if pending[id(consumer)] == 0:
                ready.append(consumer)

    if len(ordered) != len(blocks):
        stuck = [b for b in blocks if pending[id(b)] > 0]
        raise CircularDependencyError(f"Circular dependency detected among blocks: {stuck}")

    return ordered


# =============================================================================
# Block Executor
# =============================================================================

class BlockExecutor:
    """Runs blocks in dependency order against one context.

    Example:
        executor = BlockExecutor([WaterfallBlock(), CapitalAccountBlock()])
        context = BlockContext()
        context.set("waterfall_config", config)
        context.set("capital_accounts", accounts)
        context.set("distribution_request", request)
        executor.execute(context)

        by_investor = context.get("waterfall_by_investor")
    """

    def __init__(self, blocks: List[Block]):
        self.blocks = blocks
        self._ordered: Optional[List[Block]] = None

    def execute(self, context: BlockContext) -> BlockContext:
        """Execute all blocks and return the same context.

        Raises:
            CircularDependencyError: If blocks have circular dependencies
            KeyError: If a block's input is missing when it is reached
            ValueError: If a block does not write a declared output
        """
        if self._ordered is None:
            self._ordered = topological_sort(self.blocks)

        for block in self._ordered:
            missing = [key for key in block.inputs() if not context.has(key)]
            if missing:
                raise KeyError(
                    f"Block {block} requires input '{missing[0]}' but it's not in context. "
                    f"Available keys: {context.keys()}"
                )

            block.execute(context)

            unwritten = [key for key in block.outputs() if not context.has(key)]
            if unwritten:
                raise ValueError(
                    f"Block {block} declared output '{unwritten[0]}' but didn't write it to context"
                )

        return context

"""Fund Waterfall Domain Engine - distribution waterfall and cascade calculations.

This package provides the calculation core for fund distributions:
- Tiered waterfalls (return of capital, preferred return, GP catch-up, carry)
- Per-investor allocation from capital account snapshots
- Multi-level cascades through a hierarchy of funds with flat pass-through tax

The domain layer is designed to be:
- Framework-agnostic (no web or persistence dependencies)
- Deterministic (pure functions over Decimal amounts)
- Testable (pure Python with Pydantic validation)
"""

from .schemas import *  # noqa: F403, F401
from .errors import InvalidInputError  # noqa: F401
from .formatting import format_waterfall_currency, format_waterfall_percent  # noqa: F401

__version__ = "0.1.0"

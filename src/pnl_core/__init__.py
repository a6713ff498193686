"""
pnl-core: pure option position PNL engine.

No I/O, no network, no side effects. Consumes positions, trades and quotes,
produces summaries. Fully deterministic and unit-testable.
"""

from pnl_core.contracts import (
    Direction,
    LiveQuote,
    OptionPosition,
    OptionType,
    PositionStatus,
    PositionSummary,
    TradeEvent,
)
from pnl_core.ledger import LedgerError, aggregate
from pnl_core.pnl import compute_summary
from pnl_core.refresh import PositionLedger, QuoteProvider, refresh_positions
from pnl_core.status import resolve_status
from pnl_core.symbols import SymbolError, normalize_symbol

__all__ = [
    "aggregate",
    "compute_summary",
    "Direction",
    "LedgerError",
    "LiveQuote",
    "normalize_symbol",
    "OptionPosition",
    "OptionType",
    "PositionLedger",
    "PositionStatus",
    "PositionSummary",
    "QuoteProvider",
    "refresh_positions",
    "resolve_status",
    "SymbolError",
    "TradeEvent",
]

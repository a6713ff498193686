"""
Persistence and market data: SQLite position/trade store and quote providers.

Depends on pnl_core for the data contracts and ledger validation; no
dependency from pnl_core back to data.
"""

from data.quotes import (
    FileQuoteProvider,
    MockQuoteProvider,
    StaticQuoteProvider,
    get_quote_provider,
)
from data.store import DuplicatePositionError, PositionNotFoundError, TradeStore

__all__ = [
    "DuplicatePositionError",
    "FileQuoteProvider",
    "get_quote_provider",
    "MockQuoteProvider",
    "PositionNotFoundError",
    "StaticQuoteProvider",
    "TradeStore",
]

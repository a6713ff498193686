"""
Quote providers for the refresh loop. All implement pnl_core.refresh.QuoteProvider.

FileQuoteProvider reads a JSON snapshot dump in the quote provider's own
shape and re-keys every entry to the canonical symbol:

    [{"basic": {"security": {"market": 1, "code": "09988"},
                "curPrice": 2.1, "lastPrice": 2.05},
      "optionExData": {"delta": -0.31, "impliedVolatility": 28.4, "openInterest": 1200}}]
"""

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from pnl_core.contracts import Greeks, LiveQuote
from pnl_core.symbols import SymbolError, normalize_symbol, symbol_from_provider

logger = logging.getLogger("optitrack.quotes")


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def snapshot_to_quote(snapshot: Mapping[str, Any]) -> LiveQuote:
    """Convert one provider snapshot dict to a LiveQuote keyed by canonical symbol."""
    basic = snapshot.get("basic") or {}
    security = basic.get("security") or {}
    symbol = symbol_from_provider(str(security.get("code", "")), int(security.get("market", 0)))

    greeks = None
    open_interest = None
    ex = snapshot.get("optionExData")
    if ex:
        greeks = Greeks(
            delta=_to_float(ex.get("delta")),
            gamma=_to_float(ex.get("gamma")),
            theta=_to_float(ex.get("theta")),
            vega=_to_float(ex.get("vega")),
            implied_volatility=_to_float(ex.get("impliedVolatility")),
        )
        oi = ex.get("openInterest")
        open_interest = int(oi) if oi is not None else None

    return LiveQuote(
        symbol=symbol,
        current_price=_to_float(basic.get("curPrice")),
        last_price=_to_float(basic.get("lastPrice")),
        greeks=greeks,
        open_interest=open_interest,
    )


class StaticQuoteProvider:
    """In-memory quotes: canonical (or normalizable) symbol -> LiveQuote or bare price."""

    def __init__(self, quotes: Mapping[str, LiveQuote | float] | None = None) -> None:
        self._quotes: dict[str, LiveQuote] = {}
        for symbol, value in (quotes or {}).items():
            self.set_quote(symbol, value)

    def set_quote(self, symbol: str, value: LiveQuote | float) -> None:
        key = normalize_symbol(symbol)
        if not isinstance(value, LiveQuote):
            value = LiveQuote(symbol=key, current_price=float(value))
        self._quotes[key] = value

    def get_quote(self, symbol: str) -> LiveQuote | None:
        return self._quotes.get(normalize_symbol(symbol))


class FileQuoteProvider:
    """Quotes from a JSON snapshot file; re-read whenever the file changes."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._mtime: float | None = None
        self._quotes: dict[str, LiveQuote] = {}

    def _load(self) -> None:
        if not self._path.exists():
            raise FileNotFoundError(f"Quote file not found: {self._path}")
        mtime = self._path.stat().st_mtime
        if mtime == self._mtime:
            return
        with open(self._path) as f:
            raw = json.load(f)
        if not isinstance(raw, list):
            raise ValueError(f"Quote file must hold a JSON list, got {type(raw).__name__}")
        quotes: dict[str, LiveQuote] = {}
        for item in raw:
            try:
                quote = snapshot_to_quote(item)
            except (SymbolError, TypeError, ValueError) as exc:
                logger.warning("Ignoring malformed snapshot in %s: %s", self._path.name, exc)
                continue
            quotes[quote.symbol] = quote
        self._quotes = quotes
        self._mtime = mtime
        logger.debug("Loaded %d quotes from %s", len(quotes), self._path)

    def get_quote(self, symbol: str) -> LiveQuote | None:
        self._load()
        return self._quotes.get(normalize_symbol(symbol))


class MockQuoteProvider:
    """Returns no quotes; for tests and when no quote source is configured."""

    def get_quote(self, symbol: str) -> LiveQuote | None:
        return None


def get_quote_provider(source: str, path: str | Path | None = None):
    """Build the provider named in config (quotes.source)."""
    if source == "file":
        if not path:
            raise ValueError("quotes.path is required for the file quote source")
        return FileQuoteProvider(path)
    if source == "mock":
        return MockQuoteProvider()
    raise ValueError(f"Unknown quote source: {source!r}")

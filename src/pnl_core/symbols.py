"""
Market Symbol Normalizer: free-form security identifiers -> "MARKET.CODE".

Accepted forms (case-insensitive, surrounding whitespace ignored):
    HK.09988, 09988.HK      qualified, either order
    9988                    bare numeric, default market, zero-padded
    HK09988, 09988HK        market glued to a numeric code
    AAPL, TCH250328P80000   bare alphanumeric; market from the hint, else US

Normalization is idempotent: normalize_symbol(normalize_symbol(x)) == normalize_symbol(x).
"""

from __future__ import annotations

import re
from enum import Enum

from config.pnl_config import PnlConfig


class SymbolError(ValueError):
    """Input cannot be resolved to a canonical symbol."""


class Market(str, Enum):
    HK = "HK"
    US = "US"
    SH = "SH"
    SZ = "SZ"


# Quote provider's numeric market ids
MARKET_IDS: dict[Market, int] = {
    Market.HK: 1,
    Market.US: 11,
    Market.SH: 21,
    Market.SZ: 22,
}
_MARKETS_BY_ID = {v: k for k, v in MARKET_IDS.items()}

_CODE_RE = re.compile(r"^[0-9A-Z]+$")
_PREFIXED_RE = re.compile(r"^(HK|US|SH|SZ)(\d+)$")
_SUFFIXED_RE = re.compile(r"^(\d+)(HK|US|SH|SZ)$")


def _parse_market(value: str | Market | None) -> Market | None:
    if value is None or isinstance(value, Market):
        return value
    try:
        return Market(value.strip().upper())
    except ValueError:
        raise SymbolError(f"Unknown market: {value!r}") from None


def _format(market: Market, code: str, width: int) -> str:
    if not _CODE_RE.match(code):
        raise SymbolError(f"Invalid security code: {code!r}")
    if market is Market.HK and code.isdigit():
        code = code.zfill(width)
    return f"{market.value}.{code}"


def _split_qualified(text: str) -> tuple[Market, str]:
    parts = text.split(".")
    if len(parts) != 2 or not all(parts):
        raise SymbolError(f"Cannot parse symbol: {text!r}")
    first, second = parts
    if first in Market.__members__:
        return Market(first), second
    if second in Market.__members__:
        return Market(second), first
    raise SymbolError(f"No known market in symbol: {text!r}")


def normalize_symbol(
    raw: str,
    market_hint: str | Market | None = None,
    config: PnlConfig | None = None,
) -> str:
    """Return the canonical "MARKET.CODE" form of *raw*.

    Raises SymbolError for empty or unparseable input.
    """
    cfg = config or PnlConfig()
    width = cfg.symbols.code_width
    text = (raw or "").strip().upper()
    if not text:
        raise SymbolError("Symbol is empty")

    if "." in text:
        market, code = _split_qualified(text)
        return _format(market, code, width)

    m = _PREFIXED_RE.match(text)
    if m:
        return _format(Market(m.group(1)), m.group(2), width)
    m = _SUFFIXED_RE.match(text)
    if m:
        return _format(Market(m.group(2)), m.group(1), width)

    hint = _parse_market(market_hint)
    if hint is not None:
        return _format(hint, text, width)
    if text.isdigit():
        return _format(Market(cfg.symbols.default_market), text, width)
    return _format(Market.US, text, width)


def try_normalize(raw: str, market_hint: str | Market | None = None) -> str | None:
    """normalize_symbol, but None instead of SymbolError."""
    try:
        return normalize_symbol(raw, market_hint)
    except SymbolError:
        return None


def split_symbol(symbol: str) -> tuple[Market, str]:
    """Canonical symbol -> (Market, code)."""
    market, _, code = normalize_symbol(symbol).partition(".")
    return Market(market), code


def to_provider_security(symbol: str) -> dict[str, int | str]:
    """Canonical symbol -> {"market": <provider id>, "code": <code>}."""
    market, code = split_symbol(symbol)
    return {"market": MARKET_IDS[market], "code": code}


def symbol_from_provider(code: str, market_id: int) -> str:
    """Re-key a provider (code, numeric market id) pair to the canonical symbol."""
    try:
        market = _MARKETS_BY_ID[market_id]
    except KeyError:
        raise SymbolError(f"Unknown provider market id: {market_id}") from None
    return normalize_symbol(code, market_hint=market)

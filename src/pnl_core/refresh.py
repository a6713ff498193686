"""
Bulk refresh: recompute PNL for every open position from fresh quotes.

The quote client is injected as a QuoteProvider so the engine never talks to
a market-data service directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from config.pnl_config import PnlConfig
from pnl_core.cache import SummaryCache
from pnl_core.contracts import (
    LiveQuote,
    OptionPosition,
    PositionStatus,
    RefreshRecord,
    TradeEvent,
)
from pnl_core.ledger import LedgerError
from pnl_core.pnl import compute_summary
from pnl_core.symbols import try_normalize

logger = logging.getLogger("optitrack.refresh")


class QuoteProvider(Protocol):
    """Anything that can return a LiveQuote for a canonical symbol."""

    def get_quote(self, symbol: str) -> LiveQuote | None:
        ...


@dataclass(frozen=True)
class PositionLedger:
    """A position together with its full trade list."""

    position: OptionPosition
    trades: tuple[TradeEvent, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "trades", tuple(self.trades))


def quote_symbol(position: OptionPosition) -> str | None:
    """Canonical symbol to request a quote for.

    A bare provider option code (e.g. "TCH250328P80000") inherits the market of
    the position's underlying, so it matches the provider's re-keyed snapshot.
    """
    underlying = try_normalize(position.symbol)
    market = underlying.partition(".")[0] if underlying else None
    if position.quote_code:
        return try_normalize(position.quote_code, market)
    return underlying


def refresh_positions(
    ledgers: Iterable[PositionLedger],
    provider: QuoteProvider,
    *,
    config: PnlConfig | None = None,
    cache: SummaryCache | None = None,
) -> list[RefreshRecord]:
    """One RefreshRecord per Open position with a usable quote.

    Positions are skipped (and logged) when the symbol does not resolve, the
    provider fails or has no price, or the stored ledger is invalid. A
    failure on one position never affects the others. With a *cache*, unchanged
    ledgers and prices reuse the previous summary (computed with the cache's config).
    """
    records: list[RefreshRecord] = []
    for ledger in ledgers:
        position = ledger.position
        if position.status is not PositionStatus.OPEN:
            continue

        symbol = quote_symbol(position)
        if symbol is None:
            logger.warning("Skipping position %s: unresolvable symbol %r", position.id, position.symbol)
            continue

        try:
            quote = provider.get_quote(symbol)
        except Exception:
            logger.warning("Quote lookup failed for %s", symbol, exc_info=True)
            continue
        price = quote.price if quote is not None else None
        if price is None:
            logger.debug("No quote for %s; keeping previous values", symbol)
            continue

        try:
            if cache is not None:
                summary = cache.get_summary(position, ledger.trades, price)
            else:
                summary = compute_summary(position, ledger.trades, price, config=config)
        except LedgerError as exc:
            logger.warning("Skipping position %s: %s", position.id, exc)
            continue

        records.append(
            RefreshRecord(
                position_id=position.id,
                symbol=symbol,
                current_price=price,
                unrealized_pnl=summary.unrealized_pnl,
                net_pnl=summary.net_pnl,
                return_percentage=summary.return_percentage,
            )
        )
    return records

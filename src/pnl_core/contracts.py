"""
Data contracts for pnl-core: OptionPosition, TradeEvent, LedgerTotals,
PositionSummary, LiveQuote, RefreshRecord.

pnl-core consumes positions, trades and quotes and produces summaries.
No I/O; these are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Direction(str, Enum):
    """Side the position was opened on."""

    BUY = "Buy"
    SELL = "Sell"

    def opposite(self) -> Direction:
        return Direction.SELL if self is Direction.BUY else Direction.BUY


class OptionType(str, Enum):
    CALL = "Call"
    PUT = "Put"


class TradeKind(str, Enum):
    """Logical effect of a trade on the position: add contracts or remove them."""

    OPENING = "OPENING"
    CLOSING = "CLOSING"


class PositionStatus(str, Enum):
    """Lifecycle state. CLOSED, EXERCISED and LAPSED are terminal."""

    OPEN = "Open"
    CLOSED = "Closed"
    EXPIRED = "Expired"
    EXERCISED = "Exercised"
    LAPSED = "Lapsed"

    @property
    def is_terminal(self) -> bool:
        return self in (PositionStatus.CLOSED, PositionStatus.EXERCISED, PositionStatus.LAPSED)


# ---------------------------------------------------------------------------
# Inputs (supplied by the persistence and market-data collaborators)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OptionPosition:
    """One unique option contract: symbol + direction + type + strike + expiry."""

    symbol: str
    direction: Direction
    option_type: OptionType
    strike: float
    expiry: date
    status: PositionStatus = PositionStatus.OPEN
    id: str | None = None
    quote_code: str | None = None          # provider option code, e.g. "TCH250328P80000"
    last_stock_price: float | None = None  # last known underlying price
    close_stock_price: float | None = None  # underlying price recorded at close


@dataclass(frozen=True)
class TradeEvent:
    """A single fill against a position. trade_type may use either tag scheme."""

    trade_type: str
    contracts: int
    premium: float
    trade_date: date | datetime
    shares_per_contract: int = 500
    fee: float = 0.0
    margin_percent: float | None = None
    id: str | None = None
    created_at: datetime | None = None
    stock_price: float | None = None

    @property
    def notional_premium(self) -> float:
        """premium × contracts × shares_per_contract."""
        return self.premium * self.contracts * self.shares_per_contract


@dataclass(frozen=True)
class Greeks:
    delta: float | None = None
    gamma: float | None = None
    theta: float | None = None
    vega: float | None = None
    implied_volatility: float | None = None


@dataclass(frozen=True)
class LiveQuote:
    """Snapshot from the market-data collaborator, keyed by canonical symbol."""

    symbol: str
    current_price: float | None = None
    last_price: float | None = None
    greeks: Greeks | None = None
    open_interest: int | None = None

    @property
    def price(self) -> float | None:
        """Current price, falling back to last price when current is missing or zero."""
        if self.current_price:
            return self.current_price
        return self.last_price


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerTotals:
    """Output of the aggregator: totals over the trade list, no PNL."""

    total_opened: int = 0
    total_closed: int = 0
    net_contracts: int = 0
    avg_entry_premium: float = 0.0
    avg_exit_premium: float = 0.0
    total_premium: float = 0.0
    total_fees: float = 0.0
    avg_margin_percent: float = 0.0
    shares_per_contract: int = 500
    first_trade_date: date | datetime | None = None
    trade_count: int = 0


_SUMMARY_KEYS: dict[str, str] = {
    "net_contracts": "netContracts",
    "total_opened": "totalOpened",
    "total_closed": "totalClosed",
    "avg_entry_premium": "avgEntryPremium",
    "total_fees": "totalFees",
    "total_premium": "totalPremium",
    "realized_pnl": "realizedPNL",
    "unrealized_pnl": "unrealizedPNL",
    "gross_pnl": "grossPNL",
    "net_pnl": "netPNL",
    "return_percentage": "returnPercentage",
    "market_value": "marketValue",
    "breakeven_cost": "breakevenCost",
    "annualized_return": "annualizedReturn",
    "avg_exit_premium": "avgExitPremium",
    "total_margin": "totalMargin",
    "live_price": "livePrice",
}


def _round(value: Any, decimals: int | None) -> Any:
    if decimals is None or not isinstance(value, float):
        return value
    return round(value, decimals)


@dataclass(frozen=True)
class PositionSummary:
    """Derived view of a position. Never persisted; recomputed on every call.

    Monetary fields carry full float precision. Rounding happens only in
    to_dict() / terminal formatting.
    """

    net_contracts: int = 0
    total_opened: int = 0
    total_closed: int = 0
    avg_entry_premium: float = 0.0
    total_premium: float = 0.0
    total_fees: float = 0.0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    gross_pnl: float = 0.0
    net_pnl: float = 0.0
    return_percentage: float = 0.0
    market_value: float | None = None
    breakeven_cost: float | None = None
    annualized_return: float | None = None
    avg_exit_premium: float = 0.0
    total_margin: float = 0.0
    live_price: float | None = None

    def to_dict(self, decimals: int | None = None) -> dict[str, Any]:
        """Presentation dict with camelCase keys; rounds floats when *decimals* is set."""
        return {
            key: _round(getattr(self, attr), decimals)
            for attr, key in _SUMMARY_KEYS.items()
        }


@dataclass(frozen=True)
class RefreshRecord:
    """One row of a bulk refresh: latest price and the PNL it implies."""

    position_id: str | None
    symbol: str
    current_price: float
    unrealized_pnl: float
    net_pnl: float
    return_percentage: float

    def to_dict(self, decimals: int | None = None) -> dict[str, Any]:
        return {
            "positionId": self.position_id,
            "canonicalSymbol": self.symbol,
            "currentPrice": _round(self.current_price, decimals),
            "unrealizedPNL": _round(self.unrealized_pnl, decimals),
            "netPNL": _round(self.net_pnl, decimals),
            "returnPercentage": _round(self.return_percentage, decimals),
        }


@dataclass(frozen=True)
class StatusTransition:
    """A status change produced by the periodic expiry sweep."""

    position_id: str | None
    previous: PositionStatus
    new: PositionStatus
    reference_price: float | None = None

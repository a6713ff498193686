"""
Portfolio exposure of open short option positions.

    Sell Put   covering cash   = net contracts x shares per contract x strike
    Sell Call  covering shares = net contracts x shares per contract

The monthly view buckets the strike notional (net x shares x strike) of every
open short position by expiry month, puts and calls separately.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterable

from pnl_core.contracts import Direction, OptionType, PositionStatus
from pnl_core.dates import days_to_expiry, to_date
from pnl_core.ledger import aggregate

if TYPE_CHECKING:
    from pnl_core.refresh import PositionLedger

TIME_RANGES = ("all", "end_of_month", "end_of_next_month", "end_of_next_next_month", "end_of_year")


@dataclass(frozen=True)
class ExposureItem:
    position_id: str | None
    symbol: str
    option_type: OptionType
    strike: float
    expiry: date
    net_contracts: int
    shares_per_contract: int
    days_left: int

    @property
    def covering_shares(self) -> int:
        return self.net_contracts * self.shares_per_contract

    @property
    def covering_cash(self) -> float:
        return self.covering_shares * self.strike

    @property
    def label(self) -> str:
        return f"{self.symbol} {self.expiry:%Y%m%d} {self.strike:.2f} {self.option_type.value}"


@dataclass(frozen=True)
class MonthlyExposure:
    month: str  # YYYY-MM
    puts: float = 0.0
    calls: float = 0.0

    @property
    def total(self) -> float:
        return self.puts + self.calls


def _month_start(today: date, offset: int) -> date:
    index = today.year * 12 + today.month - 1 + offset
    return date(index // 12, index % 12 + 1, 1)


def range_end(today: date, time_range: str = "all") -> date | None:
    """Last expiry date included by *time_range*; None means no upper bound."""
    if time_range == "all":
        return None
    if time_range == "end_of_year":
        return date(today.year, 12, 31)
    months_ahead = {"end_of_month": 1, "end_of_next_month": 2, "end_of_next_next_month": 3}
    if time_range not in months_ahead:
        raise ValueError(f"Unknown time range: {time_range!r} (expected one of {', '.join(TIME_RANGES)})")
    return _month_start(today, months_ahead[time_range]) - timedelta(days=1)


def exposure_items(
    ledgers: Iterable[PositionLedger],
    today: date,
    *,
    time_range: str = "all",
) -> list[ExposureItem]:
    """Open Sell positions with contracts still held, optionally limited to an expiry window.

    A bounded window also drops positions whose expiry is already behind *today*.
    """
    today = to_date(today)
    end = range_end(today, time_range)
    items: list[ExposureItem] = []
    for ledger in ledgers:
        position = ledger.position
        if position.status is not PositionStatus.OPEN or position.direction is not Direction.SELL:
            continue
        if end is not None and not today <= position.expiry <= end:
            continue
        totals = aggregate(ledger.trades)
        if totals.net_contracts <= 0:
            continue
        items.append(
            ExposureItem(
                position_id=position.id,
                symbol=position.symbol,
                option_type=position.option_type,
                strike=position.strike,
                expiry=position.expiry,
                net_contracts=totals.net_contracts,
                shares_per_contract=totals.shares_per_contract,
                days_left=days_to_expiry(position.expiry, today),
            )
        )
    return items


def top_exposures(
    ledgers: Iterable[PositionLedger],
    option_type: OptionType,
    today: date,
    *,
    time_range: str = "all",
    limit: int = 5,
) -> list[ExposureItem]:
    """Largest short positions of one type: puts by covering cash, calls by covering shares."""
    items = [i for i in exposure_items(ledgers, today, time_range=time_range) if i.option_type is option_type]
    if option_type is OptionType.PUT:
        items.sort(key=lambda i: i.covering_cash, reverse=True)
    else:
        items.sort(key=lambda i: i.covering_shares, reverse=True)
    return items[:limit]


def monthly_exposure(
    ledgers: Iterable[PositionLedger],
    today: date,
    *,
    months: int = 12,
) -> list[MonthlyExposure]:
    """Strike notional per expiry month for *months* months starting with the current one."""
    today = to_date(today)
    keys = [f"{_month_start(today, i):%Y-%m}" for i in range(months)]
    puts = dict.fromkeys(keys, 0.0)
    calls = dict.fromkeys(keys, 0.0)
    for item in exposure_items(ledgers, today):
        key = f"{item.expiry:%Y-%m}"
        if key not in puts:
            continue
        if item.option_type is OptionType.PUT:
            puts[key] += item.covering_cash
        else:
            calls[key] += item.covering_cash
    return [MonthlyExposure(month=k, puts=puts[k], calls=calls[k]) for k in keys]


__all__ = [
    "ExposureItem",
    "MonthlyExposure",
    "TIME_RANGES",
    "exposure_items",
    "monthly_exposure",
    "range_end",
    "top_exposures",
]

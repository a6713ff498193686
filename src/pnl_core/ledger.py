"""
Trade Ledger Aggregator: ordered TradeEvents -> LedgerTotals.

Every trade tag from both historical schemes resolves through TRADE_TAGS to
an OPENING or CLOSING kind; nothing else in the package matches raw tag
strings. Totals are recomputed from scratch on every call.

Validation is enforced against the sequence *up to each trade* in date
order, so a close that is covered by the final totals but not by the
contracts open at its own date is still rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence

from config.pnl_config import PnlConfig
from pnl_core.contracts import (
    Direction,
    LedgerTotals,
    OptionPosition,
    PositionStatus,
    TradeEvent,
    TradeKind,
)
from pnl_core.dates import to_datetime


class LedgerError(ValueError):
    """Base class for rejected ledger input."""


class UnknownTradeTypeError(LedgerError):
    """Trade tag is not in either historical scheme."""


class TradeValidationError(LedgerError):
    """A trade, or the sequence it would join, breaks a ledger rule."""


# ---------------------------------------------------------------------------
# Tag classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TradeTag:
    """Classification of one raw tag string.

    opens_position: tag is only valid on an empty ledger (legacy OPEN).
    closes_all:     tag must close exactly the open contracts (legacy CLOSE).
    """

    kind: TradeKind
    opens_position: bool = False
    closes_all: bool = False


TRADE_TAGS: dict[str, TradeTag] = {
    # legacy scheme
    "OPEN": TradeTag(TradeKind.OPENING, opens_position=True),
    "ADD": TradeTag(TradeKind.OPENING),
    "REDUCE": TradeTag(TradeKind.CLOSING),
    "CLOSE": TradeTag(TradeKind.CLOSING, closes_all=True),
    # side-explicit scheme
    "OPEN_SELL": TradeTag(TradeKind.OPENING),
    "OPEN_BUY": TradeTag(TradeKind.OPENING),
    "CLOSE_SELL": TradeTag(TradeKind.CLOSING),
    "CLOSE_BUY": TradeTag(TradeKind.CLOSING),
}


def classify_tag(trade_type: str) -> TradeTag:
    key = (trade_type or "").strip().upper()
    try:
        return TRADE_TAGS[key]
    except KeyError:
        raise UnknownTradeTypeError(f"Unknown trade type: {trade_type!r}") from None


def classify_trade_type(trade_type: str) -> TradeKind:
    """Resolve a tag from either scheme to OPENING or CLOSING."""
    return classify_tag(trade_type).kind


def is_opening(trade: TradeEvent) -> bool:
    return classify_trade_type(trade.trade_type) is TradeKind.OPENING


def logical_side(direction: Direction, kind: TradeKind) -> Direction:
    """Opening trades take the position's direction; closing trades invert it."""
    return direction if kind is TradeKind.OPENING else direction.opposite()


def trade_cash_flow(trade: TradeEvent, direction: Direction) -> float:
    """Signed premium cash flow of one trade, net of its fee.

    A logical sell receives premium (+); a logical buy pays it (-).
    """
    side = logical_side(direction, classify_trade_type(trade.trade_type))
    gross = trade.notional_premium
    flow = gross if side is Direction.SELL else -gross
    return flow - trade.fee


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def _sort_key(trade: TradeEvent) -> tuple[datetime, bool, datetime]:
    # unstamped trades (not yet persisted) come after stamped ones on the same day
    if trade.created_at is None:
        return to_datetime(trade.trade_date), True, datetime.min
    return to_datetime(trade.trade_date), False, to_datetime(trade.created_at)


def sort_trades(trades: Iterable[TradeEvent]) -> list[TradeEvent]:
    """Ascending trade date, then created_at (unstamped last); stable otherwise."""
    return sorted(trades, key=_sort_key)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def _weighted_mean(trades: Sequence[TradeEvent], attr: str) -> float:
    contracts = sum(t.contracts for t in trades)
    if contracts <= 0:
        return 0.0
    return sum((getattr(t, attr) or 0.0) * t.contracts for t in trades) / contracts


def aggregate(trades: Iterable[TradeEvent], config: PnlConfig | None = None) -> LedgerTotals:
    """Reduce a trade list to LedgerTotals. Pure; no running state survives the call."""
    cfg = config or PnlConfig()
    ordered = sort_trades(trades)
    if not ordered:
        return LedgerTotals(shares_per_contract=cfg.contracts.default_shares_per_contract)

    opening = [t for t in ordered if classify_trade_type(t.trade_type) is TradeKind.OPENING]
    closing = [t for t in ordered if classify_trade_type(t.trade_type) is TradeKind.CLOSING]

    total_opened = sum(t.contracts for t in opening)
    total_closed = sum(t.contracts for t in closing)

    return LedgerTotals(
        total_opened=total_opened,
        total_closed=total_closed,
        net_contracts=total_opened - total_closed,
        avg_entry_premium=_weighted_mean(opening, "premium"),
        avg_exit_premium=_weighted_mean(closing, "premium"),
        total_premium=sum(t.notional_premium for t in opening),
        total_fees=sum(t.fee for t in ordered),
        avg_margin_percent=_weighted_mean(opening, "margin_percent"),
        shares_per_contract=ordered[0].shares_per_contract,
        first_trade_date=ordered[0].trade_date,
        trade_count=len(ordered),
    )


def net_contracts_by_prefix(trades: Iterable[TradeEvent]) -> list[int]:
    """Net open contracts after each trade, in date order."""
    running = 0
    out: list[int] = []
    for trade in sort_trades(trades):
        if classify_trade_type(trade.trade_type) is TradeKind.OPENING:
            running += trade.contracts
        else:
            running -= trade.contracts
        out.append(running)
    return out


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_trade(trade: TradeEvent) -> None:
    """Field-level checks for one trade. Raises TradeValidationError."""
    classify_tag(trade.trade_type)
    if isinstance(trade.contracts, bool) or not isinstance(trade.contracts, int):
        raise TradeValidationError(f"Contracts must be a whole number, got {trade.contracts!r}")
    if trade.contracts <= 0:
        raise TradeValidationError(f"Contracts must be greater than 0, got {trade.contracts}")
    if trade.premium < 0:
        raise TradeValidationError(f"Premium cannot be negative, got {trade.premium}")
    if trade.fee < 0:
        raise TradeValidationError(f"Fee cannot be negative, got {trade.fee}")
    if trade.shares_per_contract <= 0:
        raise TradeValidationError(
            f"Shares per contract must be greater than 0, got {trade.shares_per_contract}"
        )
    if trade.margin_percent is not None and not 0 <= trade.margin_percent <= 100:
        raise TradeValidationError(
            f"Margin percent must be between 0 and 100, got {trade.margin_percent}"
        )


def validate_sequence(trades: Iterable[TradeEvent]) -> None:
    """Check every trade and the net-contracts invariant at every prefix.

    The first trade must be opening; a closing trade may not exceed the
    contracts left open by all prior trades in date order.
    """
    net = 0
    for index, trade in enumerate(sort_trades(trades)):
        validate_trade(trade)
        kind = classify_trade_type(trade.trade_type)
        if index == 0 and kind is not TradeKind.OPENING:
            raise TradeValidationError(
                f"First trade must be an opening trade, got {trade.trade_type}"
            )
        if kind is TradeKind.OPENING:
            net += trade.contracts
            continue
        if trade.contracts > net:
            raise TradeValidationError(
                f"Cannot close {trade.contracts} contracts on {trade.trade_date} "
                f"- only {net} open"
            )
        net -= trade.contracts


def validate_new_trade(
    position: OptionPosition,
    trades: Sequence[TradeEvent],
    new_trade: TradeEvent,
) -> None:
    """Insertion-time check for *new_trade* against the existing ledger.

    Raises before any mutation; callers persist only after this returns.
    """
    validate_trade(new_trade)
    tag = classify_tag(new_trade.trade_type)

    if position.status in (PositionStatus.CLOSED, PositionStatus.EXERCISED, PositionStatus.LAPSED):
        raise TradeValidationError(f"Cannot add trades to a {position.status.value} position")

    existing = sort_trades(trades)
    merged = sort_trades([*existing, new_trade])
    position_in_merged = next(i for i, t in enumerate(merged) if t is new_trade)
    prefix = net_contracts_by_prefix(merged[:position_in_merged])
    open_before = prefix[-1] if prefix else 0

    if position.status is PositionStatus.EXPIRED and aggregate(existing).net_contracts == 0:
        raise TradeValidationError("Cannot add trades to an expired position with zero net contracts")
    if tag.opens_position and existing:
        raise TradeValidationError(
            f"Cannot {new_trade.trade_type.upper()} - position already has trades"
        )
    if tag.kind is TradeKind.CLOSING and not existing:
        raise TradeValidationError("Cannot add a closing trade - no position exists")
    if tag.closes_all and new_trade.contracts != open_before:
        raise TradeValidationError(
            f"{new_trade.trade_type.upper()} must close all {open_before} open contracts"
        )

    validate_sequence(merged)


def validate_trade_removal(trades: Sequence[TradeEvent], trade_id: str) -> list[TradeEvent]:
    """Check that *trade_id* can be removed; return the remaining sequence.

    The earliest trade may not be removed while later trades exist, and the
    remaining trades must still satisfy validate_sequence.
    """
    ordered = sort_trades(trades)
    ids = [t.id for t in ordered]
    if trade_id not in ids:
        raise TradeValidationError(f"Trade not found: {trade_id}")
    if ordered[0].id == trade_id and len(ordered) > 1:
        raise TradeValidationError("Cannot remove the opening trade while later trades exist")
    remaining = [t for t in ordered if t.id != trade_id]
    validate_sequence(remaining)
    return remaining

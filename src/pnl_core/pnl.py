"""
PNL Calculator: position + trades + optional live price -> PositionSummary.

Responsibilities:
    - Realized PNL by chronological replay with a continuously re-averaged
      entry basis (not FIFO lot matching)
    - Unrealized PNL of the open contracts against a live price
    - Gross/net PNL, return on premium, market value
    - Breakeven (assignment) cost and annualized return for short positions

Everything is recomputed from the full trade list on each call. Floats keep
full precision; rounding belongs to the presentation layer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Sequence

from config.pnl_config import PnlConfig
from pnl_core.contracts import (
    Direction,
    LedgerTotals,
    OptionPosition,
    PositionSummary,
    TradeEvent,
    TradeKind,
)
from pnl_core.dates import holding_days
from pnl_core.ledger import (
    aggregate,
    classify_trade_type,
    sort_trades,
    trade_cash_flow,
    validate_sequence,
)


@dataclass(frozen=True)
class RealizedLeg:
    """PNL realized by one closing trade against the basis held at that moment."""

    trade_date: date | datetime
    contracts: int
    close_premium: float
    entry_basis: float     # running weighted-average entry at the time of the close
    pnl: float             # before fees
    fee: float

    @property
    def net_pnl(self) -> float:
        return self.pnl - self.fee


def _signed_per_share(direction: Direction, entry: float, exit_: float) -> float:
    """Seller profits when the option gets cheaper; buyer when it gets dearer."""
    if direction is Direction.SELL:
        return entry - exit_
    return exit_ - entry


def realized_legs(trades: Iterable[TradeEvent], direction: Direction) -> list[RealizedLeg]:
    """Replay trades in date order and return one RealizedLeg per closing trade.

    Opening trades fold into the running average over currently held
    contracts; closing trades realize against it. The basis resets once the
    position is flat, so a later re-open starts a fresh average.
    """
    held = 0
    basis = 0.0
    legs: list[RealizedLeg] = []
    for trade in sort_trades(trades):
        if classify_trade_type(trade.trade_type) is TradeKind.OPENING:
            cost = held * basis + trade.contracts * trade.premium
            held += trade.contracts
            basis = cost / held
            continue

        pnl = (
            _signed_per_share(direction, basis, trade.premium)
            * trade.contracts
            * trade.shares_per_contract
        )
        legs.append(
            RealizedLeg(
                trade_date=trade.trade_date,
                contracts=trade.contracts,
                close_premium=trade.premium,
                entry_basis=basis,
                pnl=pnl,
                fee=trade.fee,
            )
        )
        held -= trade.contracts
        if held <= 0:
            held = 0
            basis = 0.0
    return legs


def realized_pnl(trades: Iterable[TradeEvent], direction: Direction) -> float:
    return sum(leg.pnl for leg in realized_legs(trades, direction))


def unrealized_pnl(
    totals: LedgerTotals,
    direction: Direction,
    live_price: float | None,
) -> float:
    """(live − avg entry) × net × shares, sign inverted for Sell. 0 without a price."""
    if live_price is None or totals.net_contracts <= 0:
        return 0.0
    return (
        _signed_per_share(direction, totals.avg_entry_premium, live_price)
        * totals.net_contracts
        * totals.shares_per_contract
    )


def return_percentage(net_pnl: float, total_premium: float) -> float:
    if total_premium == 0:
        return 0.0
    return net_pnl / total_premium * 100


def breakeven_cost(position: OptionPosition, totals: LedgerTotals) -> float | None:
    """Net cash needed if a short position were fully assigned. None for Buy."""
    if position.direction is not Direction.SELL:
        return None
    notional = position.strike * totals.net_contracts * totals.shares_per_contract
    return notional - (totals.total_premium - totals.total_fees)


def risk_capital(position: OptionPosition, totals: LedgerTotals) -> float:
    """Cash-secured notional, scaled by the average margin percent when margin applies."""
    capital = position.strike * totals.net_contracts * totals.shares_per_contract
    if totals.avg_margin_percent > 0:
        capital *= totals.avg_margin_percent / 100
    return capital


def annualized_return(
    position: OptionPosition,
    trades: Sequence[TradeEvent],
    totals: LedgerTotals,
    config: PnlConfig | None = None,
) -> float | None:
    """Annualized premium yield on risk capital, Sell positions only.

    (net premium received / risk capital) × (days_per_year / holding days) × 100.
    None when undefined: Buy position, no trades, or zero risk capital.
    """
    cfg = config or PnlConfig()
    if position.direction is not Direction.SELL or totals.first_trade_date is None:
        return None
    capital = risk_capital(position, totals)
    if capital <= 0:
        return None
    received = sum(trade_cash_flow(t, position.direction) for t in trades)
    days = holding_days(
        totals.first_trade_date,
        position.expiry,
        minimum=cfg.annualization.min_holding_days,
    )
    return received / capital * (cfg.annualization.days_per_year / days) * 100


def total_margin(position: OptionPosition, totals: LedgerTotals) -> float:
    if totals.net_contracts <= 0 or totals.avg_margin_percent <= 0:
        return 0.0
    return (
        totals.net_contracts
        * totals.shares_per_contract
        * position.strike
        * totals.avg_margin_percent
        / 100
    )


def market_value(
    totals: LedgerTotals,
    live_price: float | None,
    previous: PositionSummary | None = None,
) -> float | None:
    if live_price is not None:
        return totals.net_contracts * live_price * totals.shares_per_contract
    if previous is not None:
        return previous.market_value
    return None


def compute_summary(
    position: OptionPosition,
    trades: Iterable[TradeEvent],
    live_price: float | None = None,
    *,
    previous: PositionSummary | None = None,
    config: PnlConfig | None = None,
) -> PositionSummary:
    """Full PositionSummary for one position. Pure and idempotent.

    Parameters
    ----------
    position:
        The option contract (direction, strike, expiry drive the formulas).
    trades:
        Every trade for the position; order does not matter, they are
        replayed by date.
    live_price:
        Latest option premium, or None when no quote is available.
    previous:
        Last displayed summary; only its market value is reused, and only
        when there is no live price.
    config:
        Engine config; defaults apply when omitted.

    Raises
    ------
    LedgerError
        If the trade list breaks a ledger rule (nothing is clamped).
    """
    trade_list = sort_trades(trades)
    validate_sequence(trade_list)
    totals = aggregate(trade_list, config)

    realized = realized_pnl(trade_list, position.direction)
    unrealized = unrealized_pnl(totals, position.direction, live_price)
    gross = realized + unrealized
    net = gross - totals.total_fees

    return PositionSummary(
        net_contracts=totals.net_contracts,
        total_opened=totals.total_opened,
        total_closed=totals.total_closed,
        avg_entry_premium=totals.avg_entry_premium,
        total_premium=totals.total_premium,
        total_fees=totals.total_fees,
        realized_pnl=realized,
        unrealized_pnl=unrealized,
        gross_pnl=gross,
        net_pnl=net,
        return_percentage=return_percentage(net, totals.total_premium),
        market_value=market_value(totals, live_price, previous),
        breakeven_cost=breakeven_cost(position, totals),
        annualized_return=annualized_return(position, trade_list, totals, config),
        avg_exit_premium=totals.avg_exit_premium,
        total_margin=total_margin(position, totals),
        live_price=live_price,
    )


# ---------------------------------------------------------------------------
# Final-average shortcut (kept to cross-check the replay method)
# ---------------------------------------------------------------------------


def final_average_realized_pnl(trades: Iterable[TradeEvent], direction: Direction) -> float:
    """(avg entry − avg exit) × closed × shares, using whole-ledger averages."""
    totals = aggregate(trades)
    if totals.total_closed == 0:
        return 0.0
    return (
        _signed_per_share(direction, totals.avg_entry_premium, totals.avg_exit_premium)
        * totals.total_closed
        * totals.shares_per_contract
    )


def realized_methods_agree(
    trades: Sequence[TradeEvent],
    direction: Direction,
    *,
    abs_tol: float = 1e-6,
) -> bool:
    """True when replay and shortcut realized PNL match within tolerance.

    They match on every flat ledger with a uniform contract size, since the
    running average releases exactly the total entry cost once all contracts
    are closed. They also match while no opening trade follows a closing
    trade. An opening trade after a partial close, with contracts still
    open, moves the running basis away from the whole-ledger average and
    they diverge.
    """
    return math.isclose(
        realized_pnl(trades, direction),
        final_average_realized_pnl(trades, direction),
        rel_tol=1e-9,
        abs_tol=abs_tol,
    )

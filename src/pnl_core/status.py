"""
Status Lifecycle Resolver.

    Open --(net reaches 0)--> Closed
    Open --(today > expiry, net > 0)--> Expired
    Expired --(reference price ITM)--> Exercised
    Expired --(reference price OTM)--> Lapsed

Closed, Exercised and Lapsed are terminal. An Expired position with no
reference price stays Expired until a price is recorded.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Iterable

from pnl_core.contracts import (
    LedgerTotals,
    OptionPosition,
    OptionType,
    PositionStatus,
    StatusTransition,
)
from pnl_core.dates import to_date
from pnl_core.ledger import aggregate

if TYPE_CHECKING:
    from pnl_core.refresh import PositionLedger

logger = logging.getLogger("optitrack.status")


def reference_price(position: OptionPosition) -> float | None:
    """Underlying price used for moneyness: close price, else last known price."""
    if position.close_stock_price is not None:
        return position.close_stock_price
    return position.last_stock_price


def is_in_the_money(option_type: OptionType, strike: float, price: float) -> bool:
    if option_type is OptionType.PUT:
        return price < strike
    return price > strike


def _is_past_expiry(position: OptionPosition, today: date | datetime) -> bool:
    return to_date(today) > to_date(position.expiry)


def resolve_status(
    position: OptionPosition,
    totals: LedgerTotals,
    today: date | datetime,
) -> PositionStatus:
    """Next status for *position* given its totals and the current date."""
    status = position.status
    if status.is_terminal:
        return status

    if status is PositionStatus.OPEN:
        if totals.trade_count > 0 and totals.net_contracts == 0:
            return PositionStatus.CLOSED
        if totals.net_contracts > 0 and _is_past_expiry(position, today):
            status = PositionStatus.EXPIRED
        else:
            return status

    # Expired: try to settle on moneyness
    price = reference_price(position)
    if price is None:
        return PositionStatus.EXPIRED
    if is_in_the_money(position.option_type, position.strike, price):
        return PositionStatus.EXERCISED
    return PositionStatus.LAPSED


def needs_manual_resolution(position: OptionPosition, totals: LedgerTotals, today: date | datetime) -> bool:
    """True when the position is (or would become) Expired with no reference price."""
    return resolve_status(position, totals, today) is PositionStatus.EXPIRED


def check_expired_positions(
    ledgers: Iterable[PositionLedger],
    today: date | datetime,
) -> list[StatusTransition]:
    """Periodic sweep: one StatusTransition per position whose status would change."""
    transitions: list[StatusTransition] = []
    for ledger in ledgers:
        position = ledger.position
        totals = aggregate(ledger.trades)
        new_status = resolve_status(position, totals, today)
        if new_status is position.status:
            continue
        if new_status is PositionStatus.EXPIRED:
            logger.warning(
                "Position %s (%s) expired with no reference price; manual resolution needed",
                position.id, position.symbol,
            )
        transitions.append(
            StatusTransition(
                position_id=position.id,
                previous=position.status,
                new=new_status,
                reference_price=reference_price(position),
            )
        )
    return transitions


__all__ = [
    "check_expired_positions",
    "is_in_the_money",
    "needs_manual_resolution",
    "reference_price",
    "resolve_status",
]

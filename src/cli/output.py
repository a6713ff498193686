"""
Human-readable position and PNL output for the terminal.

All rounding happens here; the engine hands over full-precision floats.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from config.pnl_config import PnlConfig

if TYPE_CHECKING:
    from pnl_core.contracts import OptionPosition, PositionSummary, RefreshRecord, TradeEvent
    from pnl_core.exposure import ExposureItem, MonthlyExposure


def fmt_money(value: float | None, decimals: int = 2, *, signed: bool = False) -> str:
    if value is None:
        return "-"
    if signed:
        return f"{value:+,.{decimals}f}"
    return f"{value:,.{decimals}f}"


def fmt_pct(value: float | None, decimals: int = 2) -> str:
    if value is None:
        return "-"
    return f"{value:+.{decimals}f}%"


def format_position_line(position: OptionPosition, summary: PositionSummary | None = None) -> str:
    """One-line listing: id, contract, status, net contracts, net PNL."""
    head = (
        f"{position.id or '-'}  {position.symbol:<18} "
        f"{position.direction.value:<4} {position.option_type.value:<4} "
        f"{position.strike:>10.2f}  {position.expiry.isoformat()}  {position.status.value:<9}"
    )
    if summary is None:
        return head
    return f"{head}  net {summary.net_contracts:>4}  PNL {fmt_money(summary.net_pnl, signed=True)}"


def format_summary(
    position: OptionPosition,
    summary: PositionSummary,
    trades: Iterable[TradeEvent] = (),
    config: PnlConfig | None = None,
) -> str:
    """Full position card: contract, ledger totals, PNL breakdown, trades."""
    cfg = config or PnlConfig()
    d = cfg.display.decimals
    cur = cfg.display.currency

    lines = [
        f"--- {position.symbol} {position.direction.value} {position.option_type.value} "
        f"{position.strike:.2f} exp {position.expiry.isoformat()} [{position.status.value}] ---",
        f"Contracts    : opened {summary.total_opened}  closed {summary.total_closed}  net {summary.net_contracts}",
        f"Avg entry    : {summary.avg_entry_premium:.4f}  |  Avg exit: {summary.avg_exit_premium:.4f}",
        f"Live price   : {fmt_money(summary.live_price, 4)}",
        f"Total premium: {fmt_money(summary.total_premium, d)} {cur}",
        f"Fees         : {fmt_money(summary.total_fees, d)} {cur}",
        f"Realized     : {fmt_money(summary.realized_pnl, d, signed=True)} {cur}",
        f"Unrealized   : {fmt_money(summary.unrealized_pnl, d, signed=True)} {cur}",
        f"Gross PNL    : {fmt_money(summary.gross_pnl, d, signed=True)} {cur}",
        f"Net PNL      : {fmt_money(summary.net_pnl, d, signed=True)} {cur}  ({fmt_pct(summary.return_percentage, d)})",
        f"Market value : {fmt_money(summary.market_value, d)}",
    ]
    if summary.breakeven_cost is not None:
        lines.append(f"Breakeven    : {fmt_money(summary.breakeven_cost, d)} {cur} if assigned")
    if summary.annualized_return is not None:
        lines.append(f"Annualized   : {fmt_pct(summary.annualized_return, d)}")
    if summary.total_margin:
        lines.append(f"Margin       : {fmt_money(summary.total_margin, d)} {cur}")

    trade_list = list(trades)
    if trade_list:
        lines.append("")
        lines.append(f"Trades ({len(trade_list)}):")
        for t in trade_list:
            lines.append(
                f"  {t.id or '-'}  {t.trade_date.isoformat():<19}  {t.trade_type:<10} "
                f"{t.contracts:>4} @ {t.premium:.4f}  fee {t.fee:.2f}"
            )
    return "\n".join(lines)


def format_refresh(records: Iterable[RefreshRecord], decimals: int = 2) -> str:
    rows = [
        f"  {r.symbol:<20} price {r.current_price:>10.4f}  "
        f"unrealized {fmt_money(r.unrealized_pnl, decimals, signed=True):>14}  "
        f"net {fmt_money(r.net_pnl, decimals, signed=True):>14}  {fmt_pct(r.return_percentage, decimals)}"
        for r in records
    ]
    return "\n".join(rows)


def format_exposure(
    puts: Iterable[ExposureItem],
    calls: Iterable[ExposureItem],
    monthly: Iterable[MonthlyExposure],
    config: PnlConfig | None = None,
) -> str:
    """Top short puts and calls, then the monthly notional table."""
    cfg = config or PnlConfig()
    d = cfg.display.decimals
    cur = cfg.display.currency

    lines = ["Top Sell Put (covering cash):"]
    put_rows = [
        f"  {i.label:<36} {i.days_left:>5}d  net {i.net_contracts:>4}  {fmt_money(i.covering_cash, d):>16} {cur}"
        for i in puts
    ]
    lines.extend(put_rows or ["  none"])

    lines.append("Top Sell Call (covering shares):")
    call_rows = [
        f"  {i.label:<36} {i.days_left:>5}d  net {i.net_contracts:>4}  {i.covering_shares:>12,} shares"
        for i in calls
    ]
    lines.extend(call_rows or ["  none"])

    lines.append("Monthly exposure (strike notional):")
    for m in monthly:
        lines.append(
            f"  {m.month}  puts {fmt_money(m.puts, d):>16}  calls {fmt_money(m.calls, d):>16}  "
            f"total {fmt_money(m.total, d):>16} {cur}"
        )
    return "\n".join(lines)

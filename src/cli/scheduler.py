"""
Live refresh scheduler: market-aware loop that pulls quotes for every open
position and recomputes PNL every refresh.interval_seconds.

HK session: 09:30-12:00 and 13:00-16:00 Hong Kong time (lunch break closed).
US session: 09:30-16:00 Eastern.
Sleeps through the lunch break, overnight and on weekends.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, time as dtime, timedelta
from zoneinfo import ZoneInfo

import click

from config.loader import AppConfig

logger = logging.getLogger("optitrack.scheduler")

HKT = ZoneInfo("Asia/Hong_Kong")
ET = ZoneInfo("America/New_York")


@dataclass(frozen=True)
class MarketHours:
    tz: ZoneInfo
    sessions: tuple[tuple[dtime, dtime], ...]


MARKET_HOURS: dict[str, MarketHours] = {
    "HK": MarketHours(HKT, ((dtime(9, 30), dtime(12, 0)), (dtime(13, 0), dtime(16, 0)))),
    "US": MarketHours(ET, ((dtime(9, 30), dtime(16, 0)),)),
}


def _hours(market: str) -> MarketHours:
    try:
        return MARKET_HOURS[market.upper()]
    except KeyError:
        raise ValueError(f"No trading hours defined for market {market!r}") from None


def _at(day: datetime, t: dtime) -> datetime:
    return day.replace(hour=t.hour, minute=t.minute, second=0, microsecond=0)


def is_market_open(now: datetime, market: str = "HK") -> bool:
    """True if *now* falls within a trading session of *market* on a weekday."""
    hours = _hours(market)
    local = now.astimezone(hours.tz) if now.tzinfo else now.replace(tzinfo=hours.tz)
    if local.weekday() >= 5:
        return False
    return any(_at(local, start) <= local < _at(local, end) for start, end in hours.sessions)


def next_market_open(now: datetime, market: str = "HK") -> datetime:
    """Next session start (market-local, tz-aware), skipping weekends."""
    hours = _hours(market)
    local = now.astimezone(hours.tz) if now.tzinfo else now.replace(tzinfo=hours.tz)
    day = local
    for _ in range(8):
        if day.weekday() < 5:
            for start, _end in hours.sessions:
                candidate = _at(day, start)
                if candidate > local:
                    return candidate
        day = _at(day + timedelta(days=1), dtime(0, 0))
    raise RuntimeError("No market open found within a week")


def run_refresh_cycle(cfg: AppConfig, *, events=None, cache=None) -> list:
    """Single refresh: quotes for every open position -> RefreshRecords, journaled.

    *cache* (a SummaryCache) is reused across cycles by the live loop.
    """
    from config.pnl_config import load_pnl_config
    from data import TradeStore, get_quote_provider
    from journal import JournalWriter
    from pnl_core.contracts import PositionStatus
    from pnl_core.refresh import refresh_positions

    store = TradeStore(cfg.store.path)
    ledgers = store.list_ledgers(PositionStatus.OPEN)
    provider = get_quote_provider(cfg.quotes.source, cfg.quotes.path)
    pnl_cfg = load_pnl_config(cfg.pnl_config_path or None, market=cfg.refresh.market)

    if events is not None:
        events.refresh_start(len(ledgers))
    records = refresh_positions(ledgers, provider, config=pnl_cfg, cache=cache)
    if events is not None:
        events.refresh_complete(len(records), len(ledgers) - len(records))

    if records:
        journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
        journal.refresh(records)
    return records


def run_live_loop(cfg: AppConfig, *, max_cycles: int | None = None) -> None:
    """
    Main loop: refresh, sleep interval_seconds, repeat while the market is open.
    Ctrl+C for graceful shutdown.
    """
    from cli.output import format_refresh
    from cli.structured_log import StructuredEventLogger
    from config.pnl_config import load_pnl_config
    from pnl_core.cache import SummaryCache

    market = cfg.refresh.market
    hours = _hours(market)
    events = StructuredEventLogger(
        market,
        enabled=cfg.alerting.structured_logs,
        webhook_url=cfg.alerting.webhook_url,
    )
    cache = SummaryCache(config=load_pnl_config(cfg.pnl_config_path or None, market=market))
    cycles = 0

    click.echo(f"Live refresh started: {market} every {cfg.refresh.interval_seconds}s  |  Ctrl+C to stop\n")

    try:
        while max_cycles is None or cycles < max_cycles:
            now = datetime.now(hours.tz)

            if not is_market_open(now, market):
                nxt = next_market_open(now, market)
                wait = (nxt - now).total_seconds()
                events.market_closed(nxt.isoformat(), wait / 3600)
                click.echo(f"[{now:%H:%M:%S}] Market closed. "
                           f"Sleeping until {nxt:%Y-%m-%d %H:%M} ({wait / 3600:.1f}h)")
                time.sleep(wait)
                continue

            try:
                records = run_refresh_cycle(cfg, events=events, cache=cache)
            except (OSError, ValueError) as exc:
                logger.error("Refresh cycle failed: %s", exc)
                events.error("refresh cycle failed", detail=str(exc))
            else:
                click.echo(f"[{now:%H:%M:%S}] Refreshed {len(records)} position(s)")
                if records:
                    click.echo(format_refresh(records))
            cycles += 1
            time.sleep(cfg.refresh.interval_seconds)

    except KeyboardInterrupt:
        click.echo(f"\n\nShutting down after {cycles} cycle(s). Goodbye.")
    events.shutdown(cycles)

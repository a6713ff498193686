"""
CLI entry point: optitrack open | trade | remove-trade | delete | list |
summary | refresh | check-expired | symbol | health.

Every command loads config from --config (default config.yaml). Ledger
changes are validated before they touch the store and are logged to the
journal.
"""

import logging
import sys
from datetime import date, datetime

import click
from dotenv import load_dotenv

from config import load_config
from pnl_core.exposure import TIME_RANGES

load_dotenv()

logger = logging.getLogger("optitrack")

_DATE = click.DateTime(formats=["%Y-%m-%d"])


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


def _events(cfg):
    from cli.structured_log import StructuredEventLogger

    return StructuredEventLogger(
        cfg.refresh.market,
        enabled=cfg.alerting.structured_logs,
        webhook_url=cfg.alerting.webhook_url,
    )


def _pnl_config(cfg, symbol: str | None = None):
    """Engine config with the per-market override for *symbol* (or the refresh market)."""
    from config.pnl_config import load_pnl_config
    from pnl_core.symbols import split_symbol

    market = split_symbol(symbol)[0].value if symbol else cfg.refresh.market
    return load_pnl_config(cfg.pnl_config_path or None, market=market)


def _reject(events, exc: Exception, position_id: str | None = None) -> click.ClickException:
    events.trade_rejected(str(exc), position_id=position_id)
    return click.ClickException(str(exc))


def _as_date(value: datetime | None) -> date:
    return value.date() if value is not None else date.today()


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """optitrack: option position ledger and PNL tracker."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- optitrack open ----------


@cli.command("open")
@click.argument("symbol")
@click.option("--direction", type=click.Choice(["Buy", "Sell"], case_sensitive=False), required=True)
@click.option("--type", "option_type", type=click.Choice(["Call", "Put"], case_sensitive=False), required=True)
@click.option("--strike", type=float, required=True)
@click.option("--expiry", type=_DATE, required=True, help="Expiry date (YYYY-MM-DD).")
@click.option("--contracts", type=int, required=True)
@click.option("--premium", type=float, required=True, help="Premium per share.")
@click.option("--fee", type=float, default=0.0, show_default=True)
@click.option("--date", "trade_date", type=_DATE, default=None, help="Trade date (default: today).")
@click.option("--shares", type=int, default=None, help="Shares per contract (default: market config).")
@click.option("--margin", type=float, default=None, help="Margin percent for short positions.")
@click.option("--quote-code", default=None, help="Provider option code used for quotes.")
@click.option("--stock-price", type=float, default=None, help="Underlying price at the time of the trade.")
@click.option("--trade-type", default="OPEN", show_default=True, help="Opening tag (OPEN, OPEN_SELL, OPEN_BUY).")
@click.pass_context
def open_(
    ctx: click.Context, symbol: str, direction: str, option_type: str, strike: float,
    expiry: datetime, contracts: int, premium: float, fee: float, trade_date: datetime | None,
    shares: int | None, margin: float | None, quote_code: str | None,
    stock_price: float | None, trade_type: str,
) -> None:
    """Open a new position with its first trade."""
    cfg = load_config(ctx.obj["config_path"])
    from data import DuplicatePositionError, TradeStore
    from journal import JournalWriter
    from pnl_core.contracts import Direction, OptionPosition, OptionType, TradeEvent
    from pnl_core.ledger import LedgerError
    from pnl_core.symbols import SymbolError, normalize_symbol

    events = _events(cfg)
    try:
        canonical = normalize_symbol(symbol)
        pnl_cfg = _pnl_config(cfg, canonical)
        position = OptionPosition(
            symbol=canonical,
            direction=Direction(direction.capitalize()),
            option_type=OptionType(option_type.capitalize()),
            strike=strike,
            expiry=expiry.date(),
            quote_code=quote_code,
            last_stock_price=stock_price,
        )
        trade = TradeEvent(
            trade_type=trade_type.upper(),
            contracts=contracts,
            premium=premium,
            trade_date=_as_date(trade_date),
            shares_per_contract=shares or pnl_cfg.contracts.default_shares_per_contract,
            fee=fee,
            margin_percent=margin,
            stock_price=stock_price,
        )
        position, trade = TradeStore(cfg.store.path).open_position(position, trade)
    except (LedgerError, SymbolError, DuplicatePositionError) as exc:
        raise _reject(events, exc) from exc

    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    journal.position_opened(
        position.id, position.symbol, position.direction.value,
        position.option_type.value, position.strike, position.expiry,
    )
    journal.trade(position.id, trade.id, trade.trade_type, trade.contracts, trade.premium, trade.fee, trade.trade_date)
    events.trade_recorded(position.id, trade.trade_type, trade.contracts, position.status.value)
    click.echo(f"Opened position {position.id}: {position.symbol} {position.direction.value} "
               f"{position.option_type.value} {position.strike:.2f} exp {position.expiry.isoformat()}")


# ---------- optitrack trade ----------


@cli.command()
@click.argument("position_id")
@click.argument("trade_type")
@click.argument("contracts", type=int)
@click.argument("premium", type=float)
@click.option("--fee", type=float, default=0.0, show_default=True)
@click.option("--date", "trade_date", type=_DATE, default=None, help="Trade date (default: today).")
@click.option("--shares", type=int, default=None, help="Shares per contract (default: market config).")
@click.option("--margin", type=float, default=None, help="Margin percent for opening trades.")
@click.option("--stock-price", type=float, default=None, help="Underlying price at the time of the trade.")
@click.pass_context
def trade(
    ctx: click.Context, position_id: str, trade_type: str, contracts: int, premium: float,
    fee: float, trade_date: datetime | None, shares: int | None, margin: float | None,
    stock_price: float | None,
) -> None:
    """Record a trade (ADD, REDUCE, CLOSE, OPEN_*/CLOSE_*) against a position."""
    cfg = load_config(ctx.obj["config_path"])
    from data import PositionNotFoundError, TradeStore
    from journal import JournalWriter
    from pnl_core.contracts import TradeEvent
    from pnl_core.ledger import LedgerError

    events = _events(cfg)
    store = TradeStore(cfg.store.path)
    try:
        position = store.get_position(position_id)
        pnl_cfg = _pnl_config(cfg, position.symbol)
        new_trade = TradeEvent(
            trade_type=trade_type.upper(),
            contracts=contracts,
            premium=premium,
            trade_date=_as_date(trade_date),
            shares_per_contract=shares or pnl_cfg.contracts.default_shares_per_contract,
            fee=fee,
            margin_percent=margin,
            stock_price=stock_price,
        )
        stored, status = store.add_trade(position_id, new_trade)
    except (LedgerError, PositionNotFoundError) as exc:
        raise _reject(events, exc, position_id) from exc

    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    journal.trade(position_id, stored.id, stored.trade_type, stored.contracts, stored.premium, stored.fee, stored.trade_date)
    events.trade_recorded(position_id, stored.trade_type, stored.contracts, status.value)
    if status is not position.status:
        journal.status_change(position_id, position.status.value, status.value, stock_price)
        events.status_changed(position_id, position.status.value, status.value, stock_price)
    click.echo(f"Recorded {stored.trade_type} {stored.contracts} @ {stored.premium:.4f} "
               f"(trade {stored.id}); position is {status.value}")


# ---------- optitrack remove-trade ----------


@cli.command("remove-trade")
@click.argument("position_id")
@click.argument("trade_id")
@click.pass_context
def remove_trade(ctx: click.Context, position_id: str, trade_id: str) -> None:
    """Remove one trade, provided the remaining ledger stays valid."""
    cfg = load_config(ctx.obj["config_path"])
    from data import PositionNotFoundError, TradeStore
    from journal import JournalWriter
    from pnl_core.ledger import LedgerError

    events = _events(cfg)
    try:
        status = TradeStore(cfg.store.path).remove_trade(position_id, trade_id)
    except (LedgerError, PositionNotFoundError) as exc:
        raise _reject(events, exc, position_id) from exc

    JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout).trade_removed(position_id, trade_id)
    click.echo(f"Removed trade {trade_id}; position is {status.value}")


# ---------- optitrack delete ----------


@cli.command()
@click.argument("position_id")
@click.option("--yes", is_flag=True, default=False, help="Skip confirmation.")
@click.pass_context
def delete(ctx: click.Context, position_id: str, yes: bool) -> None:
    """Delete a position and all of its trades."""
    cfg = load_config(ctx.obj["config_path"])
    from data import PositionNotFoundError, TradeStore

    store = TradeStore(cfg.store.path)
    try:
        position = store.get_position(position_id)
    except PositionNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    if not yes:
        click.confirm(f"Delete {position.symbol} {position.option_type.value} {position.strike:.2f} and all its trades?", abort=True)
    removed = store.delete_position(position_id)
    logger.info("Deleted position %s (%d trades)", position_id, removed)
    click.echo(f"Deleted position {position_id} and {removed} trade(s).")


# ---------- optitrack list ----------


@cli.command("list")
@click.option(
    "--status",
    "status_filter",
    type=click.Choice(["Open", "Closed", "Expired", "Exercised", "Lapsed"], case_sensitive=False),
    default=None,
)
@click.pass_context
def list_(ctx: click.Context, status_filter: str | None) -> None:
    """List positions with net contracts and net PNL (no live price)."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_position_line
    from data import TradeStore
    from pnl_core.contracts import PositionStatus
    from pnl_core.ledger import LedgerError
    from pnl_core.pnl import compute_summary

    status = PositionStatus(status_filter.capitalize()) if status_filter else None
    ledgers = TradeStore(cfg.store.path).list_ledgers(status)
    if not ledgers:
        click.echo("No positions.")
        return
    for ledger in ledgers:
        try:
            summary = compute_summary(ledger.position, ledger.trades, config=_pnl_config(cfg, ledger.position.symbol))
        except LedgerError as exc:
            logger.warning("Position %s has an invalid ledger: %s", ledger.position.id, exc)
            summary = None
        click.echo(format_position_line(ledger.position, summary))


# ---------- optitrack summary ----------


@cli.command()
@click.argument("position_id")
@click.option("--price", type=float, default=None, help="Live option price; defaults to the configured quote source.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the summary dictionary as JSON.")
@click.pass_context
def summary(ctx: click.Context, position_id: str, price: float | None, as_json: bool) -> None:
    """Show the full PNL summary for one position."""
    import json

    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_summary
    from data import PositionNotFoundError, TradeStore, get_quote_provider
    from pnl_core.ledger import LedgerError
    from pnl_core.pnl import compute_summary
    from pnl_core.refresh import quote_symbol as resolve_quote_symbol

    store = TradeStore(cfg.store.path)
    try:
        ledger = store.get_ledger(position_id)
    except PositionNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    position = ledger.position
    pnl_cfg = _pnl_config(cfg, position.symbol)

    if price is None:
        quote_symbol = resolve_quote_symbol(position)
        provider = get_quote_provider(cfg.quotes.source, cfg.quotes.path)
        try:
            quote = provider.get_quote(quote_symbol) if quote_symbol else None
        except (OSError, ValueError) as exc:
            logger.warning("Quote unavailable for %s: %s", quote_symbol, exc)
            quote = None
        price = quote.price if quote is not None else None

    try:
        result = compute_summary(position, ledger.trades, price, config=pnl_cfg)
    except LedgerError as exc:
        raise click.ClickException(f"Invalid ledger for {position_id}: {exc}") from exc

    if as_json:
        click.echo(json.dumps(result.to_dict(pnl_cfg.display.decimals), indent=2))
    else:
        click.echo(format_summary(position, result, ledger.trades, pnl_cfg))


# ---------- optitrack refresh ----------


@cli.command()
@click.option("--live", is_flag=True, default=False, help="Keep refreshing every interval while the market is open.")
@click.pass_context
def refresh(ctx: click.Context, live: bool) -> None:
    """Recompute PNL for all open positions from fresh quotes."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.scheduler import run_live_loop, run_refresh_cycle

    if live:
        run_live_loop(cfg)
        return

    from cli.output import format_refresh

    try:
        records = run_refresh_cycle(cfg, events=_events(cfg))
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Refresh failed: {exc}") from exc
    if not records:
        click.echo("No positions refreshed.")
        return
    click.echo(f"Refreshed {len(records)} position(s):")
    click.echo(format_refresh(records))


# ---------- optitrack exposure ----------


@cli.command()
@click.option("--range", "time_range", type=click.Choice(list(TIME_RANGES)), default="all", show_default=True,
              help="Only count positions expiring within this window.")
@click.option("--limit", type=int, default=5, show_default=True, help="Rows in each top list.")
@click.option("--months", type=int, default=12, show_default=True, help="Months in the monthly table.")
@click.option("--date", "as_of", type=_DATE, default=None, help="Evaluate as of this date (default: today).")
@click.pass_context
def exposure(ctx: click.Context, time_range: str, limit: int, months: int, as_of: datetime | None) -> None:
    """Covering cash and shares of open short positions, by position and by expiry month."""
    cfg = load_config(ctx.obj["config_path"])
    from cli.output import format_exposure
    from data import TradeStore
    from pnl_core.contracts import OptionType, PositionStatus
    from pnl_core.exposure import monthly_exposure, top_exposures

    today = _as_date(as_of)
    ledgers = TradeStore(cfg.store.path).list_ledgers(PositionStatus.OPEN)
    puts = top_exposures(ledgers, OptionType.PUT, today, time_range=time_range, limit=limit)
    calls = top_exposures(ledgers, OptionType.CALL, today, time_range=time_range, limit=limit)
    monthly = monthly_exposure(ledgers, today, months=months)
    click.echo(format_exposure(puts, calls, monthly, _pnl_config(cfg)))


# ---------- optitrack check-expired ----------


@cli.command("check-expired")
@click.option("--date", "as_of", type=_DATE, default=None, help="Evaluate as of this date (default: today).")
@click.option("--dry-run", is_flag=True, default=False, help="Report transitions without saving them.")
@click.pass_context
def check_expired(ctx: click.Context, as_of: datetime | None, dry_run: bool) -> None:
    """Move past-expiry positions to Expired, then settle them as Exercised or Lapsed."""
    cfg = load_config(ctx.obj["config_path"])
    from data import TradeStore
    from journal import JournalWriter
    from pnl_core.contracts import PositionStatus
    from pnl_core.status import check_expired_positions

    today = _as_date(as_of)
    store = TradeStore(cfg.store.path)
    ledgers = store.list_ledgers(PositionStatus.OPEN) + store.list_ledgers(PositionStatus.EXPIRED)
    transitions = check_expired_positions(ledgers, today)
    if not transitions:
        click.echo("No status changes.")
        return

    events = _events(cfg)
    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    for tr in transitions:
        price = f" (ref {tr.reference_price:.2f})" if tr.reference_price is not None else ""
        click.echo(f"  {tr.position_id}: {tr.previous.value} -> {tr.new.value}{price}")
        if dry_run:
            continue
        store.update_status(tr.position_id, tr.new)
        journal.status_change(tr.position_id, tr.previous.value, tr.new.value, tr.reference_price)
        events.status_changed(tr.position_id, tr.previous.value, tr.new.value, tr.reference_price)
    unresolved = sum(1 for tr in transitions if tr.new is PositionStatus.EXPIRED)
    if unresolved:
        click.echo(f"\n{unresolved} position(s) need a stock price to settle (manual resolution).")


# ---------- optitrack symbol ----------


@cli.command()
@click.argument("raw")
@click.option("--market", type=click.Choice(["HK", "US", "SH", "SZ"], case_sensitive=False), default=None)
def symbol(raw: str, market: str | None) -> None:
    """Print the canonical MARKET.CODE form of a security identifier."""
    from pnl_core.symbols import SymbolError, normalize_symbol, to_provider_security

    try:
        canonical = normalize_symbol(raw, market_hint=market)
    except SymbolError as exc:
        raise click.ClickException(str(exc)) from exc
    security = to_provider_security(canonical)
    click.echo(f"{canonical}  (provider market {security['market']}, code {security['code']})")


# ---------- optitrack health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, PNL config, store access, quote source.

    Exit code 0 = healthy, 1 = unhealthy.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (market={cfg.refresh.market}, quotes={cfg.quotes.source})"))
    except (FileNotFoundError, ValueError) as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        from config.pnl_config import load_pnl_config
        pnl_cfg = load_pnl_config(cfg.pnl_config_path or None, market=cfg.refresh.market)
        checks.append(("pnl_config", True, f"validated ({pnl_cfg.contracts.default_shares_per_contract} shares/contract)"))
    except Exception as e:
        checks.append(("pnl_config", False, str(e)))

    try:
        from data import TradeStore
        from pnl_core.contracts import PositionStatus
        store = TradeStore(cfg.store.path)
        open_count = len(store.list_positions(PositionStatus.OPEN))
        checks.append(("store", True, f"{open_count} open position(s)"))
    except Exception as e:
        checks.append(("store", False, str(e)))

    if cfg.quotes.source == "file":
        from pathlib import Path
        exists = Path(cfg.quotes.path).exists()
        checks.append(("quotes", exists, cfg.quotes.path if exists else f"missing {cfg.quotes.path}"))
    else:
        checks.append(("quotes", True, cfg.quotes.source))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()

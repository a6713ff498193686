"""Pytest fixtures: positions and trade ledgers for deterministic tests."""

from datetime import date

import pytest

from pnl_core.contracts import Direction, OptionPosition, OptionType, TradeEvent


def make_trade(
    trade_type: str,
    contracts: int,
    premium: float,
    day: int = 1,
    *,
    month: int = 3,
    fee: float = 0.0,
    shares: int = 500,
    margin: float | None = None,
    trade_id: str | None = None,
) -> TradeEvent:
    return TradeEvent(
        trade_type=trade_type,
        contracts=contracts,
        premium=premium,
        trade_date=date(2025, month, day),
        shares_per_contract=shares,
        fee=fee,
        margin_percent=margin,
        id=trade_id,
    )


@pytest.fixture
def sell_put() -> OptionPosition:
    """Sell Put, strike 80, HK 500-share contracts, expiring end of March."""
    return OptionPosition(
        symbol="HK.00700",
        direction=Direction.SELL,
        option_type=OptionType.PUT,
        strike=80.0,
        expiry=date(2025, 3, 28),
        id="pos-1",
    )


@pytest.fixture
def buy_call() -> OptionPosition:
    return OptionPosition(
        symbol="US.AAPL",
        direction=Direction.BUY,
        option_type=OptionType.CALL,
        strike=200.0,
        expiry=date(2025, 6, 20),
        id="pos-2",
    )


@pytest.fixture
def scenario_trades() -> list[TradeEvent]:
    """OPEN 5 @ 2.50, ADD 3 @ 2.00, REDUCE 4 @ 1.00."""
    return [
        make_trade("OPEN", 5, 2.50, 1, trade_id="t1"),
        make_trade("ADD", 3, 2.00, 5, trade_id="t2"),
        make_trade("REDUCE", 4, 1.00, 10, trade_id="t3"),
    ]


@pytest.fixture
def config_file(tmp_path):
    """A config.yaml pointing every path into tmp_path."""
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
store:
  path: "{tmp_path / 'optitrack.db'}"
quotes:
  source: file
  path: "{tmp_path / 'quotes.json'}"
refresh:
  interval_seconds: 5
  market: HK
journal:
  path: "{tmp_path / 'journal.jsonl'}"
  echo_stdout: false
alerting:
  structured_logs: false
"""
    )
    return path

"""Property tests: ledger and PNL invariants over generated valid trade sequences."""

from datetime import date, timedelta

import pytest
from hypothesis import given, settings, strategies as st

from pnl_core.contracts import Direction, OptionPosition, OptionType, TradeEvent
from pnl_core.ledger import aggregate, net_contracts_by_prefix, validate_sequence
from pnl_core.pnl import compute_summary, realized_methods_agree
from pnl_core.symbols import normalize_symbol

START = date(2025, 1, 2)

premiums = st.floats(min_value=0.01, max_value=50, allow_nan=False, allow_infinity=False)
fees = st.floats(min_value=0, max_value=100, allow_nan=False, allow_infinity=False)


@st.composite
def valid_ledgers(draw, close_out: bool = False) -> list[TradeEvent]:
    """Date-ordered sequence that starts with an opening trade and never over-closes."""
    steps = draw(st.lists(st.tuples(st.booleans(), st.integers(1, 20), premiums, fees), min_size=1, max_size=12))
    trades: list[TradeEvent] = []
    net = 0
    for i, (wants_open, contracts, premium, fee) in enumerate(steps):
        opening = wants_open or net == 0
        if not opening:
            contracts = min(contracts, net)
        trades.append(
            TradeEvent(
                trade_type="ADD" if opening else "REDUCE",
                contracts=contracts,
                premium=premium,
                trade_date=START + timedelta(days=i),
                fee=fee,
            )
        )
        net += contracts if opening else -contracts
    if close_out and net > 0:
        trades.append(
            TradeEvent("CLOSE", net, draw(premiums), START + timedelta(days=len(steps)))
        )
    return trades


def _position(direction: Direction) -> OptionPosition:
    return OptionPosition("HK.00700", direction, OptionType.PUT, 80.0, START + timedelta(days=60))


@settings(max_examples=100)
@given(trades=valid_ledgers())
def test_net_contracts_identity(trades: list[TradeEvent]) -> None:
    validate_sequence(trades)
    totals = aggregate(trades)
    assert totals.net_contracts == totals.total_opened - totals.total_closed
    assert all(n >= 0 for n in net_contracts_by_prefix(trades))


@settings(max_examples=100)
@given(data=st.data(), trades=valid_ledgers())
def test_avg_entry_independent_of_input_order(data, trades: list[TradeEvent]) -> None:
    shuffled = data.draw(st.permutations(trades))
    opening = [t for t in trades if t.trade_type == "ADD"]
    expected = sum(t.premium * t.contracts for t in opening) / sum(t.contracts for t in opening)
    assert aggregate(shuffled).avg_entry_premium == pytest.approx(expected)
    assert aggregate(shuffled) == aggregate(trades)


@settings(max_examples=100)
@given(
    trades=valid_ledgers(),
    live=st.one_of(st.none(), premiums),
    direction=st.sampled_from([Direction.BUY, Direction.SELL]),
)
def test_pnl_identities_hold_exactly(trades, live, direction) -> None:
    s = compute_summary(_position(direction), trades, live)
    assert s.realized_pnl + s.unrealized_pnl == s.gross_pnl
    assert s.gross_pnl - s.total_fees == s.net_pnl


@settings(max_examples=100)
@given(trades=valid_ledgers(), live=premiums)
def test_summary_idempotent(trades, live) -> None:
    position = _position(Direction.SELL)
    assert compute_summary(position, trades, live) == compute_summary(position, list(trades), live)


@settings(max_examples=100)
@given(trades=valid_ledgers(close_out=True), direction=st.sampled_from([Direction.BUY, Direction.SELL]))
def test_realized_methods_agree_when_flat(trades, direction) -> None:
    assert aggregate(trades).net_contracts == 0
    assert realized_methods_agree(trades, direction, abs_tol=1e-4)


@settings(max_examples=100)
@given(
    code=st.integers(min_value=1, max_value=99999).map(str),
    form=st.sampled_from(["{c}", "HK.{c}", "{c}.HK", "hk{c}", "{c}hk"]),
)
def test_normalize_idempotent(code: str, form: str) -> None:
    once = normalize_symbol(form.format(c=code))
    assert once == f"HK.{code.zfill(5)}"
    assert normalize_symbol(once) == once

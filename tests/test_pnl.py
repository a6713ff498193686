"""Tests for the PNL calculator: realized replay, unrealized, summary fields."""


import pytest

from config.pnl_config import AnnualizationConfig, PnlConfig
from conftest import make_trade
from pnl_core.contracts import Direction, PositionSummary
from pnl_core.ledger import TradeValidationError
from pnl_core.pnl import (
    compute_summary,
    final_average_realized_pnl,
    realized_legs,
    realized_methods_agree,
    realized_pnl,
)


# ---------------------------------------------------------------------------
# Realized PNL (running average replay)
# ---------------------------------------------------------------------------


class TestRealized:
    def test_scenario_c_reduce(self, scenario_trades) -> None:
        # avg 2.3125 after the ADD; (2.3125 - 1.00) x 4 x 500
        assert realized_pnl(scenario_trades, Direction.SELL) == pytest.approx(2625.0)

    def test_no_closing_trades(self) -> None:
        assert realized_pnl([make_trade("OPEN", 5, 2.5)], Direction.SELL) == 0.0

    def test_buy_side_sign(self) -> None:
        trades = [make_trade("OPEN", 2, 1.0, 1), make_trade("CLOSE", 2, 1.5, 2)]
        assert realized_pnl(trades, Direction.BUY) == pytest.approx(500.0)
        assert realized_pnl(trades, Direction.SELL) == pytest.approx(-500.0)

    def test_leg_uses_basis_at_time_of_close(self) -> None:
        trades = [
            make_trade("OPEN", 4, 2.0, 1),
            make_trade("REDUCE", 2, 1.0, 2),
            make_trade("ADD", 2, 4.0, 3),
            make_trade("REDUCE", 2, 1.0, 4),
        ]
        legs = realized_legs(trades, Direction.SELL)
        assert [leg.entry_basis for leg in legs] == pytest.approx([2.0, 3.0])
        assert [leg.pnl for leg in legs] == pytest.approx([1000.0, 2000.0])

    def test_basis_resets_when_flat(self) -> None:
        trades = [
            make_trade("OPEN", 2, 1.0, 1),
            make_trade("REDUCE", 2, 0.5, 2),
            make_trade("ADD", 2, 3.0, 3),
            make_trade("REDUCE", 2, 2.0, 4),
        ]
        legs = realized_legs(trades, Direction.SELL)
        assert legs[1].entry_basis == pytest.approx(3.0)
        assert sum(leg.pnl for leg in legs) == pytest.approx(1500.0)

    def test_leg_records_fee(self) -> None:
        trades = [make_trade("OPEN", 2, 1.0, 1, fee=10.0), make_trade("CLOSE", 2, 0.4, 2, fee=8.0)]
        (leg,) = realized_legs(trades, Direction.SELL)
        assert leg.pnl == pytest.approx(600.0)
        assert leg.fee == 8.0
        assert leg.net_pnl == pytest.approx(592.0)


# ---------------------------------------------------------------------------
# compute_summary
# ---------------------------------------------------------------------------


class TestSummary:
    def test_scenario_with_live_price(self, sell_put, scenario_trades) -> None:
        s = compute_summary(sell_put, scenario_trades, 1.5)
        assert s.net_contracts == 4
        assert s.avg_entry_premium == pytest.approx(2.3125)
        assert s.total_premium == pytest.approx(9250.0)
        assert s.realized_pnl == pytest.approx(2625.0)
        assert s.unrealized_pnl == pytest.approx((2.3125 - 1.5) * 4 * 500)
        assert s.gross_pnl == pytest.approx(4250.0)
        assert s.net_pnl == pytest.approx(4250.0)
        assert s.return_percentage == pytest.approx(4250.0 / 9250.0 * 100)
        assert s.market_value == pytest.approx(3000.0)

    def test_breakeven_for_sell(self, sell_put, scenario_trades) -> None:
        s = compute_summary(sell_put, scenario_trades)
        assert s.breakeven_cost == pytest.approx(80 * 4 * 500 - 9250.0)

    def test_annualized_for_sell(self, sell_put, scenario_trades) -> None:
        s = compute_summary(sell_put, scenario_trades)
        received = 6250.0 + 3000.0 - 2000.0
        capital = 80 * 4 * 500
        days = 27  # 2025-03-01 -> 2025-03-28
        assert s.annualized_return == pytest.approx(received / capital * (365 / days) * 100)

    def test_annualized_scaled_by_margin(self, sell_put) -> None:
        trades = [make_trade("OPEN", 2, 1.0, 1, margin=25.0)]
        s = compute_summary(sell_put, trades)
        assert s.annualized_return == pytest.approx(1000.0 / (80 * 2 * 500 * 0.25) * (365 / 27) * 100)
        assert s.total_margin == pytest.approx(2 * 500 * 80 * 0.25)

    def test_annualized_min_holding_days(self, sell_put) -> None:
        cfg = PnlConfig(annualization=AnnualizationConfig(days_per_year=365, min_holding_days=7))
        trades = [make_trade("OPEN", 1, 1.0, 27)]
        s = compute_summary(sell_put, trades, config=cfg)
        assert s.annualized_return == pytest.approx(500.0 / 40000.0 * (365 / 7) * 100)

    def test_annualized_none_when_flat(self, sell_put) -> None:
        trades = [make_trade("OPEN", 2, 1.0, 1), make_trade("CLOSE", 2, 0.5, 2)]
        assert compute_summary(sell_put, trades).annualized_return is None

    def test_buy_position(self, buy_call) -> None:
        trades = [make_trade("OPEN", 2, 5.0, 1, shares=100)]
        s = compute_summary(buy_call, trades, 7.0)
        assert s.unrealized_pnl == pytest.approx(400.0)
        assert s.breakeven_cost is None
        assert s.annualized_return is None
        assert s.market_value == pytest.approx(1400.0)

    def test_fees_subtracted_once(self, sell_put) -> None:
        trades = [make_trade("OPEN", 2, 1.0, 1, fee=10.0), make_trade("CLOSE", 2, 0.4, 2, fee=10.0)]
        s = compute_summary(sell_put, trades)
        assert s.realized_pnl == pytest.approx(600.0)
        assert s.total_fees == pytest.approx(20.0)
        assert s.net_pnl == pytest.approx(580.0)

    def test_empty_trade_list(self, sell_put) -> None:
        s = compute_summary(sell_put, [])
        assert s.net_contracts == 0
        assert s.realized_pnl == 0.0
        assert s.unrealized_pnl == 0.0
        assert s.net_pnl == 0.0
        assert s.return_percentage == 0.0
        assert s.market_value is None
        assert s.annualized_return is None

    def test_no_live_price(self, sell_put, scenario_trades) -> None:
        s = compute_summary(sell_put, scenario_trades)
        assert s.unrealized_pnl == 0.0
        assert s.market_value is None
        assert s.gross_pnl == pytest.approx(s.realized_pnl)

    def test_previous_market_value_retained(self, sell_put, scenario_trades) -> None:
        previous = PositionSummary(market_value=1234.5)
        s = compute_summary(sell_put, scenario_trades, previous=previous)
        assert s.market_value == 1234.5

    def test_live_price_wins_over_previous(self, sell_put, scenario_trades) -> None:
        previous = PositionSummary(market_value=1234.5)
        s = compute_summary(sell_put, scenario_trades, 1.0, previous=previous)
        assert s.market_value == pytest.approx(2000.0)

    def test_invalid_ledger_raises(self, sell_put) -> None:
        with pytest.raises(TradeValidationError):
            compute_summary(sell_put, [make_trade("OPEN", 1, 1.0, 1), make_trade("REDUCE", 2, 0.5, 2)])

    def test_idempotent(self, sell_put, scenario_trades) -> None:
        assert compute_summary(sell_put, scenario_trades, 1.2) == compute_summary(sell_put, scenario_trades, 1.2)

    def test_shares_per_contract_from_trades(self, sell_put) -> None:
        trades = [make_trade("OPEN", 1, 2.0, 1, shares=100)]
        s = compute_summary(sell_put, trades, 1.0)
        assert s.total_premium == pytest.approx(200.0)
        assert s.unrealized_pnl == pytest.approx(100.0)

    def test_to_dict_keys_and_rounding(self, sell_put, scenario_trades) -> None:
        d = compute_summary(sell_put, scenario_trades, 1.5).to_dict(2)
        assert d["netContracts"] == 4
        assert d["realizedPNL"] == 2625.0
        assert d["returnPercentage"] == 45.95
        for key in (
            "totalOpened", "totalClosed", "avgEntryPremium", "totalFees", "totalPremium",
            "unrealizedPNL", "grossPNL", "netPNL", "marketValue", "breakevenCost", "annualizedReturn",
        ):
            assert key in d


# ---------------------------------------------------------------------------
# Running average vs final average shortcut
# ---------------------------------------------------------------------------


class TestRealizedMethods:
    def test_agree_when_opens_precede_closes(self) -> None:
        trades = [
            make_trade("OPEN", 5, 2.5, 1),
            make_trade("ADD", 3, 2.0, 5),
            make_trade("REDUCE", 4, 1.0, 10),
        ]
        assert realized_methods_agree(trades, Direction.SELL)

    def test_agree_on_flat_ledger(self) -> None:
        trades = [
            make_trade("OPEN", 4, 2.0, 1),
            make_trade("REDUCE", 2, 1.0, 2),
            make_trade("ADD", 2, 4.0, 3),
            make_trade("CLOSE", 4, 1.0, 4),
        ]
        assert realized_pnl(trades, Direction.SELL) == pytest.approx(5000.0)
        assert final_average_realized_pnl(trades, Direction.SELL) == pytest.approx(5000.0)
        assert realized_methods_agree(trades, Direction.SELL)

    def test_diverge_after_add_following_partial_close(self) -> None:
        trades = [
            make_trade("OPEN", 4, 2.0, 1),
            make_trade("REDUCE", 2, 1.0, 2),
            make_trade("ADD", 2, 4.0, 3),
        ]
        assert realized_pnl(trades, Direction.SELL) == pytest.approx(1000.0)
        assert final_average_realized_pnl(trades, Direction.SELL) == pytest.approx((16 / 6 - 1.0) * 2 * 500)
        assert not realized_methods_agree(trades, Direction.SELL)

    def test_shortcut_zero_without_closes(self) -> None:
        assert final_average_realized_pnl([make_trade("OPEN", 1, 1.0)], Direction.SELL) == 0.0

"""Tests for the ledger fingerprint and the summary LRU cache."""

from dataclasses import replace

import pytest

from conftest import make_trade
from pnl_core.cache import SummaryCache, ledger_fingerprint
from pnl_core.pnl import compute_summary


def test_fingerprint_order_independent(sell_put, scenario_trades) -> None:
    a = ledger_fingerprint(sell_put, scenario_trades, 1.0)
    b = ledger_fingerprint(sell_put, list(reversed(scenario_trades)), 1.0)
    assert a == b
    assert len(a) == 64


def test_fingerprint_changes_with_inputs(sell_put, scenario_trades) -> None:
    base = ledger_fingerprint(sell_put, scenario_trades, 1.0)
    assert ledger_fingerprint(sell_put, scenario_trades, 1.1) != base
    assert ledger_fingerprint(replace(sell_put, strike=85.0), scenario_trades, 1.0) != base
    changed = [*scenario_trades[:-1], replace(scenario_trades[-1], fee=1.0)]
    assert ledger_fingerprint(sell_put, changed, 1.0) != base


def test_cache_hit_and_miss(sell_put, scenario_trades) -> None:
    cache = SummaryCache(maxsize=4)
    first = cache.get_summary(sell_put, scenario_trades, 1.5)
    second = cache.get_summary(sell_put, scenario_trades, 1.5)
    assert first is second
    assert (cache.hits, cache.misses) == (1, 1)
    assert first == compute_summary(sell_put, scenario_trades, 1.5)


def test_cache_evicts_oldest(sell_put, scenario_trades) -> None:
    cache = SummaryCache(maxsize=2)
    for price in (1.0, 1.1, 1.2):
        cache.get_summary(sell_put, scenario_trades, price)
    assert len(cache) == 2
    cache.get_summary(sell_put, scenario_trades, 1.0)
    assert cache.misses == 4


def test_cache_rejects_bad_size() -> None:
    with pytest.raises(ValueError):
        SummaryCache(maxsize=0)


def test_new_trade_is_a_miss(sell_put) -> None:
    cache = SummaryCache()
    trades = [make_trade("OPEN", 2, 1.0, 1)]
    cache.get_summary(sell_put, trades)
    cache.get_summary(sell_put, [*trades, make_trade("ADD", 1, 1.2, 2)])
    assert cache.misses == 2

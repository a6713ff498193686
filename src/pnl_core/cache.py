"""Summary cache keyed by a hash of the full ledger contents."""

from __future__ import annotations

import hashlib
import json
from collections import OrderedDict
from dataclasses import asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable

from config.pnl_config import PnlConfig
from pnl_core.contracts import OptionPosition, PositionSummary, TradeEvent
from pnl_core.ledger import sort_trades
from pnl_core.pnl import compute_summary


def _default(obj: Any) -> Any:
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Cannot serialize {type(obj).__name__}")


def ledger_fingerprint(
    position: OptionPosition,
    trades: Iterable[TradeEvent],
    live_price: float | None = None,
) -> str:
    """SHA-256 of a canonical JSON rendering; trade order does not matter."""
    payload = {
        "position": asdict(position),
        "trades": [asdict(t) for t in sort_trades(trades)],
        "live_price": live_price,
    }
    text = json.dumps(payload, sort_keys=True, default=_default, separators=(",", ":"))
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class SummaryCache:
    """Bounded LRU of PositionSummary by ledger fingerprint.

    Any change to the position, a trade or the live price yields a new key,
    so entries never need explicit invalidation.
    """

    def __init__(self, maxsize: int = 256, config: PnlConfig | None = None) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.maxsize = maxsize
        self._config = config
        self._entries: OrderedDict[str, PositionSummary] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get_summary(
        self,
        position: OptionPosition,
        trades: Iterable[TradeEvent],
        live_price: float | None = None,
    ) -> PositionSummary:
        trade_list = list(trades)
        key = ledger_fingerprint(position, trade_list, live_price)
        cached = self._entries.get(key)
        if cached is not None:
            self._entries.move_to_end(key)
            self.hits += 1
            return cached

        self.misses += 1
        summary = compute_summary(position, trade_list, live_price, config=self._config)
        self._entries[key] = summary
        if len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)
        return summary

    def clear(self) -> None:
        self._entries.clear()

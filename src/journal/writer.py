"""
Position journal: append-only JSON lines. One line per ledger change or refresh.
"""

import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


def _serialize(obj: Any) -> Any:
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return {k: _serialize(v) for k, v in asdict(obj).items()}
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout

    @property
    def path(self) -> Path:
        return self._path

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def position_opened(self, position_id: str, symbol: str, direction: str, option_type: str, strike: float, expiry: date, **extra: Any) -> None:
        self._write(
            "position_opened",
            {"position_id": position_id, "symbol": symbol, "direction": direction, "option_type": option_type, "strike": strike, "expiry": expiry, **extra},
        )

    def trade(self, position_id: str, trade_id: str, trade_type: str, contracts: int, premium: float, fee: float, trade_date: date | datetime, **extra: Any) -> None:
        self._write(
            "trade",
            {"position_id": position_id, "trade_id": trade_id, "trade_type": trade_type, "contracts": contracts, "premium": premium, "fee": fee, "trade_date": trade_date, **extra},
        )

    def trade_removed(self, position_id: str, trade_id: str, **extra: Any) -> None:
        self._write("trade_removed", {"position_id": position_id, "trade_id": trade_id, **extra})

    def status_change(self, position_id: str, previous: str, new: str, reference_price: float | None = None, **extra: Any) -> None:
        self._write("status_change", {"position_id": position_id, "previous": previous, "new": new, "reference_price": reference_price, **extra})

    def refresh(self, records: list, **extra: Any) -> None:
        self._write("refresh", {"count": len(records), "records": [r.to_dict() for r in records], **extra})

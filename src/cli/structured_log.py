"""
Structured JSON event logger for the refresh loop and ledger commands.

Emits one JSON object per line to stderr so the output can be shipped to a
log aggregator as-is.

Optional webhook: when configured, alert events (trade_rejected,
status_changed, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("optitrack.events")

ALERT_EVENTS = frozenset({"trade_rejected", "status_changed", "error"})


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        market: str,
        *,
        enabled: bool = True,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._market = market
        self._enabled = enabled
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "market": self._market,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def refresh_start(self, positions: int) -> dict:
        return self._emit("refresh_start", positions=positions)

    def refresh_complete(self, refreshed: int, skipped: int) -> dict:
        return self._emit("refresh_complete", refreshed=refreshed, skipped=skipped)

    def trade_recorded(self, position_id: str, trade_type: str, contracts: int, status: str) -> dict:
        return self._emit(
            "trade_recorded",
            position_id=position_id,
            trade_type=trade_type,
            contracts=contracts,
            status=status,
        )

    def trade_rejected(self, reason: str, position_id: str | None = None) -> dict:
        return self._emit("trade_rejected", reason=reason, position_id=position_id)

    def status_changed(
        self,
        position_id: str,
        previous: str,
        new: str,
        reference_price: float | None = None,
    ) -> dict:
        return self._emit(
            "status_changed",
            position_id=position_id,
            previous=previous,
            new=new,
            reference_price=reference_price,
        )

    def market_closed(self, next_open: str, wait_hours: float) -> dict:
        return self._emit(
            "market_closed",
            next_open=next_open,
            wait_hours=round(wait_hours, 1),
        )

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)

    def shutdown(self, cycles: int) -> dict:
        return self._emit("shutdown", cycles=cycles)

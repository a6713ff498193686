"""Tests for structured JSON event logger."""

import io
import json
from unittest.mock import patch

import pytest

from cli.structured_log import ALERT_EVENTS, StructuredEventLogger


@pytest.fixture
def buf() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(buf: io.StringIO) -> StructuredEventLogger:
    return StructuredEventLogger("HK", enabled=True, stream=buf)


class TestEmit:
    """Basic event emission and format."""

    def test_refresh_start_json(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.refresh_start(positions=3)
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "refresh_start"
        assert record["market"] == "HK"
        assert record["positions"] == 3
        assert "ts" in record

    def test_refresh_complete(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.refresh_complete(refreshed=2, skipped=1)
        record = json.loads(buf.getvalue().strip())
        assert record["refreshed"] == 2
        assert record["skipped"] == 1

    def test_trade_rejected(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.trade_rejected("CLOSE must close all 4 open contracts", position_id="p1")
        record = json.loads(buf.getvalue().strip())
        assert record["event"] == "trade_rejected"
        assert record["position_id"] == "p1"

    def test_status_changed(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.status_changed("p1", "Expired", "Lapsed", 85.0)
        record = json.loads(buf.getvalue().strip())
        assert (record["previous"], record["new"], record["reference_price"]) == ("Expired", "Lapsed", 85.0)

    def test_market_closed_rounds_hours(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.market_closed("2026-02-17T09:30:00+08:00", 15.4567)
        assert json.loads(buf.getvalue().strip())["wait_hours"] == 15.5

    def test_one_line_per_event(self, logger: StructuredEventLogger, buf: io.StringIO) -> None:
        logger.refresh_start(1)
        logger.error("boom", detail="quote file missing")
        logger.shutdown(cycles=4)
        lines = buf.getvalue().strip().split("\n")
        assert [json.loads(line)["event"] for line in lines] == ["refresh_start", "error", "shutdown"]

    def test_disabled_writes_nothing(self, buf: io.StringIO) -> None:
        quiet = StructuredEventLogger("HK", enabled=False, stream=buf)
        record = quiet.refresh_start(1)
        assert buf.getvalue() == ""
        assert record["event"] == "refresh_start"


class TestWebhook:
    def test_alert_events(self) -> None:
        assert ALERT_EVENTS == {"trade_rejected", "status_changed", "error"}

    def test_posts_alert_events_only(self, buf: io.StringIO) -> None:
        log = StructuredEventLogger("HK", stream=buf, webhook_url="https://hooks.example.com/x")
        with patch("cli.structured_log.urllib.request.urlopen") as urlopen:
            log.refresh_start(1)
            log.trade_rejected("bad trade")
        assert urlopen.call_count == 1

    def test_webhook_failure_logged(self, buf: io.StringIO, caplog: pytest.LogCaptureFixture) -> None:
        log = StructuredEventLogger("HK", stream=buf, webhook_url="https://hooks.example.com/x")
        with patch("cli.structured_log.urllib.request.urlopen", side_effect=OSError("refused")):
            log.error("boom")
        assert "Webhook POST failed" in caplog.text
        assert json.loads(buf.getvalue().strip())["event"] == "error"

"""
Config loader: YAML file -> frozen dataclass tree.

Paths can be overridden from the environment (OPTITRACK_STORE_PATH,
OPTITRACK_QUOTES_PATH) so the same config.yaml works across machines.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

STORE_PATH_ENV = "OPTITRACK_STORE_PATH"
QUOTES_PATH_ENV = "OPTITRACK_QUOTES_PATH"

_QUOTE_SOURCES = ("file", "mock")
_MARKETS = ("HK", "US")


@dataclass(frozen=True)
class StoreConfig:
    path: str = "data/optitrack.db"


@dataclass(frozen=True)
class QuotesConfig:
    source: str = "file"
    path: str = "data/quotes.json"


@dataclass(frozen=True)
class RefreshConfig:
    interval_seconds: int = 5
    market: str = "HK"


@dataclass(frozen=True)
class JournalConfig:
    path: str = "data/journal.jsonl"
    echo_stdout: bool = False


@dataclass(frozen=True)
class AlertingConfig:
    structured_logs: bool = True
    webhook_url: str = ""


@dataclass(frozen=True)
class AppConfig:
    store: StoreConfig = StoreConfig()
    quotes: QuotesConfig = QuotesConfig()
    refresh: RefreshConfig = RefreshConfig()
    journal: JournalConfig = JournalConfig()
    alerting: AlertingConfig = AlertingConfig()
    pnl_config_path: str = ""


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """
    Load configuration from a YAML file.

    Environment overrides:
      - OPTITRACK_STORE_PATH   -> store.path
      - OPTITRACK_QUOTES_PATH  -> quotes.path
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    s_raw = raw.get("store", {})
    store_cfg = StoreConfig(
        path=os.environ.get(STORE_PATH_ENV) or s_raw.get("path", "data/optitrack.db"),
    )

    q_raw = raw.get("quotes", {})
    source = str(q_raw.get("source", "file")).lower()
    if source not in _QUOTE_SOURCES:
        raise ValueError(f"quotes.source must be one of {_QUOTE_SOURCES}, got {source!r}")
    quotes_cfg = QuotesConfig(
        source=source,
        path=os.environ.get(QUOTES_PATH_ENV) or q_raw.get("path", "data/quotes.json"),
    )

    r_raw = raw.get("refresh", {})
    interval = int(r_raw.get("interval_seconds", 5))
    if not 5 <= interval <= 30:
        raise ValueError(f"refresh.interval_seconds must be between 5 and 30, got {interval}")
    market = str(r_raw.get("market", "HK")).upper()
    if market not in _MARKETS:
        raise ValueError(f"refresh.market must be one of {_MARKETS}, got {market!r}")
    refresh_cfg = RefreshConfig(interval_seconds=interval, market=market)

    j_raw = raw.get("journal", {})
    j_cfg = JournalConfig(
        path=j_raw.get("path", "data/journal.jsonl"),
        echo_stdout=bool(j_raw.get("echo_stdout", False)),
    )

    a_raw = raw.get("alerting", {})
    a_cfg = AlertingConfig(
        structured_logs=bool(a_raw.get("structured_logs", True)),
        webhook_url=str(a_raw.get("webhook_url", "")),
    )

    return AppConfig(
        store=store_cfg,
        quotes=quotes_cfg,
        refresh=refresh_cfg,
        journal=j_cfg,
        alerting=a_cfg,
        pnl_config_path=str(raw.get("pnl_config_path", "") or ""),
    )

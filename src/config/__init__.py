"""
Configuration loaders.

App config:  reads config.yaml, resolves path overrides from the environment.
PNL config:  reads pnl.default.json (or override), validates against JSON Schema.
"""

from config.loader import (
    AlertingConfig,
    AppConfig,
    JournalConfig,
    QuotesConfig,
    RefreshConfig,
    StoreConfig,
    load_config,
)
from config.pnl_config import (
    AnnualizationConfig,
    ContractsConfig,
    DisplayConfig,
    PnlConfig,
    PnlConfigError,
    SymbolsConfig,
    load_pnl_config,
)

__all__ = [
    # App config (YAML)
    "AlertingConfig",
    "AppConfig",
    "JournalConfig",
    "QuotesConfig",
    "RefreshConfig",
    "StoreConfig",
    "load_config",
    # PNL config (JSON + schema)
    "AnnualizationConfig",
    "ContractsConfig",
    "DisplayConfig",
    "PnlConfig",
    "PnlConfigError",
    "SymbolsConfig",
    "load_pnl_config",
]

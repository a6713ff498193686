"""
PNL engine config loader: JSON file -> frozen dataclass tree, validated against JSON Schema.

Default values:      docs/config/pnl.default.json
Schema:              docs/config/pnl_config.schema.json

Per-market overrides: place a partial JSON file named ``pnl.{MARKET}.json``
next to the default config (e.g. ``docs/config/pnl.US.json``). Only the
keys you want to override need to be present; they are deep-merged on top
of the base config before schema validation.

Usage:
    from config.pnl_config import load_pnl_config
    cfg = load_pnl_config()                        # loads default
    cfg = load_pnl_config(market="US")             # merges pnl.US.json if present
    cfg.contracts.default_shares_per_contract      # -> 500
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema

logger = logging.getLogger("optitrack.config")

# ---------------------------------------------------------------------------
# Project root detection (walk up from this file to find pyproject.toml)
# ---------------------------------------------------------------------------


def _find_project_root() -> Path:
    """Walk up from this file looking for pyproject.toml.

    When running from source, finds the repo root.  When installed as a
    package, pyproject.toml won't exist; fall back to CWD.
    """
    candidate = Path(__file__).resolve().parent
    for _ in range(10):
        if (candidate / "pyproject.toml").exists():
            return candidate
        parent = candidate.parent
        if parent == candidate:
            break
        candidate = parent
    return Path.cwd()


_PROJECT_ROOT = _find_project_root()

DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "docs" / "config" / "pnl.default.json"
DEFAULT_SCHEMA_PATH = _PROJECT_ROOT / "docs" / "config" / "pnl_config.schema.json"


# ---------------------------------------------------------------------------
# Frozen dataclass tree (mirrors pnl.default.json; defaults equal the file)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContractsConfig:
    default_shares_per_contract: int = 500  # HKEX board lot for most stock options


@dataclass(frozen=True)
class AnnualizationConfig:
    days_per_year: int = 365
    min_holding_days: int = 1


@dataclass(frozen=True)
class DisplayConfig:
    decimals: int = 2
    currency: str = "HKD"


@dataclass(frozen=True)
class SymbolsConfig:
    default_market: str = "HK"   # "HK" | "US" | "SH" | "SZ"
    code_width: int = 5          # zero-pad width for numeric HK codes


@dataclass(frozen=True)
class PnlConfig:
    """Top-level engine configuration. Defaults allow use without loading a file."""
    version: str = "0.1"
    contracts: ContractsConfig = ContractsConfig()
    annualization: AnnualizationConfig = AnnualizationConfig()
    display: DisplayConfig = DisplayConfig()
    symbols: SymbolsConfig = SymbolsConfig()


# ---------------------------------------------------------------------------
# Deep merge for per-market overrides
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base*.

    - Dict values are merged recursively (override keys win).
    - Non-dict values in overrides replace the base value.
    - Keys in base that are absent from overrides are preserved.
    """
    merged = dict(base)
    for key, val in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(val, dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class PnlConfigError(Exception):
    """Raised when engine config loading or validation fails."""


def _validate_schema(data: dict[str, Any], schema_path: Path) -> None:
    """Validate *data* against the JSON Schema at *schema_path*."""
    if not schema_path.exists():
        raise PnlConfigError(f"Schema file not found: {schema_path}")
    with open(schema_path) as f:
        schema = json.load(f)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        raise PnlConfigError(f"PNL config validation failed: {exc.message}") from exc


def _build_config(data: dict[str, Any]) -> PnlConfig:
    """Convert a raw dict (already validated) into the frozen dataclass tree."""
    return PnlConfig(
        version=data["version"],
        contracts=ContractsConfig(
            default_shares_per_contract=data["contracts"]["default_shares_per_contract"],
        ),
        annualization=AnnualizationConfig(
            days_per_year=data["annualization"]["days_per_year"],
            min_holding_days=data["annualization"]["min_holding_days"],
        ),
        display=DisplayConfig(
            decimals=data["display"]["decimals"],
            currency=data["display"]["currency"],
        ),
        symbols=SymbolsConfig(
            default_market=data["symbols"]["default_market"],
            code_width=data["symbols"]["code_width"],
        ),
    )


def load_pnl_config(
    config_path: str | Path | None = None,
    schema_path: str | Path | None = None,
    market: str | None = None,
) -> PnlConfig:
    """Load and validate engine configuration.

    Parameters
    ----------
    config_path:
        Path to a JSON config file.  Defaults to ``docs/config/pnl.default.json``.
    schema_path:
        Path to the JSON Schema file.  Defaults to ``docs/config/pnl_config.schema.json``.
    market:
        Optional market code (HK, US, SH, SZ).  When provided, the loader
        looks for ``pnl.{MARKET}.json`` in the same directory as the base
        config and deep-merges it before validation.  A missing override
        file is not an error.

    Raises
    ------
    PnlConfigError
        If the file is missing, unparseable, or fails schema validation.
    """
    cfg_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    sch_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    if not cfg_path.exists():
        raise PnlConfigError(f"PNL config file not found: {cfg_path}")

    try:
        with open(cfg_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise PnlConfigError(f"PNL config is not valid JSON: {exc}") from exc

    if market:
        override_path = cfg_path.parent / f"pnl.{market.upper()}.json"
        if override_path.exists():
            try:
                with open(override_path) as f:
                    overrides = json.load(f)
            except json.JSONDecodeError as exc:
                raise PnlConfigError(
                    f"Per-market config {override_path.name} is not valid JSON: {exc}"
                ) from exc
            data = _deep_merge(data, overrides)
            logger.info("Loaded per-market config: %s", override_path.name)
        else:
            logger.debug("No per-market config found at %s, using defaults", override_path)

    _validate_schema(data, sch_path)

    return _build_config(data)

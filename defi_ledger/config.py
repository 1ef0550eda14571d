"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .core import AssetType, to_decimal
from .pricing_source import DEFAULT_PRICES
from .scheduler import DEFAULT_TICK_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PersistenceConfig:
    enabled: bool = True
    snapshot_path: str = "defi_ledger_snapshot.json"


@dataclass(frozen=True)
class AccrualConfig:
    tick_interval_seconds: float = DEFAULT_TICK_INTERVAL_SECONDS


@dataclass(frozen=True)
class RWAConfig:
    auto_verify: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    accrual: AccrualConfig = field(default_factory=AccrualConfig)
    rwa: RWAConfig = field(default_factory=RWAConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    prices: dict[AssetType, Decimal] = field(default_factory=lambda: dict(DEFAULT_PRICES))

    @property
    def snapshot_path(self) -> str | None:
        """Where to load and save the Store, or None when persistence is off."""
        return self.persistence.snapshot_path if self.persistence.enabled else None


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any) -> bool:
    # Interpolated values arrive as strings ("${LEDGER_PERSIST}" -> "false").
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1", "on"):
            return True
        if lowered in ("false", "no", "0", "off", ""):
            return False
        raise ValueError(f"Expected a boolean, got {value!r}")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML -> dataclass builders
# ---------------------------------------------------------------------------


def _build_persistence(raw: dict[str, Any]) -> PersistenceConfig:
    return PersistenceConfig(
        enabled=_as_bool(raw.get("enabled", True)),
        snapshot_path=str(raw.get("snapshot_path", PersistenceConfig.snapshot_path)),
    )


def _build_accrual(raw: dict[str, Any]) -> AccrualConfig:
    return AccrualConfig(
        tick_interval_seconds=float(
            raw.get("tick_interval_seconds", DEFAULT_TICK_INTERVAL_SECONDS)
        ),
    )


def _build_rwa(raw: dict[str, Any]) -> RWAConfig:
    return RWAConfig(auto_verify=_as_bool(raw.get("auto_verify", True)))


def _build_logging(raw: dict[str, Any]) -> LoggingConfig:
    return LoggingConfig(level=str(raw.get("level", "INFO")).upper())


def _build_prices(raw: dict[str, Any]) -> dict[AssetType, Decimal]:
    prices = dict(DEFAULT_PRICES)
    for symbol, price in raw.items():
        try:
            asset = AssetType(str(symbol).upper())
        except ValueError:
            raise ValueError(f"Unknown asset in prices: {symbol!r}") from None
        prices[asset] = to_decimal(price)
    return prices


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. When omitted, ``config.yaml`` in the
            working directory is used if present, otherwise built-in defaults.

    Raises:
        FileNotFoundError: an explicit config_path does not exist.
        ValueError: a value is out of range or malformed.
    """
    load_dotenv()

    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            logger.info("No %s found, using default configuration", DEFAULT_CONFIG_PATH)
            cfg = AppConfig()
            _validate(cfg)
            return cfg
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        persistence=_build_persistence(raw.get("persistence") or {}),
        accrual=_build_accrual(raw.get("accrual") or {}),
        rwa=_build_rwa(raw.get("rwa") or {}),
        logging=_build_logging(raw.get("logging") or {}),
        prices=_build_prices(raw.get("prices") or {}),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if cfg.accrual.tick_interval_seconds <= 0:
        raise ValueError(
            f"accrual.tick_interval_seconds must be positive, "
            f"got {cfg.accrual.tick_interval_seconds}"
        )
    if cfg.persistence.enabled and not cfg.persistence.snapshot_path:
        raise ValueError("persistence.snapshot_path is required when persistence is enabled")
    if cfg.logging.level not in LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {', '.join(LOG_LEVELS)}")
    for asset, price in cfg.prices.items():
        if not price.is_finite() or price <= 0:
            raise ValueError(f"prices.{asset.value} must be positive, got {price}")

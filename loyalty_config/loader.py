"""
Configuration loader (``loyalty_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the frozen dataclasses of
``loyalty_config.schema``.  Runtime callers go through
``loyalty_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ConfigError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from loyalty_config.schema import DatabaseSettings, LoggingSettings, LoyaltyConfig
from loyalty_kernel.domain.policy import LedgerPolicy, PolicyMode

_SECTIONS = ("ledger", "database", "logging")
_LEVELS = frozenset(logging.getLevelNamesMapping()) - {"NOTSET"}


class ConfigError(ValueError):
    """Invalid configuration value."""


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge; keys in ``override`` win."""
    merged = {section: dict(base.get(section) or {}) for section in _SECTIONS}
    for key, value in override.items():
        if key not in _SECTIONS:
            raise ConfigError(f"Unknown configuration section: {key!r}")
        if value is None:
            continue
        if not isinstance(value, dict):
            raise ConfigError(f"Section {key!r} must be a mapping")
        merged[key].update(value)
    return merged


def _check_keys(section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ConfigError(f"Unknown keys in {section}: {sorted(unknown)}")


def parse_decimal(section: str, key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}") from None


def parse_mode(section: str, key: str, value: Any) -> PolicyMode:
    try:
        return PolicyMode(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in PolicyMode)
        raise ConfigError(f"{section}.{key} must be one of: {allowed}") from None


def parse_int(section: str, key: str, value: Any, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"{section}.{key} must be an integer >= {minimum}, got {value!r}")
    return value


def parse_ledger(data: dict[str, Any]) -> LedgerPolicy:
    """Parse a LedgerPolicy; LedgerPolicy's own checks surface as ConfigError."""
    _check_keys(
        "ledger",
        data,
        {"base_rate", "max_purchase_spent", "redemption_processing", "suspicious_clawback"},
    )
    defaults = LedgerPolicy()
    try:
        return LedgerPolicy(
            base_rate=parse_decimal("ledger", "base_rate", data.get("base_rate", defaults.base_rate)),
            max_purchase_spent=parse_decimal(
                "ledger",
                "max_purchase_spent",
                data.get("max_purchase_spent", defaults.max_purchase_spent),
            ),
            redemption_processing=parse_mode(
                "ledger",
                "redemption_processing",
                data.get("redemption_processing", defaults.redemption_processing.value),
            ),
            suspicious_clawback=parse_mode(
                "ledger",
                "suspicious_clawback",
                data.get("suspicious_clawback", defaults.suspicious_clawback.value),
            ),
        )
    except ConfigError:
        raise
    except ValueError as exc:
        raise ConfigError(f"ledger: {exc}") from None


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    _check_keys(
        "database",
        data,
        {"url", "echo", "pool_size", "max_overflow", "pool_timeout", "pool_recycle"},
    )
    defaults = DatabaseSettings()
    url = data.get("url", defaults.url)
    if not isinstance(url, str) or not url:
        raise ConfigError("database.url must be a non-empty string")
    echo = data.get("echo", defaults.echo)
    if not isinstance(echo, bool):
        raise ConfigError("database.echo must be true or false")
    return DatabaseSettings(
        url=url,
        echo=echo,
        pool_size=parse_int("database", "pool_size", data.get("pool_size", defaults.pool_size), 1),
        max_overflow=parse_int(
            "database", "max_overflow", data.get("max_overflow", defaults.max_overflow)
        ),
        pool_timeout=parse_int(
            "database", "pool_timeout", data.get("pool_timeout", defaults.pool_timeout), 1
        ),
        pool_recycle=parse_int(
            "database", "pool_recycle", data.get("pool_recycle", defaults.pool_recycle), 1
        ),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    _check_keys("logging", data, {"level"})
    level = str(data.get("level", LoggingSettings().level)).upper()
    if level not in _LEVELS:
        raise ConfigError(f"logging.level must be one of: {', '.join(sorted(_LEVELS))}")
    return LoggingSettings(level=level)


def parse_config(
    data: dict[str, Any],
    source: tuple[str, ...] = (),
) -> LoyaltyConfig:
    """Parse a merged configuration dict into a LoyaltyConfig."""
    merged = merge({}, data)
    return LoyaltyConfig(
        ledger=parse_ledger(merged["ledger"]),
        database=parse_database(merged["database"]),
        logging=parse_logging(merged["logging"]),
        source=source,
        checksum=compute_checksum(merged),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

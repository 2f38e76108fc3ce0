"""
loyalty_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration.  It
    merges the packaged ``defaults.yaml`` with an optional override file
    and environment variables and returns a frozen ``LoyaltyConfig``.

Architecture position:
    Configuration -- sits above ``loyalty_kernel``.  The kernel MUST NEVER
    import from ``loyalty_config``; ``bridges`` hands the parsed values to
    kernel entry points.

Environment:
    LOYALTY_CONFIG         path of a YAML override file
    LOYALTY_DATABASE_URL   overrides database.url

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ConfigError`` (a ``ValueError``) -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from loyalty_config.loader import ConfigError, load_yaml_file, merge, parse_config
from loyalty_config.schema import DatabaseSettings, LoggingSettings, LoyaltyConfig

_logger = logging.getLogger("loyalty_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV = "LOYALTY_CONFIG"
DATABASE_URL_ENV = "LOYALTY_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> LoyaltyConfig:
    """The public configuration entrypoint.

    Args:
        path: Override file.  Defaults to ``$LOYALTY_CONFIG`` when set.

    Returns:
        LoyaltyConfig -- frozen; a ``LOYALTY_CONFIG_TRACE`` log entry is
        emitted on every successful call.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    sources = [str(DEFAULTS_PATH)]

    override = path or os.environ.get(CONFIG_ENV)
    if override:
        override_path = Path(override)
        data = merge(data, load_yaml_file(override_path))
        sources.append(str(override_path))

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        data = merge(data, {"database": {"url": env_url}})
        sources.append(f"env:{DATABASE_URL_ENV}")

    config = parse_config(data, source=tuple(sources))

    _logger.info(
        "LOYALTY_CONFIG_TRACE",
        extra={
            "trace_type": "LOYALTY_CONFIG_TRACE",
            "checksum": config.checksum,
            "config_sources": list(config.source),
            "base_rate": config.ledger.base_rate,
            "redemption_processing": config.ledger.redemption_processing,
            "suspicious_clawback": config.ledger.suspicious_clawback,
        },
    )
    return config


__all__ = [
    "ConfigError",
    "DatabaseSettings",
    "LoggingSettings",
    "LoyaltyConfig",
    "get_active_config",
]

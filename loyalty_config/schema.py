"""
LoyaltyConfig schema.

Frozen dataclasses that YAML is parsed into by the loader.  The ledger
section is the kernel's own LedgerPolicy so that no translation layer is
needed at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loyalty_kernel.domain.policy import LedgerPolicy


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings for init_engine_from_url."""

    url: str = "sqlite:///loyalty.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class LoyaltyConfig:
    """
    The runtime configuration.

    ``source`` names the files merged into this config (packaged defaults
    first) and ``checksum`` identifies the merged content.
    """

    ledger: LedgerPolicy = field(default_factory=LedgerPolicy)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: tuple[str, ...] = ()
    checksum: str = ""

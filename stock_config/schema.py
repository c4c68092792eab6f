"""
Stock configuration schema.

Frozen dataclasses the YAML configuration is parsed into.  The loader
builds them; everything else only reads them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the relational store."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class TenantDef:
    """A company served by this installation."""

    code: str
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class StockConfiguration:
    """
    Complete runtime configuration.

    Guarantees:
        - tenant codes are unique (checked by the loader).
        - checksum identifies the source document.
    """

    database: DatabaseConfig
    logging: LoggingConfig
    timezone: str
    tenants: tuple[TenantDef, ...] = field(default_factory=tuple)
    checksum: str = ""

    @property
    def business_timezone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def tenant(self, code: str) -> TenantDef:
        for tenant in self.tenants:
            if tenant.code == code:
                return tenant
        raise KeyError(f"Unknown tenant code {code!r}")

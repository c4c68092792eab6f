"""
stock_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``, and seeds the configured tenants into the
    database with ``seed_tenants()``.

Architecture position:
    Configuration sits above ``stock_kernel``.  The kernel never imports
    from ``stock_config``; callers pass the values it needs (database url,
    tenant ids) explicitly.

Failure modes:
    - ``FileNotFoundError`` -- configuration file missing.
    - ``ValueError`` -- missing required keys, duplicate tenant codes or an
      unknown timezone.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config.loader import load_configuration
from stock_config.schema import DatabaseConfig, LoggingConfig, StockConfiguration, TenantDef
from stock_kernel.logging_config import get_logger

logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "STOCK_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> StockConfiguration:
    """
    The ONLY public configuration entrypoint.

    Resolution order for the file: ``path`` argument, ``STOCK_CONFIG``
    environment variable, packaged default.  ``DATABASE_URL`` overrides
    ``database.url``.
    """
    resolved = Path(path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    config = load_configuration(resolved)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = dataclasses.replace(
            config,
            database=dataclasses.replace(config.database, url=database_url),
        )

    logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "config_path": str(resolved),
            "checksum": config.checksum,
            "tenant_count": len(config.tenants),
            "database_url_overridden": bool(database_url),
        },
    )
    return config


def seed_tenants(session: Session, config: StockConfiguration) -> list:
    """
    Insert configured tenants that do not exist yet (matched by code).

    Existing tenants are left untouched.  Flushes only; the caller commits.

    Returns:
        The newly created Tenant rows.
    """
    from stock_kernel.models.catalog import Tenant

    existing = set(session.execute(select(Tenant.code)).scalars())
    created = []
    for tenant_def in config.tenants:
        if tenant_def.code in existing:
            continue
        tenant = Tenant(
            code=tenant_def.code,
            name=tenant_def.name,
            is_active=tenant_def.is_active,
        )
        session.add(tenant)
        created.append(tenant)
    session.flush()

    logger.info(
        "tenants_seeded",
        extra={"created_codes": [t.code for t in created], "existing_codes": sorted(existing)},
    )
    return created


__all__ = [
    "DatabaseConfig",
    "LoggingConfig",
    "StockConfiguration",
    "TenantDef",
    "get_active_config",
    "seed_tenants",
]

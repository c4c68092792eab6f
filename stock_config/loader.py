"""
Configuration loader (``stock_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen
dataclasses of ``stock_config.schema``.  Runtime callers go through
``stock_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Missing required keys raise ``ValueError`` naming the key; there are no
  silent defaults for required fields.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown timezone  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from stock_config.schema import DatabaseConfig, LoggingConfig, StockConfiguration, TenantDef


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _require(data: dict[str, Any], key: str, context: str) -> Any:
    if not isinstance(data, dict) or data.get(key) in (None, ""):
        raise ValueError(f"Missing required configuration key '{context}{key}'")
    return data[key]


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=str(_require(data, "url", "database.")),
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_logging(data: dict[str, Any] | None) -> LoggingConfig:
    data = data or {}
    return LoggingConfig(level=str(data.get("level", "INFO")).upper())


def parse_tenants(data: list[dict[str, Any]]) -> tuple[TenantDef, ...]:
    """Parse the tenant list; codes must be unique."""
    if not isinstance(data, list) or not data:
        raise ValueError("Configuration key 'tenants' must be a non-empty list")

    tenants = tuple(
        TenantDef(
            code=str(_require(entry, "code", f"tenants[{i}].")),
            name=str(_require(entry, "name", f"tenants[{i}].")),
            is_active=bool(entry.get("is_active", True)),
        )
        for i, entry in enumerate(data)
    )
    codes = [t.code for t in tenants]
    duplicates = sorted({c for c in codes if codes.count(c) > 1})
    if duplicates:
        raise ValueError(f"Duplicate tenant codes: {', '.join(duplicates)}")
    return tenants


def parse_timezone(value: Any) -> str:
    try:
        ZoneInfo(str(value))
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone {value!r}") from None
    return str(value)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_configuration(data: dict[str, Any]) -> StockConfiguration:
    """Parse a whole configuration document."""
    return StockConfiguration(
        database=parse_database(_require(data, "database", "")),
        logging=parse_logging(data.get("logging")),
        timezone=parse_timezone(data.get("timezone", "UTC")),
        tenants=parse_tenants(_require(data, "tenants", "")),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> StockConfiguration:
    return parse_configuration(load_yaml_file(path))

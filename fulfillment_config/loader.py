"""
Configuration Loader (``fulfillment_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into ``EngineSettings``.  The
single public entry point for runtime config is
``fulfillment_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Out-of-range values raise ``ValueError``; numbers that feed Decimal
  arithmetic are parsed from their string form, never through float.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid value  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fulfillment_config.schema import (
    AgingSettings,
    ClaimsSettings,
    EngineSettings,
    RetrySettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name}: expected a number, got {value!r}") from None


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Build ``EngineSettings`` from a parsed YAML mapping.

    Missing sections fall back to schema defaults.

    Raises:
        ValueError: if any value is out of range.
    """
    defaults = EngineSettings()
    warehouses = data.get("warehouses", {})
    quantities = data.get("quantities", {})
    approval = data.get("approval", {})
    retry = data.get("retry", {})
    aging = data.get("aging", {})
    claims = data.get("claims", {})

    settings = EngineSettings(
        config_id=str(data.get("config_id", defaults.config_id)),
        version=int(data.get("version", defaults.version)),
        central_warehouse_type=warehouses.get("central_type", defaults.central_warehouse_type),
        store_warehouse_type=warehouses.get("store_type", defaults.store_warehouse_type),
        quantity_decimal_places=int(
            quantities.get("decimal_places", defaults.quantity_decimal_places)
        ),
        reject_on_zero_fulfillment=bool(
            approval.get("reject_on_zero_fulfillment", defaults.reject_on_zero_fulfillment)
        ),
        min_fill_rate=parse_decimal(
            approval.get("min_fill_rate", defaults.min_fill_rate), "approval.min_fill_rate"
        ),
        retry=RetrySettings(
            max_attempts=int(retry.get("max_attempts", defaults.retry.max_attempts)),
            backoff_seconds=parse_decimal(
                retry.get("backoff_seconds", defaults.retry.backoff_seconds),
                "retry.backoff_seconds",
            ),
        ),
        aging=AgingSettings(
            warning_percent=int(aging.get("warning_percent", defaults.aging.warning_percent)),
            critical_percent=int(aging.get("critical_percent", defaults.aging.critical_percent)),
        ),
        claims=ClaimsSettings(
            window_hours=int(claims.get("window_hours", defaults.claims.window_hours)),
        ),
        checksum=compute_checksum(data),
    )
    validate_settings(settings)
    return settings


def validate_settings(settings: EngineSettings) -> None:
    """Raise ValueError listing every out-of-range value."""
    errors: list[str] = []
    if not 0 <= settings.quantity_decimal_places <= 9:
        errors.append("quantities.decimal_places must be between 0 and 9")
    if not Decimal("0") <= settings.min_fill_rate <= Decimal("1"):
        errors.append("approval.min_fill_rate must be between 0 and 1")
    if settings.retry.max_attempts < 1:
        errors.append("retry.max_attempts must be at least 1")
    if settings.retry.backoff_seconds < 0:
        errors.append("retry.backoff_seconds must not be negative")
    if not 0 <= settings.aging.critical_percent < settings.aging.warning_percent <= 100:
        errors.append("aging requires 0 <= critical_percent < warning_percent <= 100")
    if settings.claims.window_hours < 0:
        errors.append("claims.window_hours must not be negative")
    if settings.central_warehouse_type == settings.store_warehouse_type:
        errors.append("warehouses.central_type and store_type must differ")
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

"""
Configuration schema (``fulfillment_config.schema``).

Frozen dataclasses for engine settings.  Parsed from YAML by
``fulfillment_config.loader``; consumed by ``fulfillment_services``.
The kernel never imports this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class RetrySettings:
    """Whole-operation retry on ConflictRetryableError."""

    max_attempts: int = 3
    backoff_seconds: Decimal = Decimal("0.05")


@dataclass(frozen=True)
class AgingSettings:
    """Remaining shelf-life percentages for the aging report."""

    warning_percent: int = 50
    critical_percent: int = 20


@dataclass(frozen=True)
class ClaimsSettings:
    """Hours after receipt during which a store may open a manual claim."""

    window_hours: int = 24


@dataclass(frozen=True)
class EngineSettings:
    """
    Runtime settings for the fulfillment engine.

    Guarantees:
        - Immutable once loaded.
        - ``checksum`` identifies the source document.
    """

    config_id: str = "default"
    version: int = 1
    central_warehouse_type: str = "central"
    store_warehouse_type: str = "store_internal"
    quantity_decimal_places: int = 2
    reject_on_zero_fulfillment: bool = True
    min_fill_rate: Decimal = Decimal("0.20")
    retry: RetrySettings = field(default_factory=RetrySettings)
    aging: AgingSettings = field(default_factory=AgingSettings)
    claims: ClaimsSettings = field(default_factory=ClaimsSettings)
    checksum: str = ""

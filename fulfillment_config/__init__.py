"""
fulfillment_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads settings files.

Architecture position:
    Configuration.  Sits above ``fulfillment_kernel`` and below
    ``fulfillment_services``.  The kernel MUST NEVER import from
    ``fulfillment_config``; services pass the relevant values into kernel
    objects (decimal places, clock).

Failure modes:
    - ``FileNotFoundError`` -- settings file missing.
    - ``ValueError`` -- out-of-range values.

Audit relevance:
    Every successful load emits a ``fulfillment_config_loaded`` log entry
    with config_id, version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fulfillment_config.loader import load_yaml_file, parse_settings
from fulfillment_config.schema import (
    AgingSettings,
    ClaimsSettings,
    EngineSettings,
    RetrySettings,
)

_logger = logging.getLogger("fulfillment_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> EngineSettings:
    """
    The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a settings YAML file.
            Defaults to fulfillment_config/sets/default.yaml.

    Returns:
        Frozen EngineSettings.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    settings = parse_settings(load_yaml_file(path))

    _logger.info(
        "fulfillment_config_loaded",
        extra={
            "trace_type": "FULFILLMENT_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "source": str(path),
        },
    )
    return settings


__all__ = [
    "AgingSettings",
    "ClaimsSettings",
    "EngineSettings",
    "RetrySettings",
    "get_active_config",
]

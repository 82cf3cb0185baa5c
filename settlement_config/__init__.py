"""
settlement_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain configuration.
    It returns a frozen ``SettlementConfig`` built from the packaged
    defaults and an optional override file.

Architecture position:
    Configuration sits beside ``settlement_kernel``; the kernel never
    imports from it.  ``settlement_services`` reads it and passes plain
    values (decimal places, timeouts, bucket bounds) down.

Audit relevance:
    Every successful call emits a ``SETTLEMENT_CONFIG_TRACE`` log entry with
    the config id, version and checksum, tying every recorded payment to the
    configuration that governed it.
"""

from __future__ import annotations

from pathlib import Path

from settlement_config.loader import load_config
from settlement_config.schema import (
    AgingConfig,
    AmountConfig,
    LockingConfig,
    PaymentConfig,
    SettlementConfig,
)
from settlement_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_active_config(path: Path | str | None = None) -> SettlementConfig:
    """
    Load and validate the active configuration.

    Args:
        path: Optional YAML file merged over the packaged defaults.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ValueError: a key is unknown or a value is invalid.
    """
    config = load_config(Path(path) if path is not None else None)

    _logger.info(
        "SETTLEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "SETTLEMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "override_path": str(path) if path is not None else None,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "SettlementConfig",
    "AmountConfig",
    "AgingConfig",
    "LockingConfig",
    "PaymentConfig",
]

"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Reads the packaged ``defaults.yaml``, merges an optional override file over
it, and parses the result into the frozen dataclasses of
``settlement_config.schema``.  Runtime code goes through
``settlement_config.get_active_config()`` rather than calling this module.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or an invalid value  -> ``ValueError`` naming
  the offending key.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    AgingConfig,
    AmountConfig,
    LockingConfig,
    PaymentConfig,
    SettlementConfig,
)
from settlement_kernel.domain.values import PaymentMode

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS: dict[str, type] = {
    "amounts": AmountConfig,
    "aging": AgingConfig,
    "locking": LockingConfig,
    "payments": PaymentConfig,
}

_TOP_LEVEL_KEYS = frozenset({"config_id", "version", *_SECTIONS})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``override`` merged in; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; identical data, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_section(name: str, data: Any) -> Any:
    cls = _SECTIONS[name]
    if not isinstance(data, dict):
        raise ValueError(f"{name}: expected a mapping, got {type(data).__name__}")
    known = set(cls.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"{name}: unknown key(s) {', '.join(unknown)}")

    values = dict(data)
    if name == "aging" and "bucket_boundaries" in values:
        values["bucket_boundaries"] = tuple(values["bucket_boundaries"])
    if name == "payments" and "default_mode" in values:
        try:
            values["default_mode"] = PaymentMode(values["default_mode"])
        except ValueError as exc:
            raise ValueError(
                f"payments.default_mode: unknown payment mode {values['default_mode']!r}"
            ) from exc
    return cls(**values)


def parse_config(data: dict[str, Any]) -> SettlementConfig:
    """
    Build a SettlementConfig from a merged dict.

    Raises:
        ValueError: unknown keys or invalid values.
    """
    unknown = sorted(set(data) - _TOP_LEVEL_KEYS)
    if unknown:
        raise ValueError(f"unknown configuration key(s): {', '.join(unknown)}")

    sections = {name: _parse_section(name, data.get(name, {})) for name in _SECTIONS}
    return SettlementConfig(
        config_id=str(data.get("config_id", "settlement-default")),
        version=int(data.get("version", 1)),
        checksum=compute_checksum(data),
        **sections,
    )


def load_config(path: Path | None = None) -> SettlementConfig:
    """Defaults, optionally overridden by the YAML file at ``path``."""
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = deep_merge(data, load_yaml_file(Path(path)))
    return parse_config(data)

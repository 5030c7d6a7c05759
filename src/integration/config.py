"""
Farm configuration loading.

`FarmConfig` lives in the core; this module builds it from YAML documents
or plain mappings. Unknown keys are rejected (fail-closed) so a typo in a
deployment file cannot silently fall back to a default.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from ..core.farm import FarmConfig


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "farm_defaults.yaml"

_CONFIG_KEYS = tuple(f.name for f in fields(FarmConfig))


def _coerce_scale(value: Any) -> Any:
    # YAML has no big-int literal syntax for 10**18; allow "1e18"-style strings.
    if isinstance(value, str):
        text = value.strip().lower()
        if "e" in text:
            mantissa, _, exponent = text.partition("e")
            if mantissa.isdigit() and exponent.isdigit():
                return int(mantissa) * 10 ** int(exponent)
        if text.isdigit():
            return int(text)
    return value


def farm_config_from_dict(data: Mapping[str, Any]) -> FarmConfig:
    """
    Build a FarmConfig from a mapping.

    Raises:
        TypeError: If `data` is not a mapping
        ValueError: On unknown keys or invalid values
    """
    if not isinstance(data, Mapping):
        raise TypeError("farm config must be a mapping")
    unknown = sorted(set(data) - set(_CONFIG_KEYS))
    if unknown:
        raise ValueError(f"unknown farm config keys: {', '.join(map(str, unknown))}")
    kwargs = dict(data)
    if "acc_scale" in kwargs:
        kwargs["acc_scale"] = _coerce_scale(kwargs["acc_scale"])
    return FarmConfig(**kwargs)


def load_farm_config(
    yaml_path: Optional[Union[str, Path]] = None,
    *,
    overrides: Optional[Mapping[str, Any]] = None,
) -> FarmConfig:
    """
    Load a FarmConfig from a YAML file (defaults to the packaged defaults).

    `overrides` are applied on top of the file contents.
    """
    path = Path(yaml_path) if yaml_path is not None else DEFAULT_CONFIG_PATH
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise TypeError(f"{path} must contain a YAML mapping")
    section = data.get("farm", data)
    if not isinstance(section, Mapping):
        raise TypeError(f"{path}: 'farm' section must be a mapping")
    merged = dict(section)
    if overrides:
        merged.update(overrides)
    return farm_config_from_dict(merged)

"""Load WeftConfig from weft.yaml / weft.toml if present.

Merges file config with keyword overrides. Overrides take precedence.
"""

from __future__ import annotations

import tomllib
from dataclasses import fields
from pathlib import Path

import yaml

from weft._errors import ConfigError
from weft.config import WeftConfig

_KNOWN_KEYS = frozenset(f.name for f in fields(WeftConfig))


def load_config(root: Path, **overrides: object) -> WeftConfig:
    """Load WeftConfig from root, optionally merging weft.yaml or weft.toml.

    Looks for weft.yaml, weft.yml, or weft.toml in root. Unknown keys are
    ignored; a file that cannot be parsed raises ConfigError.
    """
    file_config = _read_weft_config(root)
    merged = {**file_config, **overrides}
    try:
        return WeftConfig(**merged)  # type: ignore[arg-type]
    except TypeError as exc:
        msg = f"Invalid weft configuration in {root}: {exc}"
        raise ConfigError(msg) from exc


def _read_weft_config(root: Path) -> dict[str, object]:
    """Read weft config from yaml/toml if present. Returns empty dict otherwise."""
    for name in ("weft.yaml", "weft.yml"):
        path = root / name
        if path.is_file():
            return _parse_yaml(path)
    toml_path = root / "weft.toml"
    if toml_path.is_file():
        return _parse_toml(toml_path)
    return {}


def _parse_yaml(path: Path) -> dict[str, object]:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        msg = f"Cannot parse {path.name}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path.name} must contain a mapping, got {type(data).__name__}"
        raise ConfigError(msg)
    return _flatten_weft_section(data)


def _parse_toml(path: Path) -> dict[str, object]:
    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        msg = f"Cannot parse {path.name}: {exc}"
        raise ConfigError(msg) from exc
    return _flatten_weft_section(data)


def _flatten_weft_section(data: dict[str, object]) -> dict[str, object]:
    """Extract weft.* keys and known top-level keys into one mapping."""
    result: dict[str, object] = {}
    for k, v in data.items():
        if k != "weft" and k in _KNOWN_KEYS:
            result[k] = v
    section = data.get("weft")
    if isinstance(section, dict):
        for k, v in section.items():
            if k in _KNOWN_KEYS:
                result[k] = v
    return result

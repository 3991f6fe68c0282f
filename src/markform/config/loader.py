"""
markform — runtime config loader.

File: src/markform/config/loader.py

Purpose
- Build the effective markform config by layering ``markform.toml``,
  ``MARKFORM_*`` environment variables, and dotted CLI overrides over the
  built-in defaults.

What should be included in this file
- Config file discovery and TOML reading via ``tomllib``.
- Environment overrides for the keys listed in ``schema.ENV_SETTINGS``.
- Deterministic dump of the effective config.

Functional requirements
- Precedence: CLI > env > file > defaults; the merged result is validated
  once, so an error names the offending config path whatever layer set it.
- An explicit config path must exist; the implicit ``./markform.toml`` is
  optional.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Final

from markform.config.schema import ENV_SETTINGS, assert_valid_config, default_config, merge_config

DEFAULT_CONFIG_FILE: Final[str] = "markform.toml"
ENV_PREFIX: Final[str] = "MARKFORM_"


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Effective config for one invocation: CLI > env > file > defaults."""

    layers = (
        read_config_file(find_config_file(config_path), required=config_path is not None),
        env_overrides(os.environ if environ is None else environ),
        dotted_overrides(cli_overrides or {}),
    )
    merged: Mapping[str, object] = default_config()
    for layer in layers:
        merged = merge_config(merged, layer)
    return assert_valid_config(merged)


def find_config_file(config_path: str | Path | None = None) -> Path:
    """``config_path`` when given, else ``markform.toml`` in the working directory."""

    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def read_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def env_name_for_path(path: Iterable[str]) -> str:
    """Environment variable bound to a config path (``MARKFORM_PARSING_DEFAULT_ROLE``)."""

    return ENV_PREFIX + "_".join(part.upper() for part in path)


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Config overlay from the ``MARKFORM_*`` variables present in ``environ``."""

    overlay: dict[str, Any] = {}
    for (section, key), parse in sorted(ENV_SETTINGS.items()):
        env_name = env_name_for_path((section, key))
        raw = environ.get(env_name)
        if raw is None:
            continue
        try:
            value = parse(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {section}.{key} {exc}") from exc
        overlay.setdefault(section, {})[key] = value
    return overlay


def dotted_overrides(overrides: Mapping[str, object]) -> dict[str, Any]:
    """Nest ``{"parsing.default_role": "user"}`` into a config overlay."""

    overlay: dict[str, Any] = {}
    for dotted in sorted(overrides):
        *parents, leaf = [part for part in dotted.split(".") if part] or [""]
        if not leaf:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        cursor = overlay
        for part in parents:
            child = cursor.get(part)
            if not isinstance(child, dict):
                child = cursor[part] = {}
            cursor = child
        cursor[leaf] = overrides[dotted]
    return overlay


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact JSON of ``config`` with sorted keys."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "dotted_overrides",
    "dump_effective_config",
    "env_name_for_path",
    "env_overrides",
    "find_config_file",
    "load_config",
    "read_config_file",
]

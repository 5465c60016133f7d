"""
compliance-workflow — runtime config loader.

Purpose
- Produce the effective configuration for one CLI invocation or embedding
  application from four layers: built-in defaults, ``compliance.toml``,
  ``COMPLIANCE_*`` environment variables and explicit overrides.

Precedence, lowest to highest: defaults, file, selected profile overlay,
environment, overrides. The result is validated after every layer so an error
always names the layer's field path.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from compliance_workflow.config.schema import (
    CONFIG_FIELDS,
    PATH_FIELDS,
    ConfigField,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "compliance.toml"
ENV_PREFIX: Final[str] = "COMPLIANCE_"
PROFILE_ENV: Final[str] = f"{ENV_PREFIX}PROFILE"

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when a config source cannot be read or an override cannot be coerced."""


def env_name(field: ConfigField) -> str:
    """``workflow.min_test_intents_per_item`` -> ``COMPLIANCE_WORKFLOW_MIN_TEST_INTENTS_PER_ITEM``."""
    return f"{ENV_PREFIX}{field.section}_{field.key}".upper()


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load the effective config.

    Without ``config_path`` a ``compliance.toml`` in the working directory is
    used when present; an explicit path must exist. ``cli_overrides`` maps
    dotted field paths to values and may carry ``profile``.
    """

    file_path = _config_file(config_path)
    env = os.environ if environ is None else environ
    overrides = dict(cli_overrides or {})
    active_profile = _select_profile(profile, overrides.pop("profile", None), env.get(PROFILE_ENV))

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(file_path, required=config_path is not None))
    )
    if active_profile is not None:
        config = apply_profile_overlay(config, active_profile)
    config = merge_config(config, _environment_layer(env))
    config = merge_config(config, _override_layer(overrides))
    config = assert_valid_config(config)
    return assert_valid_config(normalize_paths(config, base_dir=file_path.parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Make path fields absolute POSIX strings, resolving relative ones against ``base_dir``.

    Profile overlays are normalized too, so a later overlay merge cannot
    reintroduce a relative path.
    """

    normalized = merge_config({}, config)
    blocks: list[dict[str, Any]] = [normalized]
    profiles = normalized.get("profiles")
    if isinstance(profiles, dict):
        blocks.extend(overlay for _, overlay in sorted(profiles.items()) if isinstance(overlay, dict))

    for block in blocks:
        for section, key in PATH_FIELDS:
            table = block.get(section)
            if isinstance(table, dict) and isinstance(table.get(key), str):
                table[key] = _absolute(table[key], base_dir)
    return normalized


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    return redact_config(config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact, key-sorted JSON of the redacted config; identical input gives identical text."""

    return json.dumps(effective_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _config_file(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _select_profile(argument: str | None, override: object, environment: str | None) -> str | None:
    if override is not None and not isinstance(override, str):
        raise ConfigLoadError("cli override 'profile' must be a string")
    for candidate in (argument, override, environment):
        if candidate is not None:
            return candidate.strip() or None
    return None


def _environment_layer(env: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for field in CONFIG_FIELDS:
        name = env_name(field)
        if name in env and field.kind not in ("markers", "separators"):
            layer.setdefault(field.section, {})[field.key] = _coerce(field, name, env[name])
    return layer


def _coerce(field: ConfigField, name: str, raw: str) -> object:
    value = raw.strip()
    if field.kind in ("int", "version"):
        try:
            return int(value)
        except ValueError:
            raise ConfigLoadError(f"{name} ({field.dotted}) must be an integer, got {raw!r}") from None
    if field.kind == "ratio":
        try:
            return float(value)
        except ValueError:
            raise ConfigLoadError(f"{name} ({field.dotted}) must be a number, got {raw!r}") from None
    if field.kind == "bool":
        lowered = value.lower()
        if lowered in _TRUE_WORDS or lowered in _FALSE_WORDS:
            return lowered in _TRUE_WORDS
        raise ConfigLoadError(
            f"{name} ({field.dotted}) must be a boolean (true/false/1/0/yes/no/on/off), got {raw!r}"
        )
    return value


def _override_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for dotted in sorted(overrides):
        parts = [part for part in dotted.split(".") if part]
        if not parts:
            raise ConfigLoadError(f"invalid CLI override key {dotted!r}")
        table = layer
        for part in parts[:-1]:
            table = table.setdefault(part, {})
            if not isinstance(table, dict):
                raise ConfigLoadError(f"CLI override {dotted!r} conflicts with another override")
        value = overrides[dotted]
        table[parts[-1]] = merge_config({}, value) if isinstance(value, Mapping) else value
    return layer


def _absolute(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV",
    "dump_effective_config",
    "effective_config",
    "env_name",
    "load_config",
    "normalize_paths",
]

"""
compliance-workflow — configuration schema and validation.

Purpose
- Describe every configuration leaf once, in ``CONFIG_FIELDS``, and derive the
  defaults check, env bindings and path normalization from that table.

What should be included in this file
- The field table and the TypedDict shape of an effective config.
- Strict validation that reports every problem as ``(dotted path, message)``.
- Partial validation of ``[profiles.<name>]`` overlays and the overlay merge.
- Redaction of secret-looking keys for the ``config`` command.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from compliance_workflow.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_ARCHIVE_DB,
    DEFAULT_DOCUMENTATION_GAP_THRESHOLD,
    DEFAULT_FEATURE_SEPARATORS,
    DEFAULT_LOG_DIR,
    DEFAULT_MIN_TEST_INTENTS_PER_ITEM,
    DEFAULT_REQUIRED_DOCUMENTATION,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "permissive")

FieldKind = Literal["version", "int", "ratio", "bool", "path", "level", "markers", "separators"]

_PROFILE_NAME = re.compile(r"^[a-z][a-z0-9_-]*$")
_WORD_SPLIT = re.compile(r"[^a-z0-9]+")
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")

_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "private", "credential", "credentials", "auth"}
)
_SECRET_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
)
_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True, slots=True)
class ConfigField:
    """One leaf setting of ``compliance.toml``."""

    section: str
    key: str
    kind: FieldKind

    @property
    def dotted(self) -> str:
        return f"{self.section}.{self.key}"


CONFIG_FIELDS: Final[tuple[ConfigField, ...]] = (
    ConfigField("meta", "schema_version", "version"),
    ConfigField("workflow", "documentation_gap_threshold", "ratio"),
    ConfigField("workflow", "required_documentation", "markers"),
    ConfigField("workflow", "min_test_intents_per_item", "int"),
    ConfigField("extraction", "strip_articles", "bool"),
    ConfigField("extraction", "separators", "separators"),
    ConfigField("observability", "log_level", "level"),
    ConfigField("observability", "log_dir", "path"),
    ConfigField("observability", "log_to_stdout", "bool"),
    ConfigField("observability", "redact_secrets", "bool"),
    ConfigField("persistence", "archive_db", "path"),
    ConfigField("persistence", "archive_on_terminal", "bool"),
)

SECTIONS: Final[tuple[str, ...]] = tuple(dict.fromkeys(field.section for field in CONFIG_FIELDS))
# meta is pinned by the file; overlays may only touch behaviour sections.
OVERLAY_SECTIONS: Final[tuple[str, ...]] = SECTIONS[1:]

# Normalized relative to the config file's directory by the loader.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = tuple(
    (field.section, field.key) for field in CONFIG_FIELDS if field.kind == "path"
)


class MetaConfig(TypedDict):
    schema_version: int


class WorkflowConfig(TypedDict):
    documentation_gap_threshold: float
    required_documentation: list[str]
    min_test_intents_per_item: int


class ExtractionConfig(TypedDict):
    strip_articles: bool
    separators: list[str]


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool
    redact_secrets: bool


class PersistenceConfig(TypedDict):
    archive_db: str
    archive_on_terminal: bool


class ProfileOverlay(TypedDict, total=False):
    workflow: dict[str, object]
    extraction: dict[str, object]
    observability: dict[str, object]
    persistence: dict[str, object]


class ComplianceConfig(TypedDict):
    meta: MetaConfig
    workflow: WorkflowConfig
    extraction: ExtractionConfig
    observability: ObservabilityConfig
    persistence: PersistenceConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[ComplianceConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "workflow": {
        "documentation_gap_threshold": DEFAULT_DOCUMENTATION_GAP_THRESHOLD,
        "required_documentation": list(DEFAULT_REQUIRED_DOCUMENTATION),
        "min_test_intents_per_item": DEFAULT_MIN_TEST_INTENTS_PER_ITEM,
    },
    "extraction": {
        "strip_articles": True,
        "separators": list(DEFAULT_FEATURE_SEPARATORS),
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": f"{DEFAULT_LOG_DIR}/",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
    "persistence": {
        "archive_db": str(DEFAULT_ARCHIVE_DB),
        "archive_on_terminal": True,
    },
    "profiles": {
        # strict: every undocumented unit blocks, two test intents per approved item.
        "strict": {
            "workflow": {"documentation_gap_threshold": 0.0, "min_test_intents_per_item": 2},
        },
        "permissive": {
            "workflow": {"documentation_gap_threshold": 0.5},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Normalized config when valid, otherwise every issue found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <root>: unknown failure"))


class _Rejected(ValueError):
    """A single field value failed its check; ``suffix`` narrows the issue path."""

    def __init__(self, message: str, suffix: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.suffix = suffix


def default_config() -> ComplianceConfig:
    """Return a private deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade compliance.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the compliance-workflow runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; neither input is mutated."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        elif isinstance(value, Mapping):
            merged[key] = merge_config({}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Merge the named ``[profiles.<name>]`` overlay and re-validate the result."""

    selected = (profile or "").strip()
    if not selected:
        return merge_config({}, config)

    profiles = config.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if overlay is None:
        raise ConfigValidationError(
            [ConfigValidationIssue("profiles", f"profile {selected!r} is not defined")]
        )
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            [ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object")]
        )
    return assert_valid_config(merge_config(config, overlay), active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate a whole config; issues come back in a stable order."""

    issues: list[ConfigValidationIssue] = []
    if not isinstance(config, Mapping):
        issues.append(ConfigValidationIssue("<root>", f"expected object, got {type(config).__name__}"))
        return ConfigValidationResult(config=None, issues=tuple(issues))

    normalized = _check_document(config, issues)
    selected = (active_profile or "").strip()
    if selected:
        profiles = normalized.get("profiles", {})
        if selected not in profiles:
            issues.append(ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"))
        else:
            _check_document(merge_config(normalized, profiles[selected]), issues)

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy ``config`` with every secret-looking key's value replaced by ``<redacted>``."""

    if not isinstance(config, Mapping):
        return {}
    return {
        key: "<redacted>" if _looks_secret(key) else _redact(config[key])
        for key in sorted(config)
    }


def _check_document(payload: Mapping[str, object], issues: list[ConfigValidationIssue]) -> dict[str, Any]:
    _check_keys(payload, "", {*SECTIONS, "profiles"}, issues)
    normalized: dict[str, Any] = {}
    for section in SECTIONS:
        if section not in payload:
            issues.append(ConfigValidationIssue(section, "missing required field"))
            continue
        checked = _check_section(section, payload[section], section, issues, partial=False)
        if checked is not None:
            normalized[section] = checked

    if "profiles" in payload:
        profiles = _check_profiles(payload["profiles"], issues)
        if profiles is not None:
            normalized["profiles"] = profiles
    return normalized


def _check_section(
    section: str,
    raw: object,
    path: str,
    issues: list[ConfigValidationIssue],
    *,
    partial: bool,
) -> dict[str, Any] | None:
    if not isinstance(raw, Mapping):
        issues.append(ConfigValidationIssue(path, f"expected object, got {type(raw).__name__}"))
        return None

    fields = {field.key: field for field in CONFIG_FIELDS if field.section == section}
    _check_keys(raw, path, set(fields), issues)
    checked: dict[str, Any] = {}
    for key in sorted(fields):
        field_path = f"{path}.{key}"
        if key not in raw:
            if not partial:
                issues.append(ConfigValidationIssue(field_path, "missing required field"))
            continue
        try:
            checked[key] = _CHECKS[fields[key].kind](raw[key])
        except _Rejected as rejected:
            issues.append(ConfigValidationIssue(field_path + rejected.suffix, rejected.message))
    return checked


def _check_profiles(raw: object, issues: list[ConfigValidationIssue]) -> dict[str, Any] | None:
    if not isinstance(raw, Mapping):
        issues.append(ConfigValidationIssue("profiles", f"expected object, got {type(raw).__name__}"))
        return None

    profiles: dict[str, Any] = {}
    for name in sorted(raw, key=str):
        path = f"profiles.{name}"
        if not isinstance(name, str) or not _PROFILE_NAME.fullmatch(name):
            issues.append(ConfigValidationIssue(path, "profile name must match ^[a-z][a-z0-9_-]*$"))
            continue
        overlay = raw[name]
        if not isinstance(overlay, Mapping):
            issues.append(ConfigValidationIssue(path, f"expected object, got {type(overlay).__name__}"))
            continue
        _check_keys(overlay, path, set(OVERLAY_SECTIONS), issues)
        sections: dict[str, Any] = {}
        for section in OVERLAY_SECTIONS:
            if section in overlay:
                checked = _check_section(
                    section, overlay[section], f"{path}.{section}", issues, partial=True
                )
                if checked is not None:
                    sections[section] = checked
        profiles[name] = sections
    return profiles


def _check_keys(
    payload: Mapping[object, object],
    path: str,
    allowed: set[str],
    issues: list[ConfigValidationIssue],
) -> None:
    for key in sorted(payload, key=str):
        if key in allowed:
            continue
        key_path = f"{path}.{key}" if path else str(key)
        if isinstance(key, str) and _looks_secret(key):
            issues.append(
                ConfigValidationIssue(key_path, "embedded secret values are forbidden in compliance config")
            )
        else:
            issues.append(ConfigValidationIssue(key_path, "unknown field"))


def _integer(value: object, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _Rejected(f"expected integer, got {type(value).__name__}")
    if value < minimum:
        raise _Rejected(f"must be >= {minimum}")
    return value


def _check_version(value: object) -> int:
    version = _integer(value, minimum=1)
    if version != ConfigSchemaVersion:
        raise _Rejected(migration_guidance(version))
    return version


def _check_ratio(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _Rejected(f"expected number, got {type(value).__name__}")
    ratio = float(value)
    if not math.isfinite(ratio):
        raise _Rejected("must be finite")
    if ratio < 0.0:
        raise _Rejected("must be >= 0.0")
    if ratio > 1.0:
        raise _Rejected("must be <= 1.0")
    return ratio


def _check_bool(value: object) -> bool:
    if not isinstance(value, bool):
        raise _Rejected(f"expected boolean, got {type(value).__name__}")
    return value


def _check_text(value: object) -> str:
    if not isinstance(value, str):
        raise _Rejected(f"expected string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        raise _Rejected("must not be empty")
    return text


def _check_path(value: object) -> str:
    text = _check_text(value)
    if "\x00" in text:
        raise _Rejected("must not contain NUL bytes")
    return text


def _check_level(value: object) -> str:
    level = _check_text(value)
    if level not in _LOG_LEVELS:
        raise _Rejected(f"invalid value {level!r}; expected one of: {', '.join(sorted(_LOG_LEVELS))}")
    return level


def _string_list(value: object, *, strip: bool) -> list[str]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise _Rejected(f"expected array, got {type(value).__name__}")
    items: list[str] = []
    for index, item in enumerate(value):
        # Whitespace-only separators such as "\n" are meaningful when not stripping.
        if not isinstance(item, str) or not (item.strip() if strip else item):
            raise _Rejected("expected non-empty string", suffix=f"[{index}]")
        items.append(item.strip() if strip else item)
    return items


def _check_markers(value: object) -> list[str]:
    markers = _string_list(value, strip=True)
    if len(set(markers)) != len(markers):
        raise _Rejected("entries must be unique")
    return markers


def _check_separators(value: object) -> list[str]:
    # " and " only separates when the surrounding spaces survive.
    separators = _string_list(value, strip=False)
    if not separators:
        raise _Rejected("must not be empty")
    return separators


_CHECKS: Final[dict[str, Callable[[object], object]]] = {
    "version": _check_version,
    "int": lambda value: _integer(value, minimum=1),
    "ratio": _check_ratio,
    "bool": _check_bool,
    "path": _check_path,
    "level": _check_level,
    "markers": _check_markers,
    "separators": _check_separators,
}


def _looks_secret(key: str) -> bool:
    words = _WORD_SPLIT.sub("_", _CAMEL_BOUNDARY.sub(r"\1_\2", key.strip()).lower()).strip("_")
    if any(phrase in words for phrase in _SECRET_PHRASES):
        return True
    return any(word in _SECRET_WORDS for word in words.split("_") if word)


def _redact(value: object) -> object:
    if isinstance(value, Mapping):
        return redact_config(value)
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "CONFIG_FIELDS",
    "ComplianceConfig",
    "ConfigField",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "OVERLAY_SECTIONS",
    "PATH_FIELDS",
    "ProfileOverlay",
    "SECTIONS",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]

"""
markform — configuration schema and validation.

File: src/markform/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.
- Define ``ParseSettings``, the immutable defaults threaded into every parser.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, and enums.
- Deterministic deep-merge helpers.
- The table of keys settable from ``MARKFORM_*`` environment variables.
- Conversion from a validated config mapping to ``ParseSettings``.

Functional requirements
- Validate config payloads and return structured errors (field path + message).

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Final, TypedDict

from markform.constants import CONFIG_SCHEMA_VERSION
from markform.domain.models import PriorityLevel

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

_ROLE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9_-]*$")

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "text")


class MetaConfig(TypedDict):
    schema_version: int


class ParsingConfig(TypedDict):
    default_role: str
    default_priority: str
    warn_on_placeholder: bool


class ObservabilityConfig(TypedDict):
    log_level: str
    log_format: str


class MarkformConfig(TypedDict):
    meta: MetaConfig
    parsing: ParsingConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[MarkformConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "parsing": {
        "default_role": "agent",
        "default_priority": PriorityLevel.MEDIUM.value,
        "warn_on_placeholder": True,
    },
    "observability": {"log_level": "WARNING", "log_format": "text"},
}

ENV_FLAG_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
ENV_FLAG_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})


def parse_env_flag(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in ENV_FLAG_TRUE:
        return True
    if lowered in ENV_FLAG_FALSE:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


# (section, key) settable from MARKFORM_<SECTION>_<KEY>, with the parser for the
# stripped raw value. Results are validated with the rest of the config.
ENV_SETTINGS: Final[Mapping[tuple[str, str], Callable[[str], object]]] = MappingProxyType(
    {
        ("parsing", "default_role"): str.lower,
        ("parsing", "default_priority"): str.lower,
        ("parsing", "warn_on_placeholder"): parse_env_flag,
        ("observability", "log_level"): str.upper,
        ("observability", "log_format"): str.lower,
    }
)


@dataclass(frozen=True, slots=True)
class ParseSettings:
    """Defaults applied while parsing field tags.

    Passed explicitly into ``parse_form``/``parse_field``; never read from
    module state.
    """

    default_role: str = "agent"
    default_priority: PriorityLevel = PriorityLevel.MEDIUM
    warn_on_placeholder: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "default_priority", PriorityLevel(self.default_priority))


DEFAULT_SETTINGS: Final[ParseSettings] = ParseSettings()


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> MarkformConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade markform.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade markform"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    _reject_unknown_keys(root, {"meta", "parsing", "observability"}, "", issues)
    _require_keys(root, {"meta", "parsing", "observability"}, "", issues)

    out: dict[str, Any] = {}
    _section(root, key="meta", issues=issues, validator=_validate_meta, out=out)
    _section(root, key="parsing", issues=issues, validator=_validate_parsing, out=out)
    _section(
        root, key="observability", issues=issues, validator=_validate_observability, out=out
    )

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=out, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def settings_from_config(config: Mapping[str, object]) -> ParseSettings:
    """Build ``ParseSettings`` from a validated config mapping."""

    parsing = config.get("parsing")
    if not isinstance(parsing, Mapping):
        return DEFAULT_SETTINGS
    defaults = DEFAULT_CONFIG["parsing"]
    return ParseSettings(
        default_role=str(parsing.get("default_role", defaults["default_role"])),
        default_priority=PriorityLevel(
            parsing.get("default_priority", defaults["default_priority"])
        ),
        warn_on_placeholder=bool(
            parsing.get("warn_on_placeholder", defaults["warn_on_placeholder"])
        ),
    )


def _section(
    payload: Mapping[str, object],
    *,
    key: str,
    issues: _IssueCollector,
    validator: Callable[[dict[str, object], str, _IssueCollector], dict[str, Any]],
    out: dict[str, Any],
) -> None:
    raw = payload.get(key)
    if raw is None:
        return
    section_obj = _as_object(raw, key, issues)
    if section_obj is None:
        return
    out[key] = validator(section_obj, key, issues)


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_parsing(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"default_role", "default_priority", "warn_on_placeholder"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "default_role" in payload:
        role = _as_str(payload["default_role"], _join(path, "default_role"), issues)
        if role is not None:
            if _ROLE_PATTERN.fullmatch(role):
                out["default_role"] = role
            else:
                issues.add(
                    _join(path, "default_role"),
                    "must be a lowercase role name (example: agent)",
                )

    if "default_priority" in payload:
        priority = _as_enum(
            payload["default_priority"],
            _join(path, "default_priority"),
            issues,
            allowed_values=tuple(level.value for level in PriorityLevel),
        )
        if priority is not None:
            out["default_priority"] = priority

    if "warn_on_placeholder" in payload:
        warn = _as_bool(
            payload["warn_on_placeholder"], _join(path, "warn_on_placeholder"), issues
        )
        if warn is not None:
            out["warn_on_placeholder"] = warn
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_format"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        level = _as_enum(
            payload["log_level"], _join(path, "log_level"), issues, allowed_values=LOG_LEVELS
        )
        if level is not None:
            out["log_level"] = level

    if "log_format" in payload:
        log_format = _as_enum(
            payload["log_format"], _join(path, "log_format"), issues, allowed_values=LOG_FORMATS
        )
        if log_format is not None:
            out["log_format"] = log_format
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


__all__ = [
    "DEFAULT_CONFIG",
    "DEFAULT_SETTINGS",
    "ENV_SETTINGS",
    "LOG_FORMATS",
    "LOG_LEVELS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "MarkformConfig",
    "ParseSettings",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "parse_env_flag",
    "settings_from_config",
    "validate_config",
]

"""
markform config package public API.

File: src/markform/config/__init__.py

Purpose
- Export config loading/validation entrypoints, parse settings, and error types.

Functional requirements
- Support loading from ``markform.toml`` + ``MARKFORM_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from markform.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dotted_overrides,
    dump_effective_config,
    env_name_for_path,
    env_overrides,
    find_config_file,
    load_config,
    read_config_file,
)
from markform.config.schema import (
    DEFAULT_CONFIG,
    DEFAULT_SETTINGS,
    ENV_SETTINGS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    MarkformConfig,
    ParseSettings,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    settings_from_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_SETTINGS",
    "ENV_PREFIX",
    "ENV_SETTINGS",
    "MarkformConfig",
    "ParseSettings",
    "assert_valid_config",
    "default_config",
    "dotted_overrides",
    "dump_effective_config",
    "env_name_for_path",
    "env_overrides",
    "find_config_file",
    "load_config",
    "merge_config",
    "migration_guidance",
    "read_config_file",
    "settings_from_config",
    "validate_config",
]

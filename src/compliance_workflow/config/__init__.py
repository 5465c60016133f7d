"""
compliance-workflow config package public API.

Loading from ``compliance.toml`` plus ``COMPLIANCE_`` env overrides, strict
validation with structured issues, and the typed ``WorkflowSettings`` view
consumed by the engine.
"""

from compliance_workflow.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    effective_config,
    load_config,
    normalize_paths,
)
from compliance_workflow.config.schema import (
    BUILTIN_PROFILE_NAMES,
    CONFIG_FIELDS,
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ComplianceConfig,
    ConfigField,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    ProfileOverlay,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)
from compliance_workflow.config.settings import WorkflowSettings

__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "CONFIG_FIELDS",
    "ComplianceConfig",
    "ConfigField",
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PATH_FIELDS",
    "ProfileOverlay",
    "WorkflowSettings",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "effective_config",
    "load_config",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "redact_config",
    "validate_config",
]

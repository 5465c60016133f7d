"""Stable constants shared across the compliance workflow engine."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
WORKFLOW_STATE_SCHEMA_VERSION: Final[int] = 1
ARCHIVE_DB_SCHEMA_VERSION: Final[int] = 1

# Default runtime paths (relative to the config file unless overridden).
STATE_DIR: Final[PurePosixPath] = PurePosixPath("state")
DEFAULT_ARCHIVE_DB: Final[PurePosixPath] = STATE_DIR / "workflows.sqlite3"
DEFAULT_LOG_DIR: Final[PurePosixPath] = PurePosixPath("logs")

# Documentation markers every implemented unit must carry.
DEFAULT_REQUIRED_DOCUMENTATION: Final[tuple[str, ...]] = (
    "purpose",
    "parameters",
    "failure_modes",
)
DEFAULT_DOCUMENTATION_GAP_THRESHOLD: Final[float] = 0.25
DEFAULT_MIN_TEST_INTENTS_PER_ITEM: Final[int] = 1

# Request splitting for the keyword feature extractor.
DEFAULT_FEATURE_SEPARATORS: Final[tuple[str, ...]] = (",", ";", "\n", " and ", " & ", " plus ")
ARTICLES: Final[tuple[str, ...]] = ("a", "an", "the")

# Longest accepted scope item name.
MAX_SCOPE_NAME_LENGTH: Final[int] = 256

__all__ = [
    "ARCHIVE_DB_SCHEMA_VERSION",
    "ARTICLES",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_ARCHIVE_DB",
    "DEFAULT_DOCUMENTATION_GAP_THRESHOLD",
    "DEFAULT_FEATURE_SEPARATORS",
    "DEFAULT_LOG_DIR",
    "DEFAULT_MIN_TEST_INTENTS_PER_ITEM",
    "DEFAULT_REQUIRED_DOCUMENTATION",
    "MAX_SCOPE_NAME_LENGTH",
    "STATE_DIR",
    "WORKFLOW_STATE_SCHEMA_VERSION",
]

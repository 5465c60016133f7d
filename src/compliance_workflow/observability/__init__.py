"""Structured logging for the compliance workflow engine."""

from compliance_workflow.observability.logging import (
    CORRELATION_KEYS,
    REDACTED,
    LoggingConfig,
    LogRedactor,
    StructuredLoggingHandle,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    parse_log_level,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "CORRELATION_KEYS",
    "LogRedactor",
    "LoggingConfig",
    "REDACTED",
    "StructuredLoggingHandle",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "parse_log_level",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]

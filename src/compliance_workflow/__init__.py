"""
compliance-workflow: a phase-gated compliance engine for code-generation tasks.

Every task moves through Clarify, Plan, Implement and Verify. Each phase
artifact is validated against the approved scope and the task's architecture
profile before the workflow may advance.

The package root has no import-time side effects (no config loading, no
logging setup); import ``compliance_workflow.workflow`` for the engine API.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

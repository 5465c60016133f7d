"""Error taxonomy for the compliance workflow engine.

Three families are kept apart:

- ``UsageError`` subclasses signal caller misuse. They are raised immediately
  and never retried internally.
- Content non-compliance is never raised; it is reported as a Fail verdict.
- ``ScopeConflictError`` and ``WorkflowInvariantError`` signal an internal data
  inconsistency. The workflow instance that hits one transitions to ``aborted``
  before the error propagates.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every error raised by the engine."""


class UsageError(WorkflowError):
    """Caller misuse of the workflow API."""


class PhaseMismatchError(UsageError):
    """Operation targets a phase other than the workflow's current phase."""

    def __init__(self, *, requested: str, current: str) -> None:
        self.requested = requested
        self.current = current
        super().__init__(f"phase {requested!r} does not match current phase {current!r}")


class OutOfOrderError(UsageError):
    """A prerequisite phase has no Pass verdict in the current generation."""

    def __init__(self, *, requested: str, missing: tuple[str, ...]) -> None:
        self.requested = requested
        self.missing = missing
        super().__init__(
            f"phase {requested!r} submitted before prerequisites passed: {', '.join(missing)}"
        )


class UnknownScopeItemError(UsageError, KeyError):
    """Scope item was never raised during request parsing."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"unknown scope item {self.name!r}"


class WorkflowNotCompleteError(UsageError):
    """``finalize`` called before the Verify phase has passed."""


class WorkflowTerminatedError(UsageError):
    """Mutation attempted on a completed or aborted workflow."""


class ReviseNotApplicableError(UsageError):
    """Revise requested without a failing verdict to revise from."""


class InvalidDecisionError(UsageError, ValueError):
    """Clarification answer is not an approve/reject decision."""


class ScopeLockedError(UsageError):
    """Scope ledger is status-locked because the Clarify phase passed."""


class ScopeConflictError(WorkflowError):
    """Conflicting definition registered for an existing scope item."""

    def __init__(self, name: str, *, existing: str, incoming: str) -> None:
        self.name = name
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"scope item {name!r} already registered as {existing!r}; "
            f"conflicting definition {incoming!r}"
        )


class WorkflowInvariantError(WorkflowError):
    """A structural invariant of the workflow state was breached."""


class ProfileError(ValueError):
    """Architecture profile cannot be loaded or is structurally invalid."""


class LayerCycleError(ProfileError):
    """Layer dependency graph contains a cycle."""

    cycles: tuple[tuple[str, ...], ...]

    def __init__(self, cycles: tuple[tuple[str, ...], ...]) -> None:
        self.cycles = cycles
        preview = ", ".join(" -> ".join(path) for path in cycles[:3])
        suffix = "..." if len(cycles) > 3 else ""
        super().__init__(f"layer dependencies contain cycle(s): {preview}{suffix}")


__all__ = [
    "InvalidDecisionError",
    "LayerCycleError",
    "OutOfOrderError",
    "PhaseMismatchError",
    "ProfileError",
    "ReviseNotApplicableError",
    "ScopeConflictError",
    "ScopeLockedError",
    "UnknownScopeItemError",
    "UsageError",
    "WorkflowError",
    "WorkflowInvariantError",
    "WorkflowNotCompleteError",
    "WorkflowTerminatedError",
]

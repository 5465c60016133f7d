"""
Phase validator interface and registration.

A validator is a pure function object ``validate(artifact, state) -> Verdict``.
It reads the workflow state but never mutates it, performs no I/O and never
raises for content problems: every problem becomes a ``Violation`` in the
returned verdict.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Protocol, TypeVar, runtime_checkable

from compliance_workflow.domain.models import Artifact, Phase, Verdict, Violation

if TYPE_CHECKING:
    from compliance_workflow.workflow.state import WorkflowState

ValidatorSource = Literal["builtin", "external"]
ValidatorFactory = Callable[[], "PhaseValidator"]


@runtime_checkable
class PhaseValidator(Protocol):
    """Validator protocol implemented by built-ins and external plugins."""

    phase: Phase

    def validate(self, artifact: Artifact, state: WorkflowState) -> Verdict: ...


@dataclass(frozen=True, slots=True)
class ValidatorRegistration:
    phase: Phase
    source: ValidatorSource
    factory: ValidatorFactory


class ValidatorRegistry:
    """One validator factory per phase."""

    def __init__(self) -> None:
        self._registrations: dict[Phase, ValidatorRegistration] = {}

    def register(
        self,
        phase: Phase | str,
        factory: ValidatorFactory,
        *,
        source: ValidatorSource,
        replace: bool = False,
    ) -> None:
        key = Phase(phase)
        if not callable(factory):
            raise ValueError("factory: must be callable")
        existing = self._registrations.get(key)
        if existing is not None and not replace:
            raise ValueError(f"phase {key.value!r}: already registered by {existing.source} validator")
        self._registrations[key] = ValidatorRegistration(phase=key, source=source, factory=factory)

    def register_external(
        self, phase: Phase | str, factory: ValidatorFactory, *, replace: bool = True
    ) -> None:
        self.register(phase, factory, source="external", replace=replace)

    def contains(self, phase: Phase | str) -> bool:
        return Phase(phase) in self._registrations

    def create(self, phase: Phase | str) -> PhaseValidator:
        key = Phase(phase)
        registration = self._registrations.get(key)
        if registration is None:
            known = ", ".join(item.value for item in self.registered_phases())
            raise KeyError(f"no validator registered for phase {key.value!r}; registered: [{known}]")
        validator = registration.factory()
        if not isinstance(validator, PhaseValidator) or validator.phase is not key:
            raise ValueError(f"{key.value!r} factory did not return a {key.value} PhaseValidator")
        return validator

    def create_all(self) -> dict[Phase, PhaseValidator]:
        return {phase: self.create(phase) for phase in self.registered_phases()}

    def registered_phases(self) -> tuple[Phase, ...]:
        return tuple(sorted(self._registrations, key=lambda phase: phase.order))

    def copy(self) -> ValidatorRegistry:
        clone = ValidatorRegistry()
        clone._registrations = dict(self._registrations)
        return clone


ValidatorType = TypeVar("ValidatorType", bound=PhaseValidator)

DEFAULT_VALIDATOR_REGISTRY = ValidatorRegistry()


def register_builtin_validator(
    phase: Phase,
    *,
    registry: ValidatorRegistry | None = None,
) -> Callable[[type[ValidatorType]], type[ValidatorType]]:
    """Decorator that registers a zero-argument validator class for ``phase``."""

    target = registry if registry is not None else DEFAULT_VALIDATOR_REGISTRY

    def decorator(validator_cls: type[ValidatorType]) -> type[ValidatorType]:
        target.register(phase, validator_cls, source="builtin")
        return validator_cls

    return decorator


def build_verdict(artifact: Artifact, violations: Iterable[Violation]) -> Verdict:
    return Verdict.from_violations(artifact, violations)


__all__ = [
    "DEFAULT_VALIDATOR_REGISTRY",
    "PhaseValidator",
    "ValidatorFactory",
    "ValidatorRegistration",
    "ValidatorRegistry",
    "ValidatorSource",
    "build_verdict",
    "register_builtin_validator",
]

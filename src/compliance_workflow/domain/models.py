"""Frozen dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import NoReturn, TypeVar, cast

from compliance_workflow.architecture.layer_graph import LayerGraph
from compliance_workflow.constants import MAX_SCOPE_NAME_LENGTH
from compliance_workflow.domain import ids as domain_ids

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192
_MAX_REQUEST_TEXT = 65_536
_MAX_JSON_DEPTH = 16
_MAX_JSON_COLLECTION = 1024


class Phase(StrEnum):
    """Artifact-producing phases, in mandatory order."""

    CLARIFY = "clarify"
    PLAN = "plan"
    IMPLEMENT = "implement"
    VERIFY = "verify"

    @property
    def order(self) -> int:
        return _PHASE_ORDER.index(self)

    @property
    def prerequisites(self) -> tuple[Phase, ...]:
        return _PHASE_ORDER[: self.order]

    @property
    def workflow_phase(self) -> WorkflowPhase:
        return _PHASE_TO_WORKFLOW[self]


class WorkflowPhase(StrEnum):
    """States of the workflow state machine."""

    CREATED = "created"
    CLARIFYING = "clarifying"
    PLANNING = "planning"
    IMPLEMENTING = "implementing"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def rank(self) -> int:
        return _WORKFLOW_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowPhase.COMPLETED, WorkflowPhase.ABORTED)

    @property
    def artifact_phase(self) -> Phase | None:
        return _WORKFLOW_TO_PHASE.get(self)


class ScopeStatus(StrEnum):
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"


class Outcome(StrEnum):
    PASS = "pass"
    FAIL = "fail"


class ViolationKind(StrEnum):
    """Kinds of content violation reported inside verdicts."""

    SCOPE_CREEP = "scope_creep"
    LAYERING = "layering"
    INCOMPLETE_PLAN = "incomplete_plan"
    DOCUMENTATION_GAP = "documentation_gap"
    MISSING_TEST = "missing_test"
    UNRESOLVED_SCOPE = "unresolved_scope"
    OUTSTANDING_FAILURE = "outstanding_failure"
    MALFORMED_ARTIFACT = "malformed_artifact"


class TransitionKind(StrEnum):
    START = "start"
    ADVANCE = "advance"
    REVISE = "revise"
    COMPLETE = "complete"
    ABORT = "abort"


_PHASE_ORDER: tuple[Phase, ...] = (Phase.CLARIFY, Phase.PLAN, Phase.IMPLEMENT, Phase.VERIFY)
_PHASE_TO_WORKFLOW: dict[Phase, WorkflowPhase] = {
    Phase.CLARIFY: WorkflowPhase.CLARIFYING,
    Phase.PLAN: WorkflowPhase.PLANNING,
    Phase.IMPLEMENT: WorkflowPhase.IMPLEMENTING,
    Phase.VERIFY: WorkflowPhase.VERIFYING,
}
_WORKFLOW_TO_PHASE: dict[WorkflowPhase, Phase] = {
    value: key for key, value in _PHASE_TO_WORKFLOW.items()
}
# Both terminal states rank above every working state.
_WORKFLOW_RANK: dict[WorkflowPhase, int] = {
    WorkflowPhase.CREATED: 0,
    WorkflowPhase.CLARIFYING: 1,
    WorkflowPhase.PLANNING: 2,
    WorkflowPhase.IMPLEMENTING: 3,
    WorkflowPhase.VERIFYING: 4,
    WorkflowPhase.COMPLETED: 5,
    WorkflowPhase.ABORTED: 5,
}


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        serialized = _serialize_value(self, self.__class__.__name__)
        if not isinstance(serialized, dict):
            _fail(self.__class__.__name__, "serialized model must be an object")
        return serialized

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


def canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_scope_name(value: object, path: str = "scope_item") -> str:
    """Scope names compare exactly after trimming surrounding whitespace."""
    return _as_str(value, path, max_len=MAX_SCOPE_NAME_LENGTH)


@dataclass(frozen=True, slots=True)
class Layer(CanonicalModel):
    name: str
    allowed_dependencies: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        name = _as_str(self.name, "Layer.name", max_len=128)
        deps = _as_str_tuple(
            self.allowed_dependencies,
            f"Layer[{name}].allowed_dependencies",
            unique=False,
            max_len=128,
        )
        _set(self, "name", name)
        _set(self, "allowed_dependencies", tuple(sorted(set(deps))))

    def allows(self, target: str) -> bool:
        return target == self.name or target in self.allowed_dependencies

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Layer:
        parsed = _expect_object(
            data, "Layer", required={"name"}, optional={"allowed_dependencies"}
        )
        return cls(
            name=_as_str(parsed["name"], "Layer.name", max_len=128),
            allowed_dependencies=_as_str_tuple(
                parsed.get("allowed_dependencies", ()),
                "Layer.allowed_dependencies",
                unique=False,
                max_len=128,
            ),
        )


@dataclass(frozen=True, slots=True)
class ArchitectureProfile(CanonicalModel):
    """Ordered layers with their permitted dependency directions.

    Construction rejects duplicate layer names, dependencies on undeclared
    layers, self-listing and dependency cycles (``LayerCycleError``).
    """

    name: str
    layers: tuple[Layer, ...]

    def __post_init__(self) -> None:
        _set(self, "name", _as_str(self.name, "ArchitectureProfile.name", max_len=128))
        parsed: list[Layer] = []
        for index, item in enumerate(_as_sequence(self.layers, "ArchitectureProfile.layers")):
            if isinstance(item, Layer):
                parsed.append(item)
            elif isinstance(item, Mapping):
                parsed.append(Layer.from_dict(item))
            else:
                _fail(f"ArchitectureProfile.layers[{index}]", "expected Layer object")
        names = [layer.name for layer in parsed]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            _fail("ArchitectureProfile.layers", f"duplicate layer names: {duplicates}")
        known = set(names)
        for layer in parsed:
            unknown = [dep for dep in layer.allowed_dependencies if dep not in known]
            if unknown:
                _fail(
                    f"ArchitectureProfile.layers[{layer.name}]",
                    f"allowed_dependencies reference undeclared layers: {unknown}",
                )
            if layer.name in layer.allowed_dependencies:
                _fail(
                    f"ArchitectureProfile.layers[{layer.name}]",
                    "a layer must not list itself as a dependency",
                )
        _layer_graph(parsed).assert_acyclic()
        _set(self, "layers", tuple(parsed))

    @property
    def layer_names(self) -> tuple[str, ...]:
        return tuple(layer.name for layer in self.layers)

    def dependency_order(self) -> tuple[str, ...]:
        """Layer names with every dependency listed ahead of its dependents."""
        return _layer_graph(self.layers).dependency_order()

    def has_layer(self, name: str) -> bool:
        return any(layer.name == name for layer in self.layers)

    def layer(self, name: str) -> Layer:
        for layer in self.layers:
            if layer.name == name:
                return layer
        raise KeyError(f"unknown layer: {name}")

    def allows(self, source: str, target: str) -> bool:
        """Return whether code in ``source`` may reference ``target``."""
        if not self.has_layer(source) or not self.has_layer(target):
            return False
        return self.layer(source).allows(target)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ArchitectureProfile:
        parsed = _expect_object(data, "ArchitectureProfile", required={"name", "layers"})
        return cls(
            name=_as_str(parsed["name"], "ArchitectureProfile.name", max_len=128),
            layers=tuple(
                Layer.from_dict(_expect_mapping(item, f"ArchitectureProfile.layers[{index}]"))
                for index, item in enumerate(
                    _as_sequence(parsed["layers"], "ArchitectureProfile.layers")
                )
            ),
        )


@dataclass(frozen=True, slots=True)
class TaskDescriptor(CanonicalModel):
    """Immutable workflow input.

    ``requested_features`` carries features resolved ahead of workflow creation;
    when empty, the workflow runs its feature extractor over ``raw_request``.
    """

    task_id: str
    raw_request: str
    architecture_profile: ArchitectureProfile
    requested_features: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _set(self, "task_id", _as_str(self.task_id, "TaskDescriptor.task_id", max_len=256))
        _set(
            self,
            "raw_request",
            _as_str(self.raw_request, "TaskDescriptor.raw_request", max_len=_MAX_REQUEST_TEXT),
        )
        if not isinstance(self.architecture_profile, ArchitectureProfile):
            _fail("TaskDescriptor.architecture_profile", "must be ArchitectureProfile")
        features = _as_str_tuple(
            self.requested_features,
            "TaskDescriptor.requested_features",
            unique=False,
            max_len=MAX_SCOPE_NAME_LENGTH,
        )
        _set(self, "requested_features", tuple(dict.fromkeys(features)))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> TaskDescriptor:
        parsed = _expect_object(
            data,
            "TaskDescriptor",
            required={"task_id", "raw_request", "architecture_profile"},
            optional={"requested_features"},
        )
        return cls(
            task_id=_as_str(parsed["task_id"], "TaskDescriptor.task_id", max_len=256),
            raw_request=_as_str(
                parsed["raw_request"], "TaskDescriptor.raw_request", max_len=_MAX_REQUEST_TEXT
            ),
            architecture_profile=ArchitectureProfile.from_dict(
                _expect_mapping(parsed["architecture_profile"], "TaskDescriptor.architecture_profile")
            ),
            requested_features=_as_str_tuple(
                parsed.get("requested_features", ()),
                "TaskDescriptor.requested_features",
                unique=False,
                max_len=256,
            ),
        )


@dataclass(frozen=True, slots=True)
class ScopeItem(CanonicalModel):
    name: str
    status: ScopeStatus = ScopeStatus.REQUESTED

    def __post_init__(self) -> None:
        _set(self, "name", normalize_scope_name(self.name, "ScopeItem.name"))
        _set(self, "status", _as_enum(ScopeStatus, self.status, "ScopeItem.status"))

    @property
    def is_resolved(self) -> bool:
        return self.status is not ScopeStatus.REQUESTED

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ScopeItem:
        parsed = _expect_object(data, "ScopeItem", required={"name", "status"})
        return cls(
            name=normalize_scope_name(parsed["name"], "ScopeItem.name"),
            status=_as_enum(ScopeStatus, parsed["status"], "ScopeItem.status"),
        )


@dataclass(frozen=True, slots=True)
class Artifact(CanonicalModel):
    """One phase submission. ``payload`` is copied into a JSON-safe mapping on construction.

    ``generation`` and ``submitted_at`` are stamped by the state machine when the
    artifact is accepted for validation.
    """

    phase: Phase
    payload: dict[str, JSONValue] = field(default_factory=dict)
    declared_layer: str | None = None
    declared_scope_items: tuple[str, ...] = ()
    artifact_id: str = field(default_factory=domain_ids.generate_artifact_id)
    generation: int = 0
    submitted_at: datetime | None = None

    def __post_init__(self) -> None:
        _set(self, "phase", _as_enum(Phase, self.phase, "Artifact.phase"))
        _set(self, "payload", _as_json_object(self.payload, "Artifact.payload"))
        if self.declared_layer is not None:
            _set(
                self,
                "declared_layer",
                _as_str(self.declared_layer, "Artifact.declared_layer", max_len=128),
            )
        items = tuple(
            normalize_scope_name(item, f"Artifact.declared_scope_items[{index}]")
            for index, item in enumerate(
                _as_sequence(self.declared_scope_items, "Artifact.declared_scope_items")
            )
        )
        _set(self, "declared_scope_items", tuple(dict.fromkeys(items)))
        _validate_id(domain_ids.validate_artifact_id, self.artifact_id, "Artifact.artifact_id")
        _set(self, "generation", _as_int(self.generation, "Artifact.generation", minimum=0))
        if self.submitted_at is not None:
            _set(self, "submitted_at", _as_datetime(self.submitted_at, "Artifact.submitted_at"))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Artifact:
        parsed = _expect_object(
            data,
            "Artifact",
            required={"phase", "payload", "artifact_id"},
            optional={"declared_layer", "declared_scope_items", "generation", "submitted_at"},
        )
        submitted_raw = parsed.get("submitted_at")
        return cls(
            phase=_as_enum(Phase, parsed["phase"], "Artifact.phase"),
            payload=_as_json_object(parsed["payload"], "Artifact.payload"),
            declared_layer=_as_optional_str(parsed.get("declared_layer"), "Artifact.declared_layer"),
            declared_scope_items=_as_str_tuple(
                parsed.get("declared_scope_items", ()),
                "Artifact.declared_scope_items",
                unique=False,
                max_len=256,
            ),
            artifact_id=_as_str(parsed["artifact_id"], "Artifact.artifact_id", max_len=64),
            generation=_as_int(parsed.get("generation", 0), "Artifact.generation", minimum=0),
            submitted_at=(
                _as_datetime(submitted_raw, "Artifact.submitted_at")
                if submitted_raw is not None
                else None
            ),
        )


@dataclass(frozen=True, slots=True)
class Violation(CanonicalModel):
    """One itemized diagnostic.

    ``origin_phase`` names the phase whose artifact (or clarification answers)
    must change to fix the problem; it is the Revise target.
    """

    kind: ViolationKind
    message: str
    origin_phase: Phase
    related_scope_item: str | None = None
    related_layer: str | None = None
    unit: str | None = None
    blocking: bool = True

    def __post_init__(self) -> None:
        _set(self, "kind", _as_enum(ViolationKind, self.kind, "Violation.kind"))
        _set(self, "message", _as_str(self.message, "Violation.message"))
        _set(self, "origin_phase", _as_enum(Phase, self.origin_phase, "Violation.origin_phase"))
        _set(
            self,
            "related_scope_item",
            _as_optional_str(self.related_scope_item, "Violation.related_scope_item"),
        )
        _set(self, "related_layer", _as_optional_str(self.related_layer, "Violation.related_layer"))
        _set(self, "unit", _as_optional_str(self.unit, "Violation.unit"))
        _set(self, "blocking", _as_bool(self.blocking, "Violation.blocking"))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Violation:
        parsed = _expect_object(
            data,
            "Violation",
            required={"kind", "message", "origin_phase"},
            optional={"related_scope_item", "related_layer", "unit", "blocking"},
        )
        return cls(
            kind=_as_enum(ViolationKind, parsed["kind"], "Violation.kind"),
            message=_as_str(parsed["message"], "Violation.message"),
            origin_phase=_as_enum(Phase, parsed["origin_phase"], "Violation.origin_phase"),
            related_scope_item=_as_optional_str(
                parsed.get("related_scope_item"), "Violation.related_scope_item"
            ),
            related_layer=_as_optional_str(parsed.get("related_layer"), "Violation.related_layer"),
            unit=_as_optional_str(parsed.get("unit"), "Violation.unit"),
            blocking=_as_bool(parsed.get("blocking", True), "Violation.blocking"),
        )


@dataclass(frozen=True, slots=True)
class Verdict(CanonicalModel):
    phase: Phase
    outcome: Outcome
    violations: tuple[Violation, ...]
    artifact_id: str
    generation: int
    recorded_at: datetime
    verdict_id: str = field(default_factory=domain_ids.generate_verdict_id)

    def __post_init__(self) -> None:
        _set(self, "phase", _as_enum(Phase, self.phase, "Verdict.phase"))
        _set(self, "outcome", _as_enum(Outcome, self.outcome, "Verdict.outcome"))
        parsed: list[Violation] = []
        for index, item in enumerate(_as_sequence(self.violations, "Verdict.violations")):
            if not isinstance(item, Violation):
                _fail(f"Verdict.violations[{index}]", "expected Violation object")
            parsed.append(item)
        _set(self, "violations", tuple(parsed))
        if self.outcome is Outcome.PASS and any(item.blocking for item in parsed):
            _fail("Verdict.outcome", "a verdict with blocking violations cannot pass")
        if self.outcome is Outcome.FAIL and not any(item.blocking for item in parsed):
            _fail("Verdict.outcome", "a failing verdict needs at least one blocking violation")
        _validate_id(domain_ids.validate_artifact_id, self.artifact_id, "Verdict.artifact_id")
        _set(self, "generation", _as_int(self.generation, "Verdict.generation", minimum=0))
        _set(self, "recorded_at", _as_datetime(self.recorded_at, "Verdict.recorded_at"))
        _validate_id(domain_ids.validate_verdict_id, self.verdict_id, "Verdict.verdict_id")

    @classmethod
    def from_violations(
        cls,
        artifact: Artifact,
        violations: Iterable[Violation],
        *,
        recorded_at: datetime | None = None,
    ) -> Verdict:
        """Build the verdict for ``artifact``: Fail iff any violation is blocking."""
        collected = tuple(violations)
        outcome = Outcome.FAIL if any(item.blocking for item in collected) else Outcome.PASS
        stamp = recorded_at or artifact.submitted_at or utc_now()
        return cls(
            phase=artifact.phase,
            outcome=outcome,
            violations=collected,
            artifact_id=artifact.artifact_id,
            generation=artifact.generation,
            recorded_at=stamp,
        )

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASS

    @property
    def blocking_violations(self) -> tuple[Violation, ...]:
        return tuple(item for item in self.violations if item.blocking)

    @property
    def earliest_violated_phase(self) -> Phase | None:
        blocking = self.blocking_violations
        if not blocking:
            return None
        return min((item.origin_phase for item in blocking), key=lambda phase: phase.order)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Verdict:
        parsed = _expect_object(
            data,
            "Verdict",
            required={
                "phase",
                "outcome",
                "violations",
                "artifact_id",
                "generation",
                "recorded_at",
                "verdict_id",
            },
        )
        return cls(
            phase=_as_enum(Phase, parsed["phase"], "Verdict.phase"),
            outcome=_as_enum(Outcome, parsed["outcome"], "Verdict.outcome"),
            violations=tuple(
                Violation.from_dict(_expect_mapping(item, f"Verdict.violations[{index}]"))
                for index, item in enumerate(_as_sequence(parsed["violations"], "Verdict.violations"))
            ),
            artifact_id=_as_str(parsed["artifact_id"], "Verdict.artifact_id", max_len=64),
            generation=_as_int(parsed["generation"], "Verdict.generation", minimum=0),
            recorded_at=_as_datetime(parsed["recorded_at"], "Verdict.recorded_at"),
            verdict_id=_as_str(parsed["verdict_id"], "Verdict.verdict_id", max_len=64),
        )


@dataclass(frozen=True, slots=True)
class PhaseTransition(CanonicalModel):
    from_phase: WorkflowPhase
    to_phase: WorkflowPhase
    kind: TransitionKind
    generation: int
    at: datetime
    reason: str | None = None

    def __post_init__(self) -> None:
        _set(
            self,
            "from_phase",
            _as_enum(WorkflowPhase, self.from_phase, "PhaseTransition.from_phase"),
        )
        _set(self, "to_phase", _as_enum(WorkflowPhase, self.to_phase, "PhaseTransition.to_phase"))
        _set(self, "kind", _as_enum(TransitionKind, self.kind, "PhaseTransition.kind"))
        _set(self, "generation", _as_int(self.generation, "PhaseTransition.generation", minimum=0))
        _set(self, "at", _as_datetime(self.at, "PhaseTransition.at"))
        _set(self, "reason", _as_optional_str(self.reason, "PhaseTransition.reason"))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PhaseTransition:
        parsed = _expect_object(
            data,
            "PhaseTransition",
            required={"from_phase", "to_phase", "kind", "generation", "at"},
            optional={"reason"},
        )
        return cls(
            from_phase=_as_enum(WorkflowPhase, parsed["from_phase"], "PhaseTransition.from_phase"),
            to_phase=_as_enum(WorkflowPhase, parsed["to_phase"], "PhaseTransition.to_phase"),
            kind=_as_enum(TransitionKind, parsed["kind"], "PhaseTransition.kind"),
            generation=_as_int(parsed["generation"], "PhaseTransition.generation", minimum=0),
            at=_as_datetime(parsed["at"], "PhaseTransition.at"),
            reason=_as_optional_str(parsed.get("reason"), "PhaseTransition.reason"),
        )


# ------------------------
# Validation helpers
# ------------------------


def _layer_graph(layers: Iterable[Layer]) -> LayerGraph:
    graph = LayerGraph()
    for layer in layers:
        graph.add_layer(layer.name)
        for dependency in layer.allowed_dependencies:
            graph.add_dependency(layer.name, dependency)
    return graph


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _set(instance: object, name: str, value: object) -> None:
    object.__setattr__(instance, name, value)


def _validate_id(validator: Callable[[str], None], value: object, path: str) -> None:
    try:
        validator(_as_str(value, path, max_len=64))
    except ValueError as exc:
        _fail(path, str(exc))


def _expect_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    return value


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    mapping = _expect_mapping(value, path)
    parsed: dict[str, object] = {}
    for key, item in mapping.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")
    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")
    return parsed


def _as_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        _fail(path, "must not be empty")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str | None:
    if value is None:
        return None
    return _as_str(value, path, max_len=max_len)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _datetime_to_iso8601z(value: datetime) -> str:
    return _as_datetime(value, "datetime").isoformat(timespec="microseconds").replace(
        "+00:00", "Z"
    )


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        allowed = ", ".join(sorted(str(item.value) for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        if len(value) > _MAX_JSON_COLLECTION:
            _fail(path, f"too many items (>{_MAX_JSON_COLLECTION})")
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(
    value: object,
    path: str,
    *,
    unique: bool,
    max_len: int = _MAX_TEXT,
) -> tuple[str, ...]:
    parsed = tuple(
        _as_str(item, f"{path}[{index}]", max_len=max_len)
        for index, item in enumerate(_as_sequence(value, path))
    )
    if unique and len(set(parsed)) != len(parsed):
        _fail(path, "contains duplicate values")
    return parsed


def _as_json_value(value: object, path: str, *, depth: int = 0) -> JSONValue:
    if depth > _MAX_JSON_DEPTH:
        _fail(path, f"JSON nesting exceeds max depth {_MAX_JSON_DEPTH}")
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, (list, tuple)):
        if len(value) > _MAX_JSON_COLLECTION:
            _fail(path, f"list length exceeds {_MAX_JSON_COLLECTION}")
        return [
            _as_json_value(item, f"{path}[{idx}]", depth=depth + 1)
            for idx, item in enumerate(value)
        ]
    if isinstance(value, Mapping):
        if len(value) > _MAX_JSON_COLLECTION:
            _fail(path, f"object size exceeds {_MAX_JSON_COLLECTION}")
        parsed: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, f"object key must be string, got {type(key).__name__}")
            parsed[key] = _as_json_value(item, f"{path}.{key}", depth=depth + 1)
        return parsed
    _fail(path, f"value is not JSON-serializable ({type(value).__name__})")


def _as_json_object(value: object, path: str) -> dict[str, JSONValue]:
    parsed = _as_json_value(value, path)
    if not isinstance(parsed, dict):
        _fail(path, "expected JSON object")
    return parsed


def _serialize_value(value: object, path: str) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return cast("JSONValue", value)
    if isinstance(value, float):
        if not math.isfinite(value):
            _fail(path, "float values must be finite")
        return value
    if isinstance(value, Enum):
        return cast("str", value.value)
    if isinstance(value, datetime):
        return _datetime_to_iso8601z(value)
    if isinstance(value, (tuple, list)):
        return [_serialize_value(item, f"{path}[]") for item in value]
    if isinstance(value, Mapping):
        out: dict[str, JSONValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                _fail(path, "dict keys must be strings")
            out[key] = _serialize_value(item, f"{path}.{key}")
        return out
    if is_dataclass(value):
        return {
            item.name: _serialize_value(getattr(value, item.name), f"{path}.{item.name}")
            for item in fields(value)
        }
    _fail(path, f"cannot serialize value of type {type(value).__name__}")


__all__ = [
    "Artifact",
    "ArchitectureProfile",
    "CanonicalModel",
    "JSONScalar",
    "JSONValue",
    "Layer",
    "Outcome",
    "Phase",
    "PhaseTransition",
    "ScopeItem",
    "ScopeStatus",
    "TaskDescriptor",
    "TransitionKind",
    "Verdict",
    "Violation",
    "ViolationKind",
    "WorkflowPhase",
    "canonical_json",
    "normalize_scope_name",
    "utc_now",
]

"""The mutable workflow aggregate and its canonical serialization."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime

from compliance_workflow.config.settings import WorkflowSettings
from compliance_workflow.constants import MAX_SCOPE_NAME_LENGTH, WORKFLOW_STATE_SCHEMA_VERSION
from compliance_workflow.domain import ids as domain_ids
from compliance_workflow.domain.models import (
    Artifact,
    JSONValue,
    Phase,
    PhaseTransition,
    ScopeStatus,
    TaskDescriptor,
    Verdict,
    WorkflowPhase,
    _as_datetime,
    _as_enum,
    _as_int,
    _as_optional_str,
    _as_sequence,
    _as_str,
    _as_str_tuple,
    _expect_mapping,
    _expect_object,
    canonical_json,
    utc_now,
)
from compliance_workflow.reporting.report import ComplianceReport
from compliance_workflow.scope.ledger import ScopeLedger


@dataclass(slots=True)
class WorkflowState:
    """Everything one workflow instance knows.

    Owned by a single ``WorkflowHandle``; readers get immutable snapshots
    instead of this object. ``cleared_phases`` maps each phase with a Pass in
    the current generation to the artifact that earned it.
    """

    workflow_id: str
    task: TaskDescriptor
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)
    current_phase: WorkflowPhase = WorkflowPhase.CREATED
    generation: int = 0
    requested_features: tuple[str, ...] = ()
    scope_ledger: ScopeLedger = field(default_factory=ScopeLedger)
    cleared_phases: dict[Phase, str] = field(default_factory=dict)
    artifact_history: list[Artifact] = field(default_factory=list)
    verdict_history: list[Verdict] = field(default_factory=list)
    transitions: list[PhaseTransition] = field(default_factory=list)
    abort_reason: str | None = None
    final_report: ComplianceReport | None = None
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        domain_ids.validate_workflow_id(self.workflow_id)

    @property
    def is_terminal(self) -> bool:
        return self.current_phase.is_terminal

    def is_cleared(self, phase: Phase) -> bool:
        return phase in self.cleared_phases

    def artifact(self, artifact_id: str) -> Artifact:
        for item in reversed(self.artifact_history):
            if item.artifact_id == artifact_id:
                return item
        raise KeyError(f"unknown artifact: {artifact_id}")

    def cleared_artifact(self, phase: Phase) -> Artifact | None:
        artifact_id = self.cleared_phases.get(phase)
        return None if artifact_id is None else self.artifact(artifact_id)

    def verdicts_in_generation(self, generation: int | None = None) -> tuple[Verdict, ...]:
        target = self.generation if generation is None else generation
        return tuple(item for item in self.verdict_history if item.generation == target)

    def latest_verdict(self, phase: Phase, *, current_generation: bool = True) -> Verdict | None:
        pool = self.verdicts_in_generation() if current_generation else tuple(self.verdict_history)
        for verdict in reversed(pool):
            if verdict.phase is phase:
                return verdict
        return None

    def latest_failing_verdict(self) -> Verdict | None:
        for verdict in reversed(self.verdicts_in_generation()):
            if not verdict.passed:
                return verdict
        return None

    def unresolved_after_clarify(self) -> tuple[str, ...]:
        """Scope items still ``requested`` although the workflow left clarifying."""
        if self.current_phase.rank <= WorkflowPhase.CLARIFYING.rank:
            return ()
        if self.current_phase is WorkflowPhase.ABORTED:
            return ()
        return tuple(
            item.name for item in self.scope_ledger.items() if item.status is ScopeStatus.REQUESTED
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": WORKFLOW_STATE_SCHEMA_VERSION,
            "workflow_id": self.workflow_id,
            "task": self.task.to_dict(),
            "settings": self.settings.to_dict(),  # type: ignore[dict-item]
            "current_phase": self.current_phase.value,
            "generation": self.generation,
            "requested_features": list(self.requested_features),
            "scope_ledger": self.scope_ledger.to_dict(),
            "cleared_phases": {
                phase.value: artifact_id
                for phase, artifact_id in sorted(
                    self.cleared_phases.items(), key=lambda item: item[0].order
                )
            },
            "artifact_history": [item.to_dict() for item in self.artifact_history],
            "verdict_history": [item.to_dict() for item in self.verdict_history],
            "transitions": [item.to_dict() for item in self.transitions],
            "abort_reason": self.abort_reason,
            "final_report": None if self.final_report is None else self.final_report.to_dict(),
            "created_at": _iso(self.created_at),
        }

    def to_json(self) -> str:
        return canonical_json(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> WorkflowState:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"WorkflowState: invalid JSON: {exc}") from exc
        return cls.from_dict(_expect_mapping(parsed, "WorkflowState"))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> WorkflowState:
        parsed = _expect_object(
            data,
            "WorkflowState",
            required={
                "schema_version",
                "workflow_id",
                "task",
                "settings",
                "current_phase",
                "generation",
                "requested_features",
                "scope_ledger",
                "cleared_phases",
                "artifact_history",
                "verdict_history",
                "transitions",
                "created_at",
            },
            optional={"abort_reason", "final_report"},
        )
        version = _as_int(parsed["schema_version"], "WorkflowState.schema_version", minimum=1)
        if version != WORKFLOW_STATE_SCHEMA_VERSION:
            raise ValueError(
                f"WorkflowState.schema_version: unsupported version {version} "
                f"(expected {WORKFLOW_STATE_SCHEMA_VERSION})"
            )

        cleared_raw = _expect_mapping(parsed["cleared_phases"], "WorkflowState.cleared_phases")
        cleared = {
            _as_enum(Phase, key, "WorkflowState.cleared_phases"): _as_str(
                value, f"WorkflowState.cleared_phases.{key}", max_len=64
            )
            for key, value in cleared_raw.items()
        }
        report_raw = parsed.get("final_report")

        state = cls(
            workflow_id=_as_str(parsed["workflow_id"], "WorkflowState.workflow_id", max_len=64),
            task=TaskDescriptor.from_dict(_expect_mapping(parsed["task"], "WorkflowState.task")),
            settings=WorkflowSettings.from_dict(
                _expect_mapping(parsed["settings"], "WorkflowState.settings")
            ),
            current_phase=_as_enum(
                WorkflowPhase, parsed["current_phase"], "WorkflowState.current_phase"
            ),
            generation=_as_int(parsed["generation"], "WorkflowState.generation", minimum=0),
            requested_features=_as_str_tuple(
                parsed["requested_features"],
                "WorkflowState.requested_features",
                unique=True,
                max_len=MAX_SCOPE_NAME_LENGTH,
            ),
            scope_ledger=ScopeLedger.from_dict(
                _expect_mapping(parsed["scope_ledger"], "WorkflowState.scope_ledger")
            ),
            cleared_phases=dict(sorted(cleared.items(), key=lambda item: item[0].order)),
            artifact_history=[
                Artifact.from_dict(_expect_mapping(item, f"WorkflowState.artifact_history[{index}]"))
                for index, item in enumerate(
                    _as_sequence(parsed["artifact_history"], "WorkflowState.artifact_history")
                )
            ],
            verdict_history=[
                Verdict.from_dict(_expect_mapping(item, f"WorkflowState.verdict_history[{index}]"))
                for index, item in enumerate(
                    _as_sequence(parsed["verdict_history"], "WorkflowState.verdict_history")
                )
            ],
            transitions=[
                PhaseTransition.from_dict(
                    _expect_mapping(item, f"WorkflowState.transitions[{index}]")
                )
                for index, item in enumerate(
                    _as_sequence(parsed["transitions"], "WorkflowState.transitions")
                )
            ],
            abort_reason=_as_optional_str(parsed.get("abort_reason"), "WorkflowState.abort_reason"),
            final_report=(
                None
                if report_raw is None
                else ComplianceReport.from_dict(
                    _expect_mapping(report_raw, "WorkflowState.final_report")
                )
            ),
            created_at=_as_datetime(parsed["created_at"], "WorkflowState.created_at"),
        )
        known_artifacts = {item.artifact_id for item in state.artifact_history}
        dangling = sorted(
            artifact_id for artifact_id in state.cleared_phases.values() if artifact_id not in known_artifacts
        )
        if dangling:
            raise ValueError(f"WorkflowState.cleared_phases: unknown artifact ids {dangling}")
        return state


def _iso(value: datetime) -> str:
    return _as_datetime(value, "datetime").isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = ["WorkflowState"]

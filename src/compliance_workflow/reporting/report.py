"""Immutable status and compliance report records."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from compliance_workflow.domain.models import (
    CanonicalModel,
    Outcome,
    Phase,
    PhaseTransition,
    ScopeItem,
    ScopeStatus,
    Verdict,
    Violation,
    WorkflowPhase,
    _as_datetime,
    _as_enum,
    _as_int,
    _as_sequence,
    _as_str,
    _expect_mapping,
    _expect_object,
)


@dataclass(frozen=True, slots=True)
class ReportedViolation(CanonicalModel):
    """A violation together with the verdict that raised it."""

    phase: Phase
    generation: int
    verdict_id: str
    violation: Violation

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ReportedViolation:
        parsed = _expect_object(
            data,
            "ReportedViolation",
            required={"phase", "generation", "verdict_id", "violation"},
        )
        return cls(
            phase=_as_enum(Phase, parsed["phase"], "ReportedViolation.phase"),
            generation=_as_int(parsed["generation"], "ReportedViolation.generation", minimum=0),
            verdict_id=_as_str(parsed["verdict_id"], "ReportedViolation.verdict_id", max_len=64),
            violation=Violation.from_dict(
                _expect_mapping(parsed["violation"], "ReportedViolation.violation")
            ),
        )


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Read-only snapshot of one workflow, safe to share across threads."""

    workflow_id: str
    task_id: str
    current_phase: WorkflowPhase
    generation: int
    cleared_phases: tuple[Phase, ...]
    scope: tuple[ScopeItem, ...]
    ledger_locked: bool
    latest_verdicts: tuple[Verdict, ...]
    outstanding_violations: tuple[Violation, ...]
    artifact_count: int
    verdict_count: int
    transitions: tuple[PhaseTransition, ...]
    abort_reason: str | None
    next_action: str

    @property
    def is_terminal(self) -> bool:
        return self.current_phase.is_terminal

    @property
    def unresolved_scope(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.scope if item.status is ScopeStatus.REQUESTED)

    @property
    def approved_scope(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.scope if item.status is ScopeStatus.APPROVED)

    def to_dict(self) -> dict[str, object]:
        return {
            "workflow_id": self.workflow_id,
            "task_id": self.task_id,
            "current_phase": self.current_phase.value,
            "generation": self.generation,
            "cleared_phases": [phase.value for phase in self.cleared_phases],
            "scope": [item.to_dict() for item in self.scope],
            "ledger_locked": self.ledger_locked,
            "latest_verdicts": [verdict.to_dict() for verdict in self.latest_verdicts],
            "outstanding_violations": [item.to_dict() for item in self.outstanding_violations],
            "artifact_count": self.artifact_count,
            "verdict_count": self.verdict_count,
            "transitions": [item.to_dict() for item in self.transitions],
            "abort_reason": self.abort_reason,
            "next_action": self.next_action,
        }


@dataclass(frozen=True, slots=True)
class ComplianceReport(CanonicalModel):
    """Final, immutable outcome of a completed workflow.

    ``total_violations`` counts every violation ever raised in any verdict,
    including ones later fixed by resubmission.
    """

    workflow_id: str
    task_id: str
    outcome: Outcome
    total_violations: int
    violations: tuple[ReportedViolation, ...]
    transitions: tuple[PhaseTransition, ...]
    final_scope: tuple[ScopeItem, ...]
    verdict_count: int
    generation: int
    finalized_at: datetime

    @property
    def passed(self) -> bool:
        return self.outcome is Outcome.PASS

    @property
    def approved_scope(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.final_scope if item.status is ScopeStatus.APPROVED)

    def violations_for(self, phase: Phase) -> tuple[ReportedViolation, ...]:
        return tuple(item for item in self.violations if item.phase is phase)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ComplianceReport:
        parsed = _expect_object(
            data,
            "ComplianceReport",
            required={
                "workflow_id",
                "task_id",
                "outcome",
                "total_violations",
                "violations",
                "transitions",
                "final_scope",
                "verdict_count",
                "generation",
                "finalized_at",
            },
        )
        return cls(
            workflow_id=_as_str(parsed["workflow_id"], "ComplianceReport.workflow_id", max_len=64),
            task_id=_as_str(parsed["task_id"], "ComplianceReport.task_id", max_len=256),
            outcome=_as_enum(Outcome, parsed["outcome"], "ComplianceReport.outcome"),
            total_violations=_as_int(
                parsed["total_violations"], "ComplianceReport.total_violations", minimum=0
            ),
            violations=tuple(
                ReportedViolation.from_dict(
                    _expect_mapping(item, f"ComplianceReport.violations[{index}]")
                )
                for index, item in enumerate(
                    _as_sequence(parsed["violations"], "ComplianceReport.violations")
                )
            ),
            transitions=tuple(
                PhaseTransition.from_dict(
                    _expect_mapping(item, f"ComplianceReport.transitions[{index}]")
                )
                for index, item in enumerate(
                    _as_sequence(parsed["transitions"], "ComplianceReport.transitions")
                )
            ),
            final_scope=tuple(
                ScopeItem.from_dict(_expect_mapping(item, f"ComplianceReport.final_scope[{index}]"))
                for index, item in enumerate(
                    _as_sequence(parsed["final_scope"], "ComplianceReport.final_scope")
                )
            ),
            verdict_count=_as_int(
                parsed["verdict_count"], "ComplianceReport.verdict_count", minimum=0
            ),
            generation=_as_int(parsed["generation"], "ComplianceReport.generation", minimum=0),
            finalized_at=_as_datetime(parsed["finalized_at"], "ComplianceReport.finalized_at"),
        )


__all__ = ["ComplianceReport", "ReportedViolation", "StatusReport"]

"""Compliance reporter: status snapshots and the final compliance report."""

from __future__ import annotations

from datetime import datetime

from compliance_workflow.domain.errors import WorkflowNotCompleteError
from compliance_workflow.domain.models import (
    Outcome,
    Phase,
    PhaseTransition,
    TransitionKind,
    Verdict,
    Violation,
    WorkflowPhase,
)
from compliance_workflow.reporting.report import ComplianceReport, ReportedViolation, StatusReport
from compliance_workflow.workflow.state import WorkflowState


def snapshot(state: WorkflowState) -> StatusReport:
    """Build an immutable snapshot from ``state`` alone."""
    latest = _latest_verdicts(state)
    outstanding: list[Violation] = []
    for verdict in latest:
        if not verdict.passed:
            outstanding.extend(verdict.blocking_violations)
    return StatusReport(
        workflow_id=state.workflow_id,
        task_id=state.task.task_id,
        current_phase=state.current_phase,
        generation=state.generation,
        cleared_phases=tuple(sorted(state.cleared_phases, key=lambda phase: phase.order)),
        scope=state.scope_ledger.items(),
        ledger_locked=state.scope_ledger.locked,
        latest_verdicts=latest,
        outstanding_violations=tuple(outstanding),
        artifact_count=len(state.artifact_history),
        verdict_count=len(state.verdict_history),
        transitions=tuple(state.transitions),
        abort_reason=state.abort_reason,
        next_action=next_action(state),
    )


def ready_to_finalize(state: WorkflowState) -> bool:
    if state.current_phase is not WorkflowPhase.VERIFYING:
        return False
    latest = state.latest_verdict(Phase.VERIFY)
    return latest is not None and latest.passed


def completion_transition(state: WorkflowState, at: datetime) -> PhaseTransition:
    return PhaseTransition(
        from_phase=state.current_phase,
        to_phase=WorkflowPhase.COMPLETED,
        kind=TransitionKind.COMPLETE,
        generation=state.generation,
        at=at,
    )


def finalize(state: WorkflowState, *, finalized_at: datetime) -> ComplianceReport:
    """Build the final report; the workflow must be verifying with a passing Verify verdict.

    The returned report already lists the completion transition; the caller
    appends ``report.transitions[-1]`` to the state when it commits.
    """
    if state.current_phase is WorkflowPhase.COMPLETED and state.final_report is not None:
        return state.final_report
    if not ready_to_finalize(state):
        raise WorkflowNotCompleteError(
            f"workflow {state.workflow_id} cannot be finalized from phase "
            f"{state.current_phase.value!r}: the Verify phase has not passed"
        )

    reported = tuple(
        ReportedViolation(
            phase=verdict.phase,
            generation=verdict.generation,
            verdict_id=verdict.verdict_id,
            violation=violation,
        )
        for verdict in state.verdict_history
        for violation in verdict.violations
    )
    return ComplianceReport(
        workflow_id=state.workflow_id,
        task_id=state.task.task_id,
        outcome=Outcome.PASS,
        total_violations=len(reported),
        violations=reported,
        transitions=(*state.transitions, completion_transition(state, finalized_at)),
        final_scope=state.scope_ledger.items(),
        verdict_count=len(state.verdict_history),
        generation=state.generation,
        finalized_at=finalized_at,
    )


def next_action(state: WorkflowState) -> str:
    phase = state.current_phase
    if phase is WorkflowPhase.COMPLETED:
        return "none: workflow completed"
    if phase is WorkflowPhase.ABORTED:
        return "none: workflow aborted"
    if phase is WorkflowPhase.CREATED:
        return "start the workflow"

    artifact_phase = phase.artifact_phase
    assert artifact_phase is not None
    latest = state.latest_verdict(artifact_phase)
    if latest is not None and not latest.passed:
        return f"revise or resubmit the {artifact_phase.value} artifact"
    if phase is WorkflowPhase.CLARIFYING:
        unresolved = [item.name for item in state.scope_ledger.unresolved()]
        if unresolved:
            return f"answer clarification for: {', '.join(unresolved)}"
        return "submit the clarify artifact"
    if phase is WorkflowPhase.VERIFYING and latest is not None and latest.passed:
        return "finalize"
    return f"submit the {artifact_phase.value} artifact"


def _latest_verdicts(state: WorkflowState) -> tuple[Verdict, ...]:
    found: list[Verdict] = []
    for phase in Phase:
        verdict = state.latest_verdict(phase)
        if verdict is not None:
            found.append(verdict)
    return tuple(found)


__all__ = [
    "completion_transition",
    "finalize",
    "next_action",
    "ready_to_finalize",
    "snapshot",
]

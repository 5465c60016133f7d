"""
compliance-workflow — unit tests for the workflow state machine

Purpose
- Validate phase ordering, failing and passing submissions, revise, abort,
  finalize and the abort-on-conflict rule.

What this test file should cover
- Usage errors leave the workflow untouched.
- Data conflicts abort the workflow before the error propagates.
- Concurrent mutations on one handle are serialized.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from compliance_workflow.domain.errors import (
    OutOfOrderError,
    PhaseMismatchError,
    ReviseNotApplicableError,
    ScopeConflictError,
    ScopeLockedError,
    UnknownScopeItemError,
    WorkflowInvariantError,
    WorkflowNotCompleteError,
    WorkflowTerminatedError,
)
from compliance_workflow.domain.models import (
    Artifact,
    Phase,
    ScopeItem,
    ScopeStatus,
    TransitionKind,
    Verdict,
    ViolationKind,
    WorkflowPhase,
)
from compliance_workflow.scope.extraction import StaticFeatureExtractor
from compliance_workflow.validation import ValidatorRegistry

if TYPE_CHECKING:
    from compliance_workflow.workflow.state import WorkflowState


def test_create_extracts_scope_and_starts_clarifying(make_handle) -> None:
    handle = make_handle("The name, an email and phone")
    assert handle.current_phase is WorkflowPhase.CLARIFYING
    assert handle.generation == 0
    state = handle.export_state()
    assert state.requested_features == ("name", "email", "phone")
    assert [item.status for item in state.scope_ledger.items()] == [ScopeStatus.REQUESTED] * 3
    assert [item.kind for item in state.transitions] == [TransitionKind.START]


def test_task_features_and_custom_extractor_take_effect(make_task, clock) -> None:
    from compliance_workflow.workflow import create_workflow

    preset = create_workflow(make_task(features=[" name", "email", "name"]), clock=clock)
    assert preset.export_state().requested_features == ("name", "email")

    extracted = create_workflow(
        make_task("anything"), extractor=StaticFeatureExtractor(["avatar"]), clock=clock
    )
    assert extracted.export_state().requested_features == ("avatar",)


def test_submitting_ahead_of_prerequisites_is_out_of_order(make_handle, artifacts) -> None:
    handle = make_handle()
    before = handle.to_json()
    with pytest.raises(OutOfOrderError) as error:
        handle.submit_artifact(Phase.IMPLEMENT, artifacts.implement(["name"]))
    assert error.value.missing == ("clarify", "plan")
    assert handle.to_json() == before


def test_resubmitting_a_cleared_phase_is_phase_mismatch(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name", "email"], until=Phase.CLARIFY)
    with pytest.raises(PhaseMismatchError) as error:
        handle.submit_artifact(Phase.CLARIFY, artifacts.clarify())
    assert error.value.current == "planning"


def test_artifact_phase_must_match_submission_phase(make_handle, artifacts) -> None:
    handle = make_handle()
    with pytest.raises(PhaseMismatchError):
        handle.submit_artifact(Phase.CLARIFY, artifacts.plan(["name"]))


def test_failing_clarify_keeps_phase(make_handle, artifacts) -> None:
    handle = make_handle()
    handle.answer_clarification("name", "approved")
    verdict = handle.submit_artifact(Phase.CLARIFY, artifacts.clarify())
    assert not verdict.passed
    assert [item.related_scope_item for item in verdict.violations] == ["email"]
    assert handle.current_phase is WorkflowPhase.CLARIFYING

    handle.answer_clarification("email", "rejected")
    assert handle.submit_artifact(Phase.CLARIFY, artifacts.clarify()).passed
    assert handle.current_phase is WorkflowPhase.PLANNING


def test_clarification_only_while_clarifying(make_handle, artifacts) -> None:
    handle = make_handle()
    with pytest.raises(UnknownScopeItemError):
        handle.answer_clarification("phone", "approved")
    artifacts.drive(handle, approve=["name", "email"], until=Phase.CLARIFY)
    with pytest.raises(PhaseMismatchError):
        handle.answer_clarification("name", "rejected")
    with pytest.raises(PhaseMismatchError):
        handle.register_scope_item("phone")
    assert not handle.is_terminal


def test_register_scope_item_is_idempotent_and_conflicts_abort(make_handle) -> None:
    handle = make_handle()
    assert handle.register_scope_item("phone") == ScopeItem(name="phone")
    assert handle.register_scope_item(" phone") == ScopeItem(name="phone")
    assert handle.current_report().unresolved_scope == ("name", "email", "phone")

    with pytest.raises(ScopeConflictError):
        handle.register_scope_item(ScopeItem(name="phone", status=ScopeStatus.APPROVED))
    assert handle.current_phase is WorkflowPhase.ABORTED
    assert handle.current_report().abort_reason.startswith("ScopeConflictError:")


def test_reregistering_an_answered_item_is_a_no_op(make_handle) -> None:
    handle = make_handle()
    handle.answer_clarification("name", "approved")
    handle.answer_clarification("email", "rejected")

    assert handle.register_scope_item("name") == ScopeItem(name="name", status=ScopeStatus.APPROVED)
    assert handle.register_scope_item(" email ").status is ScopeStatus.REJECTED
    assert handle.current_phase is WorkflowPhase.CLARIFYING
    assert handle.current_report().approved_scope == ("name",)


def test_overlong_request_fragments_are_not_scope_items(make_handle) -> None:
    handle = make_handle("x" * 300 + " and name")
    assert handle.current_phase is WorkflowPhase.CLARIFYING
    assert handle.export_state().requested_features == ("name",)
    assert make_handle("y" * 300).export_state().requested_features == ()


def test_failing_resubmission_uncleared_the_phase(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name"], reject=["email"], until=Phase.CLARIFY)
    first = handle.submit_artifact(Phase.PLAN, artifacts.plan(["name", "email"]))
    assert not first.passed
    assert handle.current_phase is WorkflowPhase.PLANNING
    assert Phase.PLAN not in handle.current_report().cleared_phases

    second = handle.submit_artifact(Phase.PLAN, artifacts.plan(["name"]))
    assert second.passed
    assert handle.current_phase is WorkflowPhase.IMPLEMENTING


def test_duplicate_artifact_ids_are_replaced(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name"], reject=["email"], until=Phase.CLARIFY)
    artifact = artifacts.plan(["name", "email"])
    first = handle.submit_artifact(Phase.PLAN, artifact)
    second = handle.submit_artifact(Phase.PLAN, artifact)
    assert first.artifact_id == artifact.artifact_id
    assert second.artifact_id != artifact.artifact_id
    history = handle.export_state().artifact_history
    assert len({item.artifact_id for item in history}) == len(history)


def test_revise_to_clarify_reopens_ledger(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name"], reject=["email"], until=Phase.CLARIFY)
    failing = handle.submit_artifact(Phase.PLAN, artifacts.plan(["name", "email"]))
    assert failing.earliest_violated_phase is Phase.CLARIFY

    target = handle.revise()

    assert target is WorkflowPhase.CLARIFYING
    assert handle.current_phase is WorkflowPhase.CLARIFYING
    assert handle.generation == 1
    report = handle.current_report()
    assert report.cleared_phases == ()
    assert not report.ledger_locked
    assert report.transitions[-1].kind is TransitionKind.REVISE
    assert failing.verdict_id in (report.transitions[-1].reason or "")

    handle.answer_clarification("email", "approved")
    artifacts.drive(handle, approve=["name", "email"])
    assert handle.finalize().generation == 1


def test_revise_to_plan_keeps_clarify_cleared(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name", "email"], until=Phase.PLAN)
    failing = handle.submit_artifact(
        Phase.IMPLEMENT, artifacts.implement(["name", "email"], layer="domain", references=["presentation"])
    )
    assert [item.kind for item in failing.violations] == [ViolationKind.LAYERING]

    assert handle.revise(failing) is WorkflowPhase.PLANNING
    assert handle.current_report().cleared_phases == (Phase.CLARIFY,)
    assert handle.current_report().ledger_locked


def test_implement_touching_rejected_item_revises_to_clarify(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name"], reject=["email"], until=Phase.PLAN)
    implementation = artifacts.implement(["name"])
    failing = handle.submit_artifact(
        Phase.IMPLEMENT,
        Artifact(
            phase=Phase.IMPLEMENT,
            payload=implementation.payload,
            declared_layer=implementation.declared_layer,
            declared_scope_items=("email",),
        ),
    )
    assert [item.kind for item in failing.violations] == [ViolationKind.SCOPE_CREEP]
    assert failing.earliest_violated_phase is Phase.CLARIFY

    assert handle.revise(failing) is WorkflowPhase.CLARIFYING
    report = handle.current_report()
    assert report.cleared_phases == ()
    assert not report.ledger_locked
    assert handle.answer_clarification("email", "approved").status is ScopeStatus.APPROVED


def test_revise_without_current_failure_is_rejected(make_handle, artifacts) -> None:
    handle = make_handle()
    with pytest.raises(ReviseNotApplicableError):
        handle.revise()

    artifacts.drive(handle, approve=["name"], reject=["email"], until=Phase.CLARIFY)
    passing = handle.export_state().verdict_history[-1]
    with pytest.raises(ReviseNotApplicableError, match="passed"):
        handle.revise(passing)

    failing = handle.submit_artifact(Phase.PLAN, artifacts.plan(["name", "email"]))
    handle.revise(failing)
    with pytest.raises(ReviseNotApplicableError, match="does not belong to generation 1"):
        handle.revise(failing)


def test_abort_is_terminal(make_handle, artifacts) -> None:
    handle = make_handle()
    handle.abort("cancelled by requester")
    assert handle.is_terminal
    assert handle.current_report().transitions[-1].kind is TransitionKind.ABORT

    with pytest.raises(WorkflowTerminatedError):
        handle.submit_artifact(Phase.CLARIFY, artifacts.clarify())
    with pytest.raises(WorkflowTerminatedError):
        handle.answer_clarification("name", "approved")
    with pytest.raises(WorkflowTerminatedError):
        handle.abort("again")
    with pytest.raises(WorkflowTerminatedError):
        handle.finalize()


def test_completed_workflow_refuses_mutations(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name", "email"])
    handle.finalize()
    assert handle.current_phase is WorkflowPhase.COMPLETED
    with pytest.raises(WorkflowTerminatedError):
        handle.submit_artifact(Phase.VERIFY, artifacts.verify(["name", "email"]))
    with pytest.raises(WorkflowTerminatedError):
        handle.revise()


def test_finalize_before_verify_passes(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name"], reject=["email"], until=Phase.IMPLEMENT)
    handle.submit_artifact(Phase.VERIFY, artifacts.verify([]))
    with pytest.raises(WorkflowNotCompleteError):
        handle.finalize()
    assert handle.current_phase is WorkflowPhase.VERIFYING


class _WrongArtifactValidator:
    phase = Phase.CLARIFY

    def validate(self, artifact: Artifact, state: WorkflowState) -> Verdict:
        return Verdict.from_violations(Artifact(phase=Phase.CLARIFY), [])


def test_validator_returning_foreign_verdict_aborts(make_handle, artifacts) -> None:
    registry = ValidatorRegistry()
    registry.register_external(Phase.CLARIFY, _WrongArtifactValidator)
    handle = make_handle(registry=registry)
    with pytest.raises(WorkflowInvariantError, match="expected art-"):
        handle.submit_artifact(Phase.CLARIFY, artifacts.clarify())
    assert handle.current_phase is WorkflowPhase.ABORTED
    assert handle.export_state().verdict_history == []


def test_scope_locked_after_clarify_passes(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name", "email"], until=Phase.CLARIFY)
    state = handle.export_state()
    assert state.scope_ledger.locked
    with pytest.raises(ScopeLockedError):
        state.scope_ledger.register("phone")


def test_concurrent_clarify_submissions_are_serialized(make_handle, artifacts) -> None:
    handle = make_handle()
    handle.answer_clarification("name", "approved")
    handle.answer_clarification("email", "approved")

    barrier = threading.Barrier(8)
    outcomes: list[object] = []
    outcomes_lock = threading.Lock()

    def submit() -> None:
        barrier.wait()
        try:
            result: object = handle.submit_artifact(Phase.CLARIFY, artifacts.clarify())
        except PhaseMismatchError as exc:
            result = exc
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=submit) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    verdicts = [item for item in outcomes if isinstance(item, Verdict)]
    assert len(outcomes) == 8
    assert len(verdicts) == 1
    assert verdicts[0].passed
    assert handle.current_phase is WorkflowPhase.PLANNING
    assert handle.current_report().verdict_count == 1

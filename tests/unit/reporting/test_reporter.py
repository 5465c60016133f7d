"""
compliance-workflow — unit tests for the compliance reporter

Purpose
- Validate status snapshots, next-action hints and the final compliance
  report built from a workflow's history.
"""

from __future__ import annotations

import json

import pytest

from compliance_workflow.domain import ids as domain_ids
from compliance_workflow.domain.errors import WorkflowNotCompleteError
from compliance_workflow.domain.models import (
    Outcome,
    Phase,
    ScopeStatus,
    TransitionKind,
    ViolationKind,
    WorkflowPhase,
)
from compliance_workflow.reporting import ComplianceReport, reporter
from compliance_workflow.workflow.state import WorkflowState


def test_fresh_workflow_asks_for_clarification(make_handle) -> None:
    report = make_handle().current_report()
    assert report.current_phase is WorkflowPhase.CLARIFYING
    assert report.unresolved_scope == ("name", "email")
    assert report.next_action == "answer clarification for: name, email"
    assert report.cleared_phases == ()
    assert report.latest_verdicts == ()
    assert not report.is_terminal


def test_next_action_follows_the_workflow(make_handle, artifacts) -> None:
    handle = make_handle()
    handle.answer_clarification("name", "approved")
    handle.answer_clarification("email", "rejected")
    assert handle.current_report().next_action == "submit the clarify artifact"

    handle.submit_artifact(Phase.CLARIFY, artifacts.clarify())
    assert handle.current_report().next_action == "submit the plan artifact"

    handle.submit_artifact(Phase.PLAN, artifacts.plan(["name", "email"]))
    report = handle.current_report()
    assert report.next_action == "revise or resubmit the plan artifact"
    assert [item.kind for item in report.outstanding_violations] == [ViolationKind.SCOPE_CREEP]

    handle.submit_artifact(Phase.PLAN, artifacts.plan(["name"]))
    handle.submit_artifact(Phase.IMPLEMENT, artifacts.implement(["name"]))
    assert handle.current_report().next_action == "submit the verify artifact"

    handle.submit_artifact(Phase.VERIFY, artifacts.verify(["name"]))
    report = handle.current_report()
    assert report.next_action == "finalize"
    assert report.outstanding_violations == ()
    assert report.cleared_phases == tuple(Phase)


def test_terminal_next_actions(make_handle, artifacts) -> None:
    aborted = make_handle()
    aborted.abort("requirements withdrawn")
    assert aborted.current_report().next_action == "none: workflow aborted"
    assert aborted.current_report().abort_reason == "requirements withdrawn"

    completed = make_handle()
    artifacts.drive(completed, approve=["name", "email"])
    completed.finalize()
    assert completed.current_report().next_action == "none: workflow completed"


def test_created_state_must_be_started(make_task) -> None:
    state = WorkflowState(workflow_id=domain_ids.generate_workflow_id(), task=make_task())
    assert reporter.next_action(state) == "start the workflow"
    assert not reporter.ready_to_finalize(state)


def test_snapshot_is_json_serializable(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name"], reject=["email"], until=Phase.PLAN)
    payload = json.loads(json.dumps(handle.current_report().to_dict()))
    assert payload["current_phase"] == "implementing"
    assert payload["cleared_phases"] == ["clarify", "plan"]
    assert payload["ledger_locked"] is True
    assert payload["verdict_count"] == 2


def test_finalize_requires_passing_verify(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name", "email"], until=Phase.IMPLEMENT)
    with pytest.raises(WorkflowNotCompleteError, match="'verifying'|'implementing'"):
        handle.finalize()

    state = handle.export_state()
    with pytest.raises(WorkflowNotCompleteError):
        reporter.finalize(state, finalized_at=state.created_at)


def test_final_report_counts_every_violation_ever_raised(make_handle, artifacts) -> None:
    four = ["name", "email", "phone", "avatar"]
    handle = make_handle("name, email, phone and avatar")
    for item in four:
        handle.answer_clarification(item, "approved")
    handle.submit_artifact(Phase.CLARIFY, artifacts.clarify())

    failing = handle.submit_artifact(Phase.PLAN, artifacts.plan(four, layer="domain", references=["presentation"]))
    assert not failing.passed
    handle.submit_artifact(Phase.PLAN, artifacts.plan(four))
    warned = handle.submit_artifact(Phase.IMPLEMENT, artifacts.implement(four, undocumented=["avatar"]))
    assert warned.passed
    assert [item.kind for item in warned.violations] == [ViolationKind.DOCUMENTATION_GAP]
    handle.submit_artifact(Phase.VERIFY, artifacts.verify(four))

    report = handle.finalize()

    assert report.outcome is Outcome.PASS
    assert report.passed
    assert report.total_violations == len(failing.violations) + 1
    assert len(report.violations_for(Phase.PLAN)) == len(failing.violations)
    assert report.violations_for(Phase.IMPLEMENT)[0].violation.blocking is False
    assert report.verdict_count == 5
    assert report.generation == 0
    assert report.approved_scope == tuple(four)
    assert all(item.status is ScopeStatus.APPROVED for item in report.final_scope)
    assert report.transitions[0].kind is TransitionKind.START
    assert report.transitions[-1].kind is TransitionKind.COMPLETE
    assert report.transitions[-1].to_phase is WorkflowPhase.COMPLETED


def test_finalize_is_idempotent_and_report_round_trips(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name", "email"])

    first = handle.finalize()
    second = handle.finalize()

    assert second is first
    assert first.total_violations == 0
    assert ComplianceReport.from_json(first.to_json()) == first
    assert handle.export_state().final_report == first

"""
compliance-workflow — end-to-end smoke scenarios

Purpose
- Drive full workflows through the public API and check the outcomes a user
  relies on: scope creep is caught, layering is enforced, a clean run finalizes
  with a passing report and finalizing early is refused.
"""

from __future__ import annotations

import pytest

from compliance_workflow.domain.errors import WorkflowNotCompleteError
from compliance_workflow.domain.models import Outcome, Phase, ViolationKind, WorkflowPhase


@pytest.mark.smoke
def test_rejected_item_in_plan_is_scope_creep(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name"], reject=["email"], until=Phase.CLARIFY)

    verdict = handle.submit_artifact(Phase.PLAN, artifacts.plan(["name", "email"]))

    assert not verdict.passed
    creep = [item for item in verdict.violations if item.kind is ViolationKind.SCOPE_CREEP]
    assert len(creep) == 1
    assert creep[0].related_scope_item == "email"
    assert handle.current_phase is WorkflowPhase.PLANNING


@pytest.mark.smoke
def test_domain_layer_reaching_into_presentation_is_layering(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name", "email"], until=Phase.CLARIFY)

    verdict = handle.submit_artifact(
        Phase.PLAN,
        artifacts.plan(["name", "email"], layer="domain", references=("presentation",)),
    )

    assert not verdict.passed
    assert {item.kind for item in verdict.violations} == {ViolationKind.LAYERING}
    assert all(item.related_layer == "presentation" for item in verdict.violations)


@pytest.mark.smoke
def test_clean_run_finalizes_with_passing_report(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name", "email"])

    report = handle.finalize()

    assert report.outcome is Outcome.PASS
    assert report.total_violations == 0
    assert handle.current_phase is WorkflowPhase.COMPLETED
    assert handle.is_terminal


@pytest.mark.smoke
def test_finalize_while_planning_is_refused(make_handle, artifacts) -> None:
    handle = make_handle()
    artifacts.drive(handle, approve=["name", "email"], until=Phase.CLARIFY)

    with pytest.raises(WorkflowNotCompleteError):
        handle.finalize()

    assert handle.current_phase is WorkflowPhase.PLANNING

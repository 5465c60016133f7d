"""
compliance-workflow — unit tests for the phase validators

Purpose
- Exercise each built-in validator against hand-built workflow states: every
  content problem must come back as a violation inside the verdict, never as
  an exception.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

import pytest

from compliance_workflow.config.settings import WorkflowSettings
from compliance_workflow.domain import ids as domain_ids
from compliance_workflow.domain.models import (
    Artifact,
    Phase,
    TaskDescriptor,
    Verdict,
    Violation,
    ViolationKind,
)
from compliance_workflow.validation import (
    DEFAULT_VALIDATOR_REGISTRY,
    ClarifyValidator,
    ImplementValidator,
    PlanValidator,
    VerifyValidator,
)
from compliance_workflow.workflow.state import WorkflowState

_AT = datetime(2026, 1, 1, tzinfo=UTC)


def _state(
    task: TaskDescriptor,
    *,
    approved: Sequence[str] = (),
    rejected: Sequence[str] = (),
    requested: Sequence[str] = (),
    settings: WorkflowSettings | None = None,
) -> WorkflowState:
    state = WorkflowState(
        workflow_id=domain_ids.generate_workflow_id(),
        task=task,
        settings=settings or WorkflowSettings(),
    )
    for name in (*approved, *rejected, *requested):
        state.scope_ledger.register(name)
    for name in approved:
        state.scope_ledger.resolve(name, "approved")
    for name in rejected:
        state.scope_ledger.resolve(name, "rejected")
    return state


def _stamp(artifact: Artifact, generation: int = 0) -> Artifact:
    return Artifact(
        phase=artifact.phase,
        payload=artifact.payload,
        declared_layer=artifact.declared_layer,
        declared_scope_items=artifact.declared_scope_items,
        artifact_id=artifact.artifact_id,
        generation=generation,
        submitted_at=_AT,
    )


def _clear_plan(state: WorkflowState, plan: Artifact) -> None:
    stamped = _stamp(plan)
    state.artifact_history.append(stamped)
    state.cleared_phases[Phase.PLAN] = stamped.artifact_id


def _kinds(verdict: Verdict) -> list[ViolationKind]:
    return [item.kind for item in verdict.violations]


def test_default_registry_has_one_builtin_per_phase() -> None:
    assert DEFAULT_VALIDATOR_REGISTRY.registered_phases() == tuple(Phase)
    validators = DEFAULT_VALIDATOR_REGISTRY.create_all()
    assert isinstance(validators[Phase.CLARIFY], ClarifyValidator)
    assert isinstance(validators[Phase.VERIFY], VerifyValidator)


# --- clarify ---------------------------------------------------------------


def test_clarify_fails_for_each_unresolved_item(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"], requested=["email", "phone"])
    verdict = ClarifyValidator().validate(_stamp(artifacts.clarify()), state)
    assert not verdict.passed
    assert _kinds(verdict) == [ViolationKind.UNRESOLVED_SCOPE] * 2
    assert [item.related_scope_item for item in verdict.violations] == ["email", "phone"]
    assert verdict.earliest_violated_phase is Phase.CLARIFY


def test_clarify_passes_once_everything_is_decided(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"], rejected=["email"])
    verdict = ClarifyValidator().validate(_stamp(artifacts.clarify()), state)
    assert verdict.passed
    assert verdict.violations == ()


# --- plan ------------------------------------------------------------------


def test_plan_touching_rejected_item_is_scope_creep(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"], rejected=["email"])
    verdict = PlanValidator().validate(_stamp(artifacts.plan(["name", "email"])), state)
    assert not verdict.passed
    assert _kinds(verdict) == [ViolationKind.SCOPE_CREEP]
    assert verdict.violations[0].related_scope_item == "email"
    assert verdict.violations[0].origin_phase is Phase.CLARIFY


def test_plan_forbidden_layer_reference_is_layering_violation(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"])
    plan = artifacts.plan(["name"], layer="domain", references=["presentation"])
    verdict = PlanValidator().validate(_stamp(plan), state)
    assert _kinds(verdict) == [ViolationKind.LAYERING]
    violation = verdict.violations[0]
    assert violation.origin_phase is Phase.PLAN
    assert violation.related_layer == "presentation"
    assert violation.unit == "NameField"


def test_plan_layer_dependencies_and_unknown_layers(make_task) -> None:
    state = _state(make_task(), approved=["name"])
    plan = Artifact(
        phase=Phase.PLAN,
        declared_layer="presentation",
        payload={
            "changes": [{"unit": "NameField", "scope_item": "name", "references": ["cache"]}],
            "layer_dependencies": {"infrastructure": ["presentation"]},
        },
    )
    verdict = PlanValidator().validate(_stamp(plan), state)
    messages = [item.message for item in verdict.violations]
    assert _kinds(verdict) == [ViolationKind.LAYERING, ViolationKind.LAYERING]
    assert "unknown layer 'cache'" in messages[0]
    assert "'infrastructure' may not depend on layer 'presentation'" in messages[1]


def test_plan_unknown_declared_layer_is_reported_once(make_task) -> None:
    state = _state(make_task(), approved=["name", "email"])
    plan = Artifact(
        phase=Phase.PLAN,
        declared_layer="cache",
        payload={
            "changes": [
                {"unit": "NameField", "scope_item": "name", "references": ["domain"]},
                {"unit": "EmailField", "scope_item": "email"},
            ]
        },
    )
    verdict = PlanValidator().validate(_stamp(plan), state)
    assert _kinds(verdict) == [ViolationKind.LAYERING]
    assert verdict.violations[0].related_layer == "cache"
    assert "plan artifact declares unknown layer 'cache'" in verdict.violations[0].message


def test_plan_unmapped_change_and_missing_item(make_task) -> None:
    state = _state(make_task(), approved=["name", "email"])
    plan = Artifact(
        phase=Phase.PLAN,
        payload={"changes": [{"unit": "NameField", "scope_item": "name"}, {"unit": "Helpers"}]},
    )
    verdict = PlanValidator().validate(_stamp(plan), state)
    assert _kinds(verdict) == [ViolationKind.SCOPE_CREEP, ViolationKind.INCOMPLETE_PLAN]
    assert verdict.violations[0].unit == "Helpers"
    assert verdict.violations[0].origin_phase is Phase.PLAN
    assert verdict.violations[1].related_scope_item == "email"


@pytest.mark.parametrize(
    ("payload", "fragment"),
    [
        ({}, "plan.changes: missing required field"),
        ({"changes": "NameField"}, "expected array, got str"),
        ({"changes": [42]}, "plan.changes[0]: expected object"),
        ({"changes": [{"scope_item": "name"}]}, "plan.changes[0].unit: missing required field"),
        ({"changes": [], "layer_dependencies": {"presentation": "domain"}}, "expected array of layer names"),
    ],
)
def test_plan_shape_problems_are_malformed_artifact_violations(
    make_task, payload: dict[str, object], fragment: str
) -> None:
    state = _state(make_task())
    verdict = PlanValidator().validate(_stamp(Artifact(phase=Phase.PLAN, payload=payload)), state)
    assert not verdict.passed
    malformed = [item for item in verdict.violations if item.kind is ViolationKind.MALFORMED_ARTIFACT]
    assert any(fragment in item.message for item in malformed)


def test_plan_unit_mapped_to_two_items_is_malformed(make_task) -> None:
    state = _state(make_task(), approved=["name", "email"])
    plan = Artifact(
        phase=Phase.PLAN,
        payload={
            "changes": [
                {"unit": "Form", "scope_item": "name"},
                {"unit": "Form", "scope_item": "email"},
            ]
        },
    )
    verdict = PlanValidator().validate(_stamp(plan), state)
    assert ViolationKind.MALFORMED_ARTIFACT in _kinds(verdict)
    assert ViolationKind.INCOMPLETE_PLAN in _kinds(verdict)


def test_plan_passes_when_mapped_one_to_one(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name", "email"])
    verdict = PlanValidator().validate(_stamp(artifacts.plan(["name", "email"])), state)
    assert verdict.passed
    assert verdict.violations == ()


# --- implement -------------------------------------------------------------


def test_implement_passes_with_full_documentation(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name", "email"])
    _clear_plan(state, artifacts.plan(["name", "email"]))
    verdict = ImplementValidator().validate(_stamp(artifacts.implement(["name", "email"])), state)
    assert verdict.passed
    assert verdict.violations == ()


def test_implement_rechecks_layering_against_declared_layer(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"])
    _clear_plan(state, artifacts.plan(["name"]))
    implementation = artifacts.implement(["name"], layer="domain", references=["infrastructure"])
    verdict = ImplementValidator().validate(_stamp(implementation), state)
    assert _kinds(verdict) == [ViolationKind.LAYERING]
    assert verdict.earliest_violated_phase is Phase.PLAN


def test_implement_unplanned_unit_and_unapproved_item(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"], rejected=["email"])
    _clear_plan(state, artifacts.plan(["name"]))
    verdict = ImplementValidator().validate(_stamp(artifacts.implement(["name", "email"])), state)
    assert _kinds(verdict) == [ViolationKind.SCOPE_CREEP, ViolationKind.SCOPE_CREEP]
    assert verdict.violations[0].related_scope_item == "email"
    assert verdict.violations[0].origin_phase is Phase.CLARIFY
    assert verdict.violations[1].unit == "EmailField"
    assert verdict.violations[1].origin_phase is Phase.PLAN
    assert verdict.earliest_violated_phase is Phase.CLARIFY


def test_implement_references_without_layer_are_malformed(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"])
    _clear_plan(state, artifacts.plan(["name"]))
    implementation = Artifact(
        phase=Phase.IMPLEMENT,
        payload={"units": artifacts.implement(["name"]).payload["units"], "references": ["domain"]},
    )
    verdict = ImplementValidator().validate(_stamp(implementation), state)
    assert _kinds(verdict) == [ViolationKind.MALFORMED_ARTIFACT]


_FOUR = ("name", "email", "phone", "avatar")


@pytest.mark.parametrize(
    ("threshold", "undocumented", "blocking"),
    [
        (0.25, ("avatar",), False),
        (0.25, ("phone", "avatar"), True),
        (0.0, ("avatar",), True),
        (0.5, ("phone", "avatar"), False),
        (1.0, _FOUR, False),
    ],
)
def test_documentation_gaps_escalate_past_threshold(
    make_task, artifacts, threshold: float, undocumented: tuple[str, ...], blocking: bool
) -> None:
    settings = WorkflowSettings(documentation_gap_threshold=threshold)
    state = _state(make_task(), approved=_FOUR, settings=settings)
    _clear_plan(state, artifacts.plan(_FOUR))
    implementation = artifacts.implement(_FOUR, undocumented=undocumented)

    verdict = ImplementValidator().validate(_stamp(implementation), state)

    assert _kinds(verdict) == [ViolationKind.DOCUMENTATION_GAP] * len(undocumented)
    assert all(item.blocking is blocking for item in verdict.violations)
    assert verdict.passed is not blocking


def test_missing_unit_counts_as_documentation_gap(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name", "email"])
    _clear_plan(state, artifacts.plan(["name", "email"]))
    verdict = ImplementValidator().validate(_stamp(artifacts.implement(["name"])), state)
    assert _kinds(verdict) == [ViolationKind.DOCUMENTATION_GAP]
    assert verdict.violations[0].message == "unit 'EmailField' is not implemented"
    assert not verdict.passed


def test_partial_documentation_lists_missing_markers(make_task) -> None:
    state = _state(make_task(), approved=["name"])
    _clear_plan(state, Artifact(phase=Phase.PLAN, payload={"changes": [{"unit": "NameField", "scope_item": "name"}]}))
    implementation = Artifact(
        phase=Phase.IMPLEMENT,
        payload={
            "units": [
                {
                    "unit": "NameField",
                    "scope_item": "name",
                    "documentation": {"purpose": "x", "parameters": "  ", "failure_modes": []},
                }
            ]
        },
    )
    verdict = ImplementValidator().validate(_stamp(implementation), state)
    assert verdict.violations[0].message == (
        "unit 'NameField' is missing documentation: parameters, failure_modes"
    )


# --- verify ----------------------------------------------------------------


def test_verify_requires_min_intents_per_approved_item(make_task, artifacts) -> None:
    state = _state(
        make_task(),
        approved=["name", "email"],
        settings=WorkflowSettings(min_test_intents_per_item=2),
    )
    artifact = Artifact(
        phase=Phase.VERIFY,
        payload={
            "test_intents": [
                {"name": "rejects blank name", "scope_item": "name"},
                {"name": "trims name", "scope_item": "name"},
                {"name": "accepts email", "scope_item": "email"},
            ]
        },
    )
    verdict = VerifyValidator().validate(_stamp(artifact), state)
    assert _kinds(verdict) == [ViolationKind.MISSING_TEST]
    assert verdict.violations[0].related_scope_item == "email"
    assert "has 1 test intent(s); at least 2 required" in verdict.violations[0].message


def test_verify_intent_for_unapproved_item_is_scope_creep(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"], rejected=["email"])
    verdict = VerifyValidator().validate(_stamp(artifacts.verify(["name", "email"])), state)
    assert _kinds(verdict) == [ViolationKind.SCOPE_CREEP]


def test_verify_reports_outstanding_failures_in_current_generation(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"])
    state.generation = 1
    failing_old = Verdict.from_violations(
        _stamp(artifacts.implement(["name"]), generation=0),
        [Violation(kind=ViolationKind.LAYERING, message="old", origin_phase=Phase.PLAN)],
    )
    failing_now = Verdict.from_violations(
        _stamp(artifacts.implement(["name"]), generation=1),
        [Violation(kind=ViolationKind.LAYERING, message="now", origin_phase=Phase.PLAN)],
    )
    state.verdict_history.extend([failing_old, failing_now])

    verdict = VerifyValidator().validate(_stamp(artifacts.verify(["name"]), generation=1), state)
    assert _kinds(verdict) == [ViolationKind.OUTSTANDING_FAILURE]
    assert verdict.violations[0].origin_phase is Phase.IMPLEMENT
    assert failing_now.verdict_id in verdict.violations[0].message


def test_verify_ignores_failures_superseded_by_a_pass(make_task, artifacts) -> None:
    state = _state(make_task(), approved=["name"])
    failing = Verdict.from_violations(
        _stamp(artifacts.plan(["name"])),
        [Violation(kind=ViolationKind.LAYERING, message="bad", origin_phase=Phase.PLAN)],
    )
    passing = Verdict.from_violations(_stamp(artifacts.plan(["name"])), [])
    state.verdict_history.extend([failing, passing])

    verdict = VerifyValidator().validate(_stamp(artifacts.verify(["name"])), state)
    assert verdict.passed


def test_verify_malformed_intents(make_task) -> None:
    state = _state(make_task(), approved=["name"])
    artifact = Artifact(phase=Phase.VERIFY, payload={"test_intents": [{"name": "no target"}]})
    verdict = VerifyValidator().validate(_stamp(artifact), state)
    assert _kinds(verdict) == [ViolationKind.MALFORMED_ARTIFACT, ViolationKind.MISSING_TEST]
    assert verdict.violations[0].origin_phase is Phase.VERIFY

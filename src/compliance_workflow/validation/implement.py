"""
Implement phase validator.

Payload shape::

    {
      "units": [
        {"unit": "UserForm", "scope_item": "name",
         "documentation": {"purpose": "...", "parameters": "...", "failure_modes": "..."}}
      ],
      "references": ["domain"]
    }

Layer references are checked from the artifact's ``declared_layer``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from compliance_workflow.domain.models import Artifact, Phase, Verdict, Violation, ViolationKind
from compliance_workflow.validation.base import build_verdict, register_builtin_validator
from compliance_workflow.validation.checks import (
    ShapeCollector,
    layering_violations,
)
from compliance_workflow.validation.plan import PlanDocument, parse_plan

if TYPE_CHECKING:
    from compliance_workflow.workflow.state import WorkflowState


@register_builtin_validator(Phase.IMPLEMENT)
class ImplementValidator:
    phase = Phase.IMPLEMENT

    def validate(self, artifact: Artifact, state: WorkflowState) -> Verdict:
        collector = ShapeCollector(Phase.IMPLEMENT)
        payload = artifact.payload
        raw_units = collector.list_field(payload, "units", path="implement", required=True)
        references = collector.str_list_field(payload, "references", path="implement")

        documented: dict[str, Mapping[str, object]] = {}
        unit_scope: list[str] = []
        implemented: list[str] = []
        for path, entry in collector.entries(raw_units or [], path="implement.units"):
            unit = collector.str_field(entry, "unit", path=path, required=True)
            if unit is None:
                continue
            scope_item = collector.str_field(
                entry, "scope_item", path=path, required=False, unit=unit
            )
            if scope_item is not None:
                unit_scope.append(scope_item)
            docs = collector.mapping_field(entry, "documentation", path=path, required=False)
            implemented.append(unit)
            documented[unit] = docs or {}

        violations: list[Violation] = list(collector.violations)
        if raw_units is None:
            return build_verdict(artifact, violations)

        profile = state.task.architecture_profile
        if artifact.declared_layer is None:
            if references:
                violations.append(
                    Violation(
                        kind=ViolationKind.MALFORMED_ARTIFACT,
                        message="implement artifact lists references without a declared layer",
                        origin_phase=Phase.IMPLEMENT,
                    )
                )
        else:
            violations.extend(
                layering_violations(
                    profile,
                    artifact.declared_layer,
                    references,
                    context="implement artifact",
                )
            )

        declared = artifact.declared_scope_items + tuple(unit_scope)
        violations.extend(
            state.scope_ledger.scope_creep(declared, origin_phase=Phase.CLARIFY, context="implementation")
        )

        plan = _cleared_plan(state)
        planned_units = plan.units
        planned = set(planned_units)
        for unit in dict.fromkeys(implemented):
            if unit not in planned:
                violations.append(
                    Violation(
                        kind=ViolationKind.SCOPE_CREEP,
                        message=f"implemented unit {unit!r} is not part of the cleared plan",
                        origin_phase=Phase.PLAN,
                        unit=unit,
                    )
                )

        violations.extend(
            _documentation_gaps(
                planned_units,
                documented,
                required=state.settings.required_documentation,
                threshold=state.settings.documentation_gap_threshold,
            )
        )
        return build_verdict(artifact, violations)


def _cleared_plan(state: WorkflowState) -> PlanDocument:
    plan_artifact = state.cleared_artifact(Phase.PLAN)
    if plan_artifact is None:
        return PlanDocument(changes=(), layer_dependencies=())
    document = parse_plan(
        plan_artifact.payload,
        ShapeCollector(Phase.PLAN),
        default_layer=plan_artifact.declared_layer,
    )
    return document if document is not None else PlanDocument(changes=(), layer_dependencies=())


def _documentation_gaps(
    planned_units: tuple[str, ...],
    documented: Mapping[str, Mapping[str, object]],
    *,
    required: tuple[str, ...],
    threshold: float,
) -> list[Violation]:
    gaps: list[tuple[str, tuple[str, ...]]] = []
    for unit in planned_units:
        docs = documented.get(unit)
        if docs is None:
            gaps.append((unit, required))
            continue
        missing = tuple(marker for marker in required if not _has_marker(docs, marker))
        if missing:
            gaps.append((unit, missing))
    if not gaps:
        return []

    # Gaps escalate together once the undocumented share passes the threshold.
    blocking = len(gaps) / len(planned_units) > threshold
    return [
        Violation(
            kind=ViolationKind.DOCUMENTATION_GAP,
            message=(
                f"unit {unit!r} is not implemented"
                if unit not in documented
                else f"unit {unit!r} is missing documentation: {', '.join(missing)}"
            ),
            origin_phase=Phase.IMPLEMENT,
            unit=unit,
            blocking=blocking,
        )
        for unit, missing in gaps
    ]


def _has_marker(docs: Mapping[str, object], marker: str) -> bool:
    value = docs.get(marker)
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return False


__all__ = ["ImplementValidator"]

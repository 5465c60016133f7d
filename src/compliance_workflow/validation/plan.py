"""
Plan phase validator.

Payload shape::

    {
      "changes": [
        {"unit": "UserForm", "scope_item": "name", "layer": "presentation",
         "references": ["domain"]}
      ],
      "layer_dependencies": {"presentation": ["domain"]}
    }

``layer`` defaults to the artifact's ``declared_layer``; ``references`` and
``layer_dependencies`` are optional.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from compliance_workflow.domain.models import (
    Artifact,
    Phase,
    Verdict,
    Violation,
    ViolationKind,
)
from compliance_workflow.validation.base import build_verdict, register_builtin_validator
from compliance_workflow.validation.checks import (
    ShapeCollector,
    layering_violations,
    unknown_layer_violation,
)

if TYPE_CHECKING:
    from compliance_workflow.workflow.state import WorkflowState


@dataclass(frozen=True, slots=True)
class PlannedChange:
    unit: str
    scope_item: str | None
    layer: str | None
    references: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class PlanDocument:
    changes: tuple[PlannedChange, ...]
    layer_dependencies: tuple[tuple[str, tuple[str, ...]], ...]

    @property
    def units(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(change.unit for change in self.changes))

    def scope_items(self) -> tuple[str, ...]:
        return tuple(
            dict.fromkeys(change.scope_item for change in self.changes if change.scope_item)
        )


def parse_plan(
    payload: Mapping[str, object],
    collector: ShapeCollector,
    *,
    default_layer: str | None = None,
) -> PlanDocument | None:
    """Parse a Plan payload; returns ``None`` when the document is unusable."""
    raw_changes = collector.list_field(payload, "changes", path="plan", required=True)
    raw_dependencies = collector.mapping_field(
        payload, "layer_dependencies", path="plan", required=False
    )
    if raw_changes is None:
        return None

    changes: list[PlannedChange] = []
    owners: dict[str, str | None] = {}
    for path, entry in collector.entries(raw_changes, path="plan.changes"):
        unit = collector.str_field(entry, "unit", path=path, required=True)
        if unit is None:
            continue
        scope_item = collector.str_field(entry, "scope_item", path=path, required=False, unit=unit)
        layer = collector.str_field(entry, "layer", path=path, required=False, unit=unit)
        references = collector.str_list_field(entry, "references", path=path, unit=unit)
        if unit in owners and owners[unit] != scope_item:
            collector.malformed(
                path,
                f"unit {unit!r} is mapped to more than one scope item",
                unit=unit,
            )
            continue
        owners[unit] = scope_item
        changes.append(
            PlannedChange(
                unit=unit,
                scope_item=scope_item,
                layer=layer if layer is not None else default_layer,
                references=references,
            )
        )

    dependencies: list[tuple[str, tuple[str, ...]]] = []
    for source, targets in (raw_dependencies or {}).items():
        path = f"plan.layer_dependencies.{source}"
        if not isinstance(targets, list) or any(
            not isinstance(item, str) or not item.strip() for item in targets
        ):
            collector.malformed(path, "expected array of layer names")
            continue
        dependencies.append(
            (source.strip(), tuple(dict.fromkeys(item.strip() for item in targets)))
        )

    return PlanDocument(changes=tuple(changes), layer_dependencies=tuple(dependencies))


@register_builtin_validator(Phase.PLAN)
class PlanValidator:
    """Checks layering, scope mapping and plan completeness."""

    phase = Phase.PLAN

    def validate(self, artifact: Artifact, state: WorkflowState) -> Verdict:
        collector = ShapeCollector(Phase.PLAN)
        document = parse_plan(artifact.payload, collector, default_layer=artifact.declared_layer)
        violations: list[Violation] = list(collector.violations)
        if document is None:
            return build_verdict(artifact, violations)

        profile = state.task.architecture_profile
        ledger = state.scope_ledger

        # Changes inheriting an unknown declared layer are already covered by its violation.
        reported_layer: str | None = None
        if artifact.declared_layer is not None:
            unknown = unknown_layer_violation(
                profile, artifact.declared_layer, context="plan artifact"
            )
            if unknown:
                reported_layer = artifact.declared_layer
            violations.extend(unknown)
        for change in document.changes:
            if change.layer is None:
                if change.references:
                    violations.append(
                        Violation(
                            kind=ViolationKind.MALFORMED_ARTIFACT,
                            message=f"change {change.unit!r} lists references without a layer",
                            origin_phase=Phase.PLAN,
                            unit=change.unit,
                        )
                    )
                continue
            if change.layer == reported_layer:
                continue
            violations.extend(
                layering_violations(
                    profile,
                    change.layer,
                    change.references,
                    context=f"change {change.unit!r}",
                    unit=change.unit,
                )
            )
        for source, targets in document.layer_dependencies:
            violations.extend(
                layering_violations(profile, source, targets, context="plan layer_dependencies")
            )

        declared = artifact.declared_scope_items + document.scope_items()
        violations.extend(ledger.scope_creep(declared, origin_phase=Phase.CLARIFY, context="plan"))

        for change in document.changes:
            if change.scope_item is None:
                violations.append(
                    Violation(
                        kind=ViolationKind.SCOPE_CREEP,
                        message=f"change {change.unit!r} maps to no approved scope item",
                        origin_phase=Phase.PLAN,
                        unit=change.unit,
                    )
                )

        planned = set(document.scope_items())
        for name in ledger.approved_names():
            if name not in planned:
                violations.append(
                    Violation(
                        kind=ViolationKind.INCOMPLETE_PLAN,
                        message=f"approved scope item {name!r} has no planned change",
                        origin_phase=Phase.PLAN,
                        related_scope_item=name,
                    )
                )

        return build_verdict(artifact, violations)


__all__ = ["PlanDocument", "PlanValidator", "PlannedChange", "parse_plan"]

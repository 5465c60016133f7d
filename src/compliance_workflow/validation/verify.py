"""Verify phase validator: test-intent coverage of the approved scope."""

from __future__ import annotations

from typing import TYPE_CHECKING

from compliance_workflow.domain.models import Artifact, Phase, Verdict, Violation, ViolationKind
from compliance_workflow.validation.base import build_verdict, register_builtin_validator
from compliance_workflow.validation.checks import ShapeCollector, outstanding_failures

if TYPE_CHECKING:
    from compliance_workflow.workflow.state import WorkflowState


@register_builtin_validator(Phase.VERIFY)
class VerifyValidator:
    """
    Payload: ``{"test_intents": [{"name": "rejects blank name", "scope_item": "name"}]}``.

    Each approved scope item needs ``min_test_intents_per_item`` intents. Any
    earlier phase whose latest verdict in this generation is a Fail is
    reported as an outstanding failure.
    """

    phase = Phase.VERIFY

    def validate(self, artifact: Artifact, state: WorkflowState) -> Verdict:
        collector = ShapeCollector(Phase.VERIFY)
        raw_intents = collector.list_field(
            artifact.payload, "test_intents", path="verify", required=True
        )
        counts: dict[str, int] = {}
        targets: list[str] = []
        for path, entry in collector.entries(raw_intents or [], path="verify.test_intents"):
            name = collector.str_field(entry, "name", path=path, required=True)
            scope_item = collector.str_field(entry, "scope_item", path=path, required=True, unit=name)
            if name is None or scope_item is None:
                continue
            targets.append(scope_item)
            counts[scope_item] = counts.get(scope_item, 0) + 1

        violations: list[Violation] = list(collector.violations)
        if raw_intents is None:
            return build_verdict(artifact, violations)

        minimum = state.settings.min_test_intents_per_item
        for name in state.scope_ledger.approved_names():
            found = counts.get(name, 0)
            if found < minimum:
                violations.append(
                    Violation(
                        kind=ViolationKind.MISSING_TEST,
                        message=(
                            f"approved scope item {name!r} has {found} test intent(s); "
                            f"at least {minimum} required"
                        ),
                        origin_phase=Phase.VERIFY,
                        related_scope_item=name,
                    )
                )

        violations.extend(
            state.scope_ledger.scope_creep(
                artifact.declared_scope_items + tuple(targets),
                origin_phase=Phase.CLARIFY,
                context="test intent",
            )
        )
        violations.extend(outstanding_failures(state.verdicts_in_generation(), exclude=Phase.VERIFY))
        return build_verdict(artifact, violations)


__all__ = ["VerifyValidator"]

"""Clarify phase validator."""

from __future__ import annotations

from typing import TYPE_CHECKING

from compliance_workflow.domain.models import Artifact, Phase, Verdict, Violation, ViolationKind
from compliance_workflow.validation.base import build_verdict, register_builtin_validator

if TYPE_CHECKING:
    from compliance_workflow.workflow.state import WorkflowState


@register_builtin_validator(Phase.CLARIFY)
class ClarifyValidator:
    """Passes once every scope item has been approved or rejected.

    The Clarify payload itself is free-form (typically the questions asked and
    the answers recorded); only the ledger is inspected.
    """

    phase = Phase.CLARIFY

    def validate(self, artifact: Artifact, state: WorkflowState) -> Verdict:
        violations = [
            Violation(
                kind=ViolationKind.UNRESOLVED_SCOPE,
                message=f"scope item {item.name!r} has no clarification answer",
                origin_phase=Phase.CLARIFY,
                related_scope_item=item.name,
            )
            for item in state.scope_ledger.unresolved()
        ]
        return build_verdict(artifact, violations)


__all__ = ["ClarifyValidator"]

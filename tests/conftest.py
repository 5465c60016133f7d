"""Shared fixtures: a deterministic clock, a three-layer web profile and artifact builders."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta

import pytest

from compliance_workflow.config.settings import WorkflowSettings
from compliance_workflow.domain.models import (
    ArchitectureProfile,
    Artifact,
    Layer,
    Phase,
    TaskDescriptor,
)
from compliance_workflow.workflow import WorkflowHandle, create_workflow

DOCUMENTATION = {
    "purpose": "captures the field",
    "parameters": "value: str",
    "failure_modes": "rejects blank input",
}


class TickingClock:
    """Returns a strictly increasing UTC timestamp, one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


def unit_name(scope_item: str) -> str:
    return "".join(part.title() for part in scope_item.split()) + "Field"


class ArtifactBuilder:
    """Builds well-formed phase artifacts for a set of scope items."""

    def clarify(self) -> Artifact:
        return Artifact(phase=Phase.CLARIFY, payload={"questions": ["which fields?"]})

    def plan(
        self,
        items: Iterable[str],
        *,
        layer: str = "presentation",
        references: Sequence[str] = ("domain",),
    ) -> Artifact:
        changes = [
            {
                "unit": unit_name(item),
                "scope_item": item,
                "layer": layer,
                "references": list(references),
            }
            for item in items
        ]
        return Artifact(phase=Phase.PLAN, payload={"changes": changes}, declared_layer=layer)

    def implement(
        self,
        items: Iterable[str],
        *,
        undocumented: Iterable[str] = (),
        layer: str = "presentation",
        references: Sequence[str] = ("domain",),
    ) -> Artifact:
        skipped = set(undocumented)
        units = [
            {
                "unit": unit_name(item),
                "scope_item": item,
                "documentation": {} if item in skipped else dict(DOCUMENTATION),
            }
            for item in items
        ]
        return Artifact(
            phase=Phase.IMPLEMENT,
            payload={"units": units, "references": list(references)},
            declared_layer=layer,
        )

    def verify(self, items: Iterable[str], *, per_item: int = 1) -> Artifact:
        intents = [
            {"name": f"{item} case {index}", "scope_item": item}
            for item in items
            for index in range(per_item)
        ]
        return Artifact(phase=Phase.VERIFY, payload={"test_intents": intents})

    def drive(
        self,
        handle: WorkflowHandle,
        *,
        approve: Sequence[str],
        reject: Sequence[str] = (),
        until: Phase = Phase.VERIFY,
    ) -> None:
        """Answer clarification and submit passing artifacts up to and including ``until``."""
        for item in approve:
            handle.answer_clarification(item, "approved")
        for item in reject:
            handle.answer_clarification(item, "rejected")
        steps = (
            (Phase.CLARIFY, self.clarify()),
            (Phase.PLAN, self.plan(approve)),
            (Phase.IMPLEMENT, self.implement(approve)),
            (Phase.VERIFY, self.verify(approve)),
        )
        for phase, artifact in steps:
            verdict = handle.submit_artifact(phase, artifact)
            assert verdict.passed, [item.message for item in verdict.violations]
            if phase is until:
                return


def build_web_profile() -> ArchitectureProfile:
    return ArchitectureProfile(
        name="web",
        layers=(
            Layer(name="presentation", allowed_dependencies=("domain",)),
            Layer(name="domain"),
            Layer(name="infrastructure", allowed_dependencies=("domain",)),
        ),
    )


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def web_profile() -> ArchitectureProfile:
    return build_web_profile()


@pytest.fixture
def artifacts() -> ArtifactBuilder:
    return ArtifactBuilder()


@pytest.fixture
def make_task(web_profile: ArchitectureProfile):
    def _make(
        request: str = "name and email",
        *,
        task_id: str = "signup-form",
        features: Sequence[str] = (),
    ) -> TaskDescriptor:
        return TaskDescriptor(
            task_id=task_id,
            raw_request=request,
            architecture_profile=web_profile,
            requested_features=tuple(features),
        )

    return _make


@pytest.fixture
def make_handle(make_task, clock: TickingClock):
    def _make(
        request: str = "name and email",
        *,
        settings: WorkflowSettings | None = None,
        **kwargs: object,
    ) -> WorkflowHandle:
        return create_workflow(make_task(request), settings=settings, clock=clock, **kwargs)

    return _make

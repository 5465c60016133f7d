"""Shared payload-shape and layering checks used by the phase validators."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import cast

from compliance_workflow.domain.models import (
    ArchitectureProfile,
    Phase,
    Verdict,
    Violation,
    ViolationKind,
)


class ShapeCollector:
    """Reads payload fields and records ``malformed_artifact`` violations on mismatch."""

    __slots__ = ("phase", "violations")

    def __init__(self, phase: Phase) -> None:
        self.phase = phase
        self.violations: list[Violation] = []

    def malformed(self, path: str, message: str, *, unit: str | None = None) -> None:
        self.violations.append(
            Violation(
                kind=ViolationKind.MALFORMED_ARTIFACT,
                message=f"{path}: {message}",
                origin_phase=self.phase,
                unit=unit,
            )
        )

    def list_field(
        self, container: Mapping[str, object], key: str, *, path: str, required: bool
    ) -> list[object] | None:
        if key not in container:
            if required:
                self.malformed(f"{path}.{key}", "missing required field")
                return None
            return []
        value = container[key]
        if not isinstance(value, list):
            self.malformed(f"{path}.{key}", f"expected array, got {_type_name(value)}")
            return None
        return value

    def mapping_field(
        self, container: Mapping[str, object], key: str, *, path: str, required: bool
    ) -> Mapping[str, object] | None:
        if key not in container:
            if required:
                self.malformed(f"{path}.{key}", "missing required field")
                return None
            return {}
        value = container[key]
        if not isinstance(value, Mapping):
            self.malformed(f"{path}.{key}", f"expected object, got {_type_name(value)}")
            return None
        return cast("Mapping[str, object]", value)

    def str_field(
        self,
        container: Mapping[str, object],
        key: str,
        *,
        path: str,
        required: bool,
        unit: str | None = None,
    ) -> str | None:
        value = container.get(key)
        if value is None:
            if required:
                self.malformed(f"{path}.{key}", "missing required field", unit=unit)
            return None
        if not isinstance(value, str) or not value.strip():
            self.malformed(f"{path}.{key}", "expected non-empty string", unit=unit)
            return None
        return value.strip()

    def str_list_field(
        self,
        container: Mapping[str, object],
        key: str,
        *,
        path: str,
        unit: str | None = None,
    ) -> tuple[str, ...]:
        raw = self.list_field(container, key, path=path, required=False)
        if raw is None:
            return ()
        values: list[str] = []
        for index, item in enumerate(raw):
            if not isinstance(item, str) or not item.strip():
                self.malformed(f"{path}.{key}[{index}]", "expected non-empty string", unit=unit)
                continue
            values.append(item.strip())
        return tuple(dict.fromkeys(values))

    def entries(self, items: list[object], *, path: str) -> Iterator[tuple[str, Mapping[str, object]]]:
        for index, item in enumerate(items):
            entry_path = f"{path}[{index}]"
            if not isinstance(item, Mapping):
                self.malformed(entry_path, f"expected object, got {_type_name(item)}")
                continue
            yield entry_path, cast("Mapping[str, object]", item)


def layering_violations(
    profile: ArchitectureProfile,
    source: str,
    targets: Iterable[str],
    *,
    context: str,
    unit: str | None = None,
) -> list[Violation]:
    """Check ``source -> target`` references against the profile.

    Unknown layers on either side are reported as layering violations too.
    """
    if not profile.has_layer(source):
        return [
            _layering(
                f"{context} declares unknown layer {source!r}",
                layer=source,
                unit=unit,
            )
        ]
    found: list[Violation] = []
    for target in targets:
        if not profile.has_layer(target):
            found.append(
                _layering(
                    f"{context} in layer {source!r} references unknown layer {target!r}",
                    layer=target,
                    unit=unit,
                )
            )
        elif not profile.allows(source, target):
            found.append(
                _layering(
                    f"{context}: layer {source!r} may not depend on layer {target!r} "
                    f"under profile {profile.name!r}",
                    layer=target,
                    unit=unit,
                )
            )
    return found


def unknown_layer_violation(profile: ArchitectureProfile, layer: str, *, context: str) -> list[Violation]:
    if profile.has_layer(layer):
        return []
    return [_layering(f"{context} declares unknown layer {layer!r}", layer=layer)]


def outstanding_failures(
    verdicts: Iterable[Verdict],
    *,
    exclude: Phase,
) -> list[Violation]:
    """Phases whose latest verdict in ``verdicts`` is a Fail."""
    latest: dict[Phase, Verdict] = {}
    for verdict in verdicts:
        if verdict.phase is not exclude:
            latest[verdict.phase] = verdict
    return [
        Violation(
            kind=ViolationKind.OUTSTANDING_FAILURE,
            message=(
                f"{phase.value} phase has an unresolved failing verdict "
                f"({verdict.verdict_id})"
            ),
            origin_phase=phase,
        )
        for phase, verdict in sorted(latest.items(), key=lambda item: item[0].order)
        if not verdict.passed
    ]


def _layering(message: str, *, layer: str, unit: str | None = None) -> Violation:
    return Violation(
        kind=ViolationKind.LAYERING,
        message=message,
        origin_phase=Phase.PLAN,
        related_layer=layer,
        unit=unit,
    )


def _type_name(value: object) -> str:
    return "null" if value is None else type(value).__name__


__all__ = [
    "ShapeCollector",
    "layering_violations",
    "outstanding_failures",
    "unknown_layer_violation",
]

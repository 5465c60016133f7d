"""
Replay scripts: drive one workflow from a YAML list of steps.

Script layout::

    task_id: signup-form
    request: "Add name and email fields"
    profile: web            # named profile, path relative to the script, or inline mapping
    features: [name, email] # optional; otherwise extracted from ``request``
    steps:
      - answer: {item: name, decision: approved}
      - submit: {phase: clarify}
      - submit:
          phase: plan
          declared_layer: presentation
          payload: {changes: [...]}
      - finalize:
        expect_error: WorkflowNotCompleteError

Each step maps exactly one action (``answer``, ``register``, ``submit``,
``revise``, ``abort``, ``finalize``) to its arguments, plus an optional
``expect_error`` naming the usage error the step must raise.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Literal, cast

import yaml

from compliance_workflow.architecture.profile import (
    PROFILE_SUFFIXES,
    ProfileDirectory,
    load_profile,
    profile_from_mapping,
)
from compliance_workflow.config.settings import WorkflowSettings
from compliance_workflow.domain.errors import (
    ScopeConflictError,
    UsageError,
    WorkflowInvariantError,
)
from compliance_workflow.domain.models import (
    ArchitectureProfile,
    Artifact,
    Phase,
    TaskDescriptor,
    Verdict,
    WorkflowPhase,
)
from compliance_workflow.persistence.archive import WorkflowArchive
from compliance_workflow.reporting.report import ComplianceReport
from compliance_workflow.workflow.machine import Clock, WorkflowHandle, create_workflow

logger = logging.getLogger(__name__)

StepAction = Literal["answer", "register", "submit", "revise", "abort", "finalize"]
STEP_ACTIONS: Final[tuple[str, ...]] = ("answer", "register", "submit", "revise", "abort", "finalize")

_SCRIPT_KEYS: Final[frozenset[str]] = frozenset(
    {"task_id", "request", "profile", "features", "workflow_id", "steps"}
)
_SUBMIT_KEYS: Final[frozenset[str]] = frozenset(
    {"phase", "payload", "declared_layer", "declared_scope_items"}
)


class ScriptError(ValueError):
    """Replay script cannot be loaded or one of its steps is malformed."""


@dataclass(frozen=True, slots=True)
class ScriptStep:
    index: int
    action: StepAction
    arguments: Mapping[str, object]
    expect_error: str | None = None


@dataclass(frozen=True, slots=True)
class ReplayScript:
    task: TaskDescriptor
    steps: tuple[ScriptStep, ...]
    workflow_id: str | None = None


@dataclass(frozen=True, slots=True)
class StepResult:
    step: ScriptStep
    phase_after: WorkflowPhase
    verdict: Verdict | None = None
    detail: str | None = None


@dataclass(slots=True)
class ReplayResult:
    handle: WorkflowHandle
    steps: list[StepResult] = field(default_factory=list)
    report: ComplianceReport | None = None
    error: Exception | None = None

    @property
    def compliant(self) -> bool:
        return self.report is not None and self.report.passed


def load_script(
    path: str | Path,
    *,
    profiles: ProfileDirectory | None = None,
) -> ReplayScript:
    script_path = Path(path)
    try:
        raw = yaml.safe_load(script_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ScriptError(f"cannot read replay script {script_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ScriptError(f"invalid YAML in replay script {script_path}: {exc}") from exc
    return parse_script(raw, base_dir=script_path.parent, source=str(script_path), profiles=profiles)


def parse_script(
    data: object,
    *,
    base_dir: Path,
    source: str = "script",
    profiles: ProfileDirectory | None = None,
) -> ReplayScript:
    if not isinstance(data, Mapping):
        raise ScriptError(f"{source}: script root must be a mapping")
    unknown = sorted(str(key) for key in data if key not in _SCRIPT_KEYS)
    if unknown:
        raise ScriptError(f"{source}: unknown keys {unknown}")
    for key in ("task_id", "request", "profile", "steps"):
        if key not in data:
            raise ScriptError(f"{source}: missing required key {key!r}")

    profile = _resolve_profile(data["profile"], base_dir=base_dir, source=source, profiles=profiles)
    features = data.get("features") or ()
    if not isinstance(features, Sequence) or isinstance(features, str):
        raise ScriptError(f"{source}: features must be a list of strings")
    try:
        task = TaskDescriptor(
            task_id=cast(str, data["task_id"]),
            raw_request=cast(str, data["request"]),
            architecture_profile=profile,
            requested_features=tuple(cast(Sequence[str], features)),
        )
    except ValueError as exc:
        raise ScriptError(f"{source}: invalid task: {exc}") from exc

    raw_steps = data["steps"]
    if not isinstance(raw_steps, Sequence) or isinstance(raw_steps, str):
        raise ScriptError(f"{source}: steps must be a list")
    steps = tuple(_parse_step(item, index, source) for index, item in enumerate(raw_steps))

    workflow_id = data.get("workflow_id")
    if workflow_id is not None and not isinstance(workflow_id, str):
        raise ScriptError(f"{source}: workflow_id must be a string")
    return ReplayScript(task=task, steps=steps, workflow_id=workflow_id)


def run_script(
    script: ReplayScript,
    *,
    settings: WorkflowSettings | None = None,
    archive: WorkflowArchive | None = None,
    clock: Clock | None = None,
) -> ReplayResult:
    """Execute every step in order.

    Usage errors propagate unless the step declares them in ``expect_error``.
    A scope conflict or invariant breach aborts the workflow; replay stops and
    the error is recorded on the result.
    """
    handle = create_workflow(
        script.task,
        settings=settings,
        archive=archive,
        clock=clock,
        workflow_id=script.workflow_id,
    )
    result = ReplayResult(handle=handle)
    for step in script.steps:
        try:
            verdict, detail = _apply(handle, step, result)
        except (ScopeConflictError, WorkflowInvariantError) as exc:
            result.error = exc
            result.steps.append(
                StepResult(step=step, phase_after=handle.current_phase, detail=str(exc))
            )
            break
        except UsageError as exc:
            if step.expect_error != type(exc).__name__:
                raise
            result.steps.append(
                StepResult(
                    step=step,
                    phase_after=handle.current_phase,
                    detail=f"expected {type(exc).__name__}: {exc}",
                )
            )
            continue
        if step.expect_error is not None:
            raise ScriptError(
                f"step {step.index} ({step.action}): expected {step.expect_error} but the step succeeded"
            )
        result.steps.append(
            StepResult(step=step, phase_after=handle.current_phase, verdict=verdict, detail=detail)
        )
    logger.info(
        "replay finished",
        extra={
            "workflow_id": handle.workflow_id,
            "steps": len(result.steps),
            "final_phase": handle.current_phase.value,
        },
    )
    return result


def _apply(
    handle: WorkflowHandle, step: ScriptStep, result: ReplayResult
) -> tuple[Verdict | None, str | None]:
    args = step.arguments
    if step.action == "answer":
        item = handle.answer_clarification(
            _require_str(args, "item", step), _require_str(args, "decision", step)
        )
        return None, f"{item.name} -> {item.status.value}"
    if step.action == "register":
        item = handle.register_scope_item(_require_str(args, "item", step))
        return None, f"registered {item.name}"
    if step.action == "submit":
        phase = Phase(_require_str(args, "phase", step))
        payload = args.get("payload") or {}
        try:
            artifact = Artifact(
                phase=phase,
                payload=cast(dict, payload),
                declared_layer=cast("str | None", args.get("declared_layer")),
                declared_scope_items=tuple(cast(Sequence[str], args.get("declared_scope_items") or ())),
            )
        except ValueError as exc:
            raise ScriptError(f"step {step.index} (submit): invalid artifact: {exc}") from exc
        return handle.submit_artifact(phase, artifact), None
    if step.action == "revise":
        target = handle.revise()
        return None, f"revised to {target.value}"
    if step.action == "abort":
        reason = _require_str(args, "reason", step)
        handle.abort(reason)
        return None, f"aborted: {reason}"
    result.report = handle.finalize()
    return None, f"finalized: {result.report.outcome.value}"


def _parse_step(raw: object, index: int, source: str) -> ScriptStep:
    if not isinstance(raw, Mapping):
        raise ScriptError(f"{source}: step {index} must be a mapping")
    expect_error = raw.get("expect_error")
    if expect_error is not None and not isinstance(expect_error, str):
        raise ScriptError(f"{source}: step {index} expect_error must be an error class name")
    actions = [key for key in raw if key != "expect_error"]
    if len(actions) != 1 or actions[0] not in STEP_ACTIONS:
        raise ScriptError(
            f"{source}: step {index} must contain exactly one of {', '.join(STEP_ACTIONS)}"
        )
    action = cast(StepAction, actions[0])
    arguments = _step_arguments(action, raw[action], index, source)
    return ScriptStep(index=index, action=action, arguments=arguments, expect_error=expect_error)


def _step_arguments(action: str, value: object, index: int, source: str) -> Mapping[str, object]:
    if value is None:
        return {}
    # Shorthand: ``register: sms`` and ``abort: "reason"``.
    if isinstance(value, str) and action in ("register", "abort"):
        return {"item": value} if action == "register" else {"reason": value}
    if not isinstance(value, Mapping):
        raise ScriptError(f"{source}: step {index} ({action}) arguments must be a mapping")
    if action == "submit":
        unknown = sorted(str(key) for key in value if key not in _SUBMIT_KEYS)
        if unknown:
            raise ScriptError(f"{source}: step {index} (submit) has unknown keys {unknown}")
        phase = value.get("phase")
        if phase not in {item.value for item in Phase}:
            raise ScriptError(f"{source}: step {index} (submit) has invalid phase {phase!r}")
    return {str(key): item for key, item in value.items()}


def _resolve_profile(
    raw: object,
    *,
    base_dir: Path,
    source: str,
    profiles: ProfileDirectory | None,
) -> ArchitectureProfile:
    if isinstance(raw, Mapping):
        return profile_from_mapping(raw, source=f"{source}:profile")
    if not isinstance(raw, str) or not raw.strip():
        raise ScriptError(f"{source}: profile must be a name, a path or a mapping")
    name = raw.strip()
    if profiles is not None and name in profiles:
        return profiles.get(name)
    candidate = base_dir / name
    if candidate.suffix not in PROFILE_SUFFIXES:
        matches = [candidate.with_name(candidate.name + suffix) for suffix in PROFILE_SUFFIXES]
        candidate = next((item for item in matches if item.is_file()), candidate)
    if not candidate.is_file():
        raise ScriptError(f"{source}: profile {name!r} not found")
    return load_profile(candidate)


def _require_str(args: Mapping[str, object], key: str, step: ScriptStep) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ScriptError(f"step {step.index} ({step.action}): {key!r} must be a non-empty string")
    return value


__all__ = [
    "ReplayResult",
    "ReplayScript",
    "STEP_ACTIONS",
    "ScriptError",
    "ScriptStep",
    "StepResult",
    "load_script",
    "parse_script",
    "run_script",
]

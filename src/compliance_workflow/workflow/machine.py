"""
Workflow state machine.

``WorkflowHandle`` owns one ``WorkflowState`` and is the only code path that
mutates it. Mutations are serialized by a per-instance ``RLock``; readers call
``current_report()``, which returns the immutable snapshot published at the
end of the last mutation without taking the lock.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from threading import RLock
from typing import TYPE_CHECKING

from compliance_workflow.config.settings import WorkflowSettings
from compliance_workflow.domain import ids as domain_ids
from compliance_workflow.domain.errors import (
    OutOfOrderError,
    PhaseMismatchError,
    ReviseNotApplicableError,
    ScopeConflictError,
    WorkflowInvariantError,
    WorkflowTerminatedError,
)
from compliance_workflow.domain.models import (
    Artifact,
    Phase,
    PhaseTransition,
    ScopeItem,
    TaskDescriptor,
    TransitionKind,
    Verdict,
    WorkflowPhase,
    normalize_scope_name,
    utc_now,
)
from compliance_workflow.observability.logging import correlation_scope
from compliance_workflow.reporting import reporter
from compliance_workflow.reporting.report import ComplianceReport, StatusReport
from compliance_workflow.scope.extraction import FeatureExtractor
from compliance_workflow.validation import DEFAULT_VALIDATOR_REGISTRY, PhaseValidator, ValidatorRegistry
from compliance_workflow.workflow.state import WorkflowState

if TYPE_CHECKING:
    from compliance_workflow.persistence.archive import WorkflowArchive

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_PHASES: tuple[Phase, ...] = tuple(Phase)


class WorkflowHandle:
    """Single-owner handle over one workflow instance."""

    def __init__(
        self,
        state: WorkflowState,
        *,
        registry: ValidatorRegistry | None = None,
        archive: WorkflowArchive | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._state = state
        self._registry = registry if registry is not None else DEFAULT_VALIDATOR_REGISTRY
        self._validators: dict[Phase, PhaseValidator] = {}
        self._archive = archive
        self._clock: Clock = clock if clock is not None else utc_now
        self._lock = RLock()
        self._report: StatusReport = reporter.snapshot(state)

    @property
    def workflow_id(self) -> str:
        return self._state.workflow_id

    @property
    def task(self) -> TaskDescriptor:
        return self._state.task

    @property
    def current_phase(self) -> WorkflowPhase:
        return self._report.current_phase

    @property
    def generation(self) -> int:
        return self._report.generation

    @property
    def is_terminal(self) -> bool:
        return self._report.is_terminal

    def current_report(self) -> StatusReport:
        return self._report

    def export_state(self) -> WorkflowState:
        """Return a detached copy of the current state."""
        with self._lock:
            return WorkflowState.from_dict(self._state.to_dict())

    def to_dict(self) -> dict[str, object]:
        with self._lock:
            return dict(self._state.to_dict())

    def to_json(self) -> str:
        with self._lock:
            return self._state.to_json()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def submit_artifact(self, phase: Phase | str, artifact: Artifact) -> Verdict:
        """Validate ``artifact`` for ``phase`` and record the verdict."""
        key = Phase(phase)
        with self._lock, self._correlation(), self._abort_on_conflict():
            state = self._state
            self._ensure_active()
            missing = tuple(item.value for item in key.prerequisites if item not in state.cleared_phases)
            if missing:
                raise OutOfOrderError(requested=key.value, missing=missing)
            if state.current_phase is not key.workflow_phase:
                raise PhaseMismatchError(requested=key.value, current=state.current_phase.value)
            if artifact.phase is not key:
                raise PhaseMismatchError(
                    requested=artifact.phase.value, current=state.current_phase.value
                )

            now = self._clock()
            known_ids = {item.artifact_id for item in state.artifact_history}
            stamped = dataclasses.replace(
                artifact,
                artifact_id=(
                    domain_ids.generate_artifact_id()
                    if artifact.artifact_id in known_ids
                    else artifact.artifact_id
                ),
                generation=state.generation,
                submitted_at=now,
            )
            logger.info(
                "artifact submitted",
                extra={
                    "artifact_id": stamped.artifact_id,
                    "artifact_phase": key.value,
                    "generation": state.generation,
                },
            )
            verdict = self._validator(key).validate(stamped, state)
            if verdict.phase is not key or verdict.artifact_id != stamped.artifact_id:
                raise WorkflowInvariantError(
                    f"{key.value} validator returned a verdict for "
                    f"{verdict.phase.value}/{verdict.artifact_id}, expected {stamped.artifact_id}"
                )

            state.artifact_history.append(stamped)
            state.verdict_history.append(verdict)
            logger.info(
                "verdict recorded",
                extra={
                    "verdict_id": verdict.verdict_id,
                    "artifact_phase": key.value,
                    "outcome": verdict.outcome.value,
                    "violation_count": len(verdict.violations),
                    "blocking_count": len(verdict.blocking_violations),
                },
            )

            if verdict.passed:
                state.cleared_phases[key] = stamped.artifact_id
                if key is Phase.CLARIFY:
                    state.scope_ledger.lock()
                if key is not Phase.VERIFY:
                    self._transition(
                        _PHASES[key.order + 1].workflow_phase, TransitionKind.ADVANCE, now
                    )
            else:
                state.cleared_phases.pop(key, None)
            self._check_invariants()
            self._publish()
            return verdict

    def answer_clarification(self, scope_item: str, decision: str) -> ScopeItem:
        """Approve or reject one scope item while clarifying."""
        with self._lock, self._correlation(), self._abort_on_conflict():
            self._ensure_active()
            self._ensure_clarifying("clarify")
            resolved = self._state.scope_ledger.resolve(scope_item, decision)
            logger.info(
                "clarification answered",
                extra={"scope_item": resolved.name, "decision": resolved.status.value},
            )
            self._publish()
            return resolved

    def register_scope_item(self, item: ScopeItem | str) -> ScopeItem:
        """Add a ``requested`` scope item while clarifying.

        Re-registering an identical item is a no-op. A conflicting definition
        aborts the workflow and re-raises ``ScopeConflictError``.
        """
        with self._lock, self._correlation(), self._abort_on_conflict():
            self._ensure_active()
            self._ensure_clarifying("clarify")
            incoming = item if isinstance(item, ScopeItem) else ScopeItem(name=item)
            registered = self._state.scope_ledger.register(incoming)
            logger.info("scope item registered", extra={"scope_item": registered.name})
            self._publish()
            return registered

    def revise(self, verdict: Verdict | None = None) -> WorkflowPhase:
        """Return to the earliest phase blamed by a failing verdict and start a new generation."""
        with self._lock, self._correlation(), self._abort_on_conflict():
            state = self._state
            self._ensure_active()
            failing = verdict if verdict is not None else state.latest_failing_verdict()
            if failing is None:
                raise ReviseNotApplicableError(
                    f"workflow {state.workflow_id} has no failing verdict in generation "
                    f"{state.generation}"
                )
            if failing.passed:
                raise ReviseNotApplicableError(f"verdict {failing.verdict_id} passed; nothing to revise")
            recorded = {item.verdict_id for item in state.verdicts_in_generation()}
            if failing.verdict_id not in recorded:
                raise ReviseNotApplicableError(
                    f"verdict {failing.verdict_id} does not belong to generation {state.generation}"
                )

            target_phase = failing.earliest_violated_phase
            assert target_phase is not None
            target = target_phase.workflow_phase
            if target.rank > state.current_phase.rank:
                raise WorkflowInvariantError(
                    f"revise target {target.value!r} is ahead of current phase "
                    f"{state.current_phase.value!r}"
                )

            state.generation += 1
            for cleared in tuple(state.cleared_phases):
                if cleared.order >= target_phase.order:
                    del state.cleared_phases[cleared]
            if target_phase is Phase.CLARIFY:
                state.scope_ledger.unlock()
            self._transition(
                target,
                TransitionKind.REVISE,
                self._clock(),
                reason=f"revise from verdict {failing.verdict_id}",
            )
            self._check_invariants()
            self._publish()
            return target

    def abort(self, reason: str) -> None:
        """Terminate the workflow; irreversible."""
        with self._lock, self._correlation():
            self._ensure_active()
            self._abort_locked(reason)

    def finalize(self) -> ComplianceReport:
        """Produce the compliance report and complete the workflow.

        Calling it again on a completed workflow returns the same report.
        """
        with self._lock, self._correlation(), self._abort_on_conflict():
            state = self._state
            if state.current_phase is WorkflowPhase.COMPLETED and state.final_report is not None:
                return state.final_report
            self._ensure_active()
            report = reporter.finalize(state, finalized_at=self._clock())
            state.transitions.append(report.transitions[-1])
            state.current_phase = WorkflowPhase.COMPLETED
            state.final_report = report
            self._check_invariants()
            self._publish()
            logger.info(
                "workflow finalized",
                extra={
                    "outcome": report.outcome.value,
                    "total_violations": report.total_violations,
                    "verdict_count": report.verdict_count,
                },
            )
            self._archive_state()
            return report

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _start(self) -> None:
        with self._lock, self._correlation():
            if self._state.current_phase is not WorkflowPhase.CREATED:
                raise WorkflowInvariantError(
                    f"workflow {self._state.workflow_id} already started "
                    f"({self._state.current_phase.value})"
                )
            self._transition(WorkflowPhase.CLARIFYING, TransitionKind.START, self._clock())
            self._publish()

    def _transition(
        self,
        to_phase: WorkflowPhase,
        kind: TransitionKind,
        at: datetime,
        *,
        reason: str | None = None,
    ) -> None:
        state = self._state
        transition = PhaseTransition(
            from_phase=state.current_phase,
            to_phase=to_phase,
            kind=kind,
            generation=state.generation,
            at=at,
            reason=reason,
        )
        state.transitions.append(transition)
        state.current_phase = to_phase
        logger.info(
            "phase transition",
            extra={
                "from_phase": transition.from_phase.value,
                "to_phase": transition.to_phase.value,
                "transition": kind.value,
                "generation": state.generation,
            },
        )
        self._check_invariants()

    def _abort_locked(self, reason: str) -> None:
        state = self._state
        if state.is_terminal:
            return
        state.abort_reason = reason
        self._transition(WorkflowPhase.ABORTED, TransitionKind.ABORT, self._clock(), reason=reason)
        self._publish()
        logger.warning("workflow aborted", extra={"reason": reason})
        self._archive_state()

    def _archive_state(self) -> None:
        if self._archive is None:
            return
        self._archive.save(self._state)

    def _check_invariants(self) -> None:
        unresolved = self._state.unresolved_after_clarify()
        if unresolved:
            raise WorkflowInvariantError(
                f"scope items still requested after clarification: {', '.join(unresolved)}"
            )

    def _ensure_active(self) -> None:
        if self._state.is_terminal:
            raise WorkflowTerminatedError(
                f"workflow {self._state.workflow_id} is {self._state.current_phase.value}"
            )

    def _ensure_clarifying(self, requested: str) -> None:
        if self._state.current_phase is not WorkflowPhase.CLARIFYING:
            raise PhaseMismatchError(requested=requested, current=self._state.current_phase.value)

    def _validator(self, phase: Phase) -> PhaseValidator:
        validator = self._validators.get(phase)
        if validator is None:
            validator = self._registry.create(phase)
            self._validators[phase] = validator
        return validator

    def _publish(self) -> None:
        self._report = reporter.snapshot(self._state)

    @contextmanager
    def _abort_on_conflict(self) -> Iterator[None]:
        try:
            yield
        except (ScopeConflictError, WorkflowInvariantError) as exc:
            logger.error(
                "workflow data conflict",
                extra={"error_type": type(exc).__name__, "error": str(exc)},
            )
            self._abort_locked(f"{type(exc).__name__}: {exc}")
            raise

    @contextmanager
    def _correlation(self) -> Iterator[None]:
        with correlation_scope(
            workflow_id=self._state.workflow_id,
            task_id=self._state.task.task_id,
            phase=self._state.current_phase.value,
        ):
            yield


def create_workflow(
    task: TaskDescriptor,
    *,
    extractor: FeatureExtractor | None = None,
    settings: WorkflowSettings | None = None,
    archive: WorkflowArchive | None = None,
    clock: Clock | None = None,
    workflow_id: str | None = None,
    registry: ValidatorRegistry | None = None,
) -> WorkflowHandle:
    """Create a workflow for ``task`` and move it into ``clarifying``.

    Features come from ``task.requested_features`` when present, otherwise from
    ``extractor`` (default: the keyword extractor built from ``settings``).
    """
    effective = settings if settings is not None else WorkflowSettings()
    tick: Clock = clock if clock is not None else utc_now
    if task.requested_features:
        raw_features = task.requested_features
    else:
        source = extractor if extractor is not None else effective.build_extractor()
        raw_features = source.extract(task.raw_request)
    features = tuple(
        dict.fromkeys(
            normalize_scope_name(item, f"requested_features[{index}]")
            for index, item in enumerate(raw_features)
        )
    )

    state = WorkflowState(
        workflow_id=workflow_id if workflow_id is not None else domain_ids.generate_workflow_id(),
        task=task,
        settings=effective,
        requested_features=features,
        created_at=tick(),
    )
    for feature in features:
        state.scope_ledger.register(feature)

    handle = WorkflowHandle(state, registry=registry, archive=archive, clock=tick)
    with correlation_scope(workflow_id=state.workflow_id, task_id=task.task_id):
        logger.info(
            "workflow created",
            extra={
                "profile": task.architecture_profile.name,
                "requested_features": list(features),
            },
        )
    handle._start()
    return handle


def restore_workflow(
    record: WorkflowState | Mapping[str, object] | str,
    *,
    archive: WorkflowArchive | None = None,
    clock: Clock | None = None,
    registry: ValidatorRegistry | None = None,
) -> WorkflowHandle:
    """Rebuild a handle from a state, its ``to_dict()`` mapping or its JSON."""
    if isinstance(record, WorkflowState):
        state = WorkflowState.from_dict(record.to_dict())
    elif isinstance(record, str):
        state = WorkflowState.from_json(record)
    else:
        state = WorkflowState.from_dict(record)
    return WorkflowHandle(state, registry=registry, archive=archive, clock=clock)


__all__ = ["Clock", "WorkflowHandle", "create_workflow", "restore_workflow"]

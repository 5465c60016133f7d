"""Scope ledger: the requested and approved features of one workflow."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from compliance_workflow.domain.errors import (
    InvalidDecisionError,
    ScopeConflictError,
    ScopeLockedError,
    UnknownScopeItemError,
)
from compliance_workflow.domain.models import (
    JSONValue,
    Phase,
    ScopeItem,
    ScopeStatus,
    Violation,
    ViolationKind,
    normalize_scope_name,
)

_DECISIONS: frozenset[ScopeStatus] = frozenset({ScopeStatus.APPROVED, ScopeStatus.REJECTED})


class ScopeLedger:
    """Insertion-ordered scope items keyed by name.

    Items are never deleted. Once locked (Clarify passed) statuses are frozen
    until :meth:`unlock`; registration of new items is still refused by the
    state machine outside the clarifying phase.
    """

    __slots__ = ("_items", "_locked")

    def __init__(self, items: Iterable[ScopeItem] = (), *, locked: bool = False) -> None:
        self._items: dict[str, ScopeItem] = {}
        self._locked = False
        for item in items:
            self.register(item)
        self._locked = locked

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ScopeItem]:
        return iter(tuple(self._items.values()))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip() in self._items

    def register(self, item: ScopeItem | str) -> ScopeItem:
        """Add ``item``; re-registering an identical definition is a no-op.

        A plain ``requested`` registration of a known name returns the existing
        item whatever its current status, since decisions are lifecycle changes
        made through :meth:`resolve`. Only an explicit status that differs from
        the stored one is a conflict.
        """
        incoming = item if isinstance(item, ScopeItem) else ScopeItem(name=item)
        existing = self._items.get(incoming.name)
        if existing is not None:
            explicit = incoming.status is not ScopeStatus.REQUESTED
            if explicit and existing.status is not incoming.status:
                raise ScopeConflictError(
                    incoming.name,
                    existing=existing.status.value,
                    incoming=incoming.status.value,
                )
            return existing
        if self._locked:
            raise ScopeLockedError(f"cannot register {incoming.name!r}: scope ledger is locked")
        self._items[incoming.name] = incoming
        return incoming

    def resolve(self, name: str, status: ScopeStatus | str) -> ScopeItem:
        key = normalize_scope_name(name)
        if key not in self._items:
            raise UnknownScopeItemError(key)
        decision = _as_decision(status)
        if self._locked:
            raise ScopeLockedError(f"cannot resolve {key!r}: scope ledger is locked")
        resolved = ScopeItem(name=key, status=decision)
        self._items[key] = resolved
        return resolved

    def get(self, name: str) -> ScopeItem:
        key = normalize_scope_name(name)
        try:
            return self._items[key]
        except KeyError:
            raise UnknownScopeItemError(key) from None

    def items(self) -> tuple[ScopeItem, ...]:
        return tuple(self._items.values())

    def names(self) -> tuple[str, ...]:
        return tuple(self._items)

    def is_approved(self, name: str) -> bool:
        item = self._items.get(name.strip())
        return item is not None and item.status is ScopeStatus.APPROVED

    def approved_names(self) -> tuple[str, ...]:
        return self._names_with(ScopeStatus.APPROVED)

    def rejected_names(self) -> tuple[str, ...]:
        return self._names_with(ScopeStatus.REJECTED)

    def unresolved(self) -> tuple[ScopeItem, ...]:
        return tuple(item for item in self._items.values() if not item.is_resolved)

    def scope_creep(
        self,
        declared: Iterable[str],
        *,
        origin_phase: Phase = Phase.CLARIFY,
        context: str = "artifact",
    ) -> tuple[Violation, ...]:
        """One violation per declared name outside the approved set, first-declared order."""
        approved = set(self.approved_names())
        extras: dict[str, None] = {}
        for raw in declared:
            name = raw.strip()
            if name and name not in approved:
                extras[name] = None
        return tuple(
            Violation(
                kind=ViolationKind.SCOPE_CREEP,
                message=f"{context} touches {name!r}, which is {self._describe(name)}",
                origin_phase=origin_phase,
                related_scope_item=name,
            )
            for name in extras
        )

    def copy(self) -> ScopeLedger:
        return ScopeLedger(self._items.values(), locked=self._locked)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "locked": self._locked,
            "items": [item.to_dict() for item in self._items.values()],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ScopeLedger:
        raw_items = data.get("items", [])
        if not isinstance(raw_items, list):
            raise ValueError("ScopeLedger.items: expected array")
        locked = data.get("locked", False)
        if not isinstance(locked, bool):
            raise ValueError("ScopeLedger.locked: expected boolean")
        items: list[ScopeItem] = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, Mapping):
                raise ValueError(f"ScopeLedger.items[{index}]: expected object")
            items.append(ScopeItem.from_dict(raw))
        return cls(items, locked=locked)

    def _names_with(self, status: ScopeStatus) -> tuple[str, ...]:
        return tuple(name for name, item in self._items.items() if item.status is status)

    def _describe(self, name: str) -> str:
        item = self._items.get(name)
        if item is None:
            return "not in the requested scope"
        if item.status is ScopeStatus.REJECTED:
            return "rejected during clarification"
        return "not approved"


def _as_decision(status: ScopeStatus | str) -> ScopeStatus:
    try:
        decision = ScopeStatus(status.strip().lower() if isinstance(status, str) else status)
    except ValueError:
        raise InvalidDecisionError(
            f"invalid clarification decision {status!r}; expected 'approved' or 'rejected'"
        ) from None
    if decision not in _DECISIONS:
        raise InvalidDecisionError(
            f"invalid clarification decision {decision.value!r}; expected 'approved' or 'rejected'"
        )
    return decision


__all__ = ["ScopeLedger"]

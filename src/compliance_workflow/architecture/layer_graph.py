"""Deterministic adjacency-list graph over architecture layers."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from heapq import heapify, heappop, heappush

from compliance_workflow.domain.errors import LayerCycleError


class LayerGraph:
    """Directed ``source -> target`` graph, read as "source may depend on target"."""

    __slots__ = ("_nodes", "_targets", "_sources")

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._nodes: set[str] = set()
        self._targets: dict[str, set[str]] = {}
        self._sources: dict[str, set[str]] = {}

        if nodes is not None:
            for name in nodes:
                self.add_layer(name)

        if edges is not None:
            for source, target in edges:
                self.add_dependency(source, target)

    @classmethod
    def from_mapping(cls, dependencies: Mapping[str, Iterable[str]]) -> LayerGraph:
        """Build from ``{layer: [allowed dependency, ...]}``."""
        graph = cls(nodes=dependencies.keys())
        for source, targets in dependencies.items():
            for target in targets:
                graph.add_dependency(source, target)
        return graph

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(sorted(self._nodes))

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """All edges as ``(source, target)`` pairs in deterministic order."""
        return tuple(
            (source, target)
            for source in sorted(self._nodes)
            for target in sorted(self._targets[source])
        )

    def add_layer(self, name: str) -> None:
        self._validate_name(name)
        if name in self._nodes:
            return
        self._nodes.add(name)
        self._targets[name] = set()
        self._sources[name] = set()

    def add_dependency(self, source: str, target: str) -> None:
        """Add the directed edge ``source -> target``."""
        self.add_layer(source)
        self.add_layer(target)
        self._targets[source].add(target)
        self._sources[target].add(source)

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        self._assert_layer_exists(name)
        return tuple(sorted(self._targets[name]))

    def dependents_of(self, name: str) -> tuple[str, ...]:
        self._assert_layer_exists(name)
        return tuple(sorted(self._sources[name]))

    def dependency_order(self) -> tuple[str, ...]:
        """Return layers with every dependency ahead of its dependents.

        Ties break alphabetically. Raises ``LayerCycleError`` on a cycle.
        """
        outstanding: dict[str, int] = {name: len(self._targets[name]) for name in self._nodes}
        ready: list[str] = [name for name, count in outstanding.items() if count == 0]
        heapify(ready)

        order: list[str] = []
        while ready:
            name = heappop(ready)
            order.append(name)
            for source in sorted(self._sources[name]):
                outstanding[source] -= 1
                if outstanding[source] == 0:
                    heappush(ready, source)

        if len(order) != len(self._nodes):
            raise LayerCycleError(self.detect_cycles())
        return tuple(order)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """
        Detect directed cycles.

        Returns closed paths in canonical rotation, e.g. ``("api", "core", "api")``.
        """
        state: dict[str, int] = {}
        stack: list[str] = []
        stack_index: dict[str, int] = {}
        cycles: dict[tuple[str, ...], None] = {}

        for start in sorted(self._nodes):
            if state.get(start, 0) != 0:
                continue

            state[start] = 1
            stack_index[start] = len(stack)
            stack.append(start)
            frames: list[tuple[str, Iterator[str]]] = [(start, iter(sorted(self._targets[start])))]

            while frames:
                node, target_iter = frames[-1]
                try:
                    target = next(target_iter)
                except StopIteration:
                    frames.pop()
                    state[node] = 2
                    stack.pop()
                    del stack_index[node]
                    continue

                target_state = state.get(target, 0)
                if target_state == 0:
                    state[target] = 1
                    stack_index[target] = len(stack)
                    stack.append(target)
                    frames.append((target, iter(sorted(self._targets[target]))))
                elif target_state == 1:
                    cycle = tuple(stack[stack_index[target] :] + [target])
                    cycles[self._canonicalize_cycle(cycle)] = None

        return tuple(sorted(cycles))

    def assert_acyclic(self) -> None:
        cycles = self.detect_cycles()
        if cycles:
            raise LayerCycleError(cycles)

    def serialize(self) -> dict[str, object]:
        return {
            "nodes": list(self.nodes),
            "edges": [list(edge) for edge in self.edges],
        }

    @staticmethod
    def _canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
        core = tuple(cycle[:-1])
        if len(core) == 1:
            return (core[0], core[0])
        best = min(core[offset:] + core[:offset] for offset in range(len(core)))
        return best + (best[0],)

    @staticmethod
    def _validate_name(name: str) -> None:
        if not isinstance(name, str) or not name:
            raise ValueError("Layer name must be a non-empty string.")

    def _assert_layer_exists(self, name: str) -> None:
        if name not in self._nodes:
            raise KeyError(f"Unknown layer: {name}")


__all__ = ["LayerGraph"]

"""
Dependency Resolver — transitive closure and install order over the
capability dependency graph.

The graph is a plain adjacency map ``key -> dependency keys``; nodes are
immutable string keys, so cycle detection is ordinary DFS bookkeeping.
"""

from __future__ import annotations

import heapq
import logging
from typing import Iterable, Iterator, Mapping

from composition_engine.errors import DependencyCycleError, UnknownCapabilityError

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Resolve capability selections against an adjacency map."""

    def __init__(self, graph: Mapping[str, Iterable[str]]):
        self._graph: dict[str, tuple[str, ...]] = {
            key: tuple(deps) for key, deps in graph.items()
        }

    @property
    def graph(self) -> dict[str, tuple[str, ...]]:
        return dict(self._graph)

    # ── Closure ──────────────────────────────────────────

    def resolve(self, selected: Iterable[str]) -> frozenset[str]:
        """
        Return the dependency closure of ``selected``.

        Raises UnknownCapabilityError for a key missing from the graph (naming
        the referrer) and DependencyCycleError naming the cycle path.
        """
        visited: set[str] = set()
        for key in sorted(set(selected)):
            self._walk(key, visited)
        return frozenset(visited)

    def _walk(self, root: str, visited: set[str]) -> None:
        """Iterative DFS from ``root``; ``path`` mirrors the frames on ``stack``."""
        if root in visited:
            return
        if root not in self._graph:
            raise UnknownCapabilityError(root, None)

        path: list[str] = [root]
        visiting: set[str] = {root}
        stack: list[tuple[str, Iterator[str]]] = [(root, iter(self._graph[root]))]
        while stack:
            key, deps = stack[-1]
            dep = next(deps, None)
            if dep is None:
                stack.pop()
                path.pop()
                visiting.discard(key)
                visited.add(key)
                continue
            if dep in visiting:
                start = path.index(dep)
                raise DependencyCycleError(path[start:] + [dep])
            if dep in visited:
                continue
            if dep not in self._graph:
                raise UnknownCapabilityError(dep, key)
            visiting.add(dep)
            path.append(dep)
            stack.append((dep, iter(self._graph[dep])))

    # ── Ordering ─────────────────────────────────────────

    def install_order(self, selected: Iterable[str]) -> list[str]:
        """
        Topological order of the closure: dependencies before dependents,
        ties broken by lexical key order.
        """
        closure = self.resolve(selected)
        remaining = {key: len(set(self._graph[key])) for key in closure}
        dependents: dict[str, list[str]] = {key: [] for key in closure}
        for key in closure:
            for dep in set(self._graph[key]):
                dependents[dep].append(key)

        ready = [key for key, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            key = heapq.heappop(ready)
            order.append(key)
            for dependent in dependents[key]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, dependent)
        return order

    # ── Reverse lookups ──────────────────────────────────

    def dependents_of(self, key: str, within: Iterable[str]) -> set[str]:
        """Keys in ``within`` whose closure (excluding themselves) contains ``key``."""
        found: set[str] = set()
        for candidate in within:
            if candidate == key or candidate not in self._graph:
                continue
            deps = set(self.resolve(self._graph[candidate])) if self._graph[candidate] else set()
            if key in deps:
                found.add(candidate)
        return found

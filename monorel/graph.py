"""Dependency graph utilities.

Provides topological sorting and transitive queries for a monorepo
workspace. Packages must be released in dependency order so that when
package A depends on package B, B is published first.

The graph is stored as a flat list of packages plus index-based edge
lists; every algorithm here runs over plain integer indices.
"""

from __future__ import annotations

import difflib
import heapq
from collections import deque
from collections.abc import Iterable, Iterator

from .errors import (
    CycleError,
    DuplicatePackageError,
    StructuralError,
    UnknownDependencyError,
    UnknownPackageError,
)
from .models import Package


class WorkspaceGraph:
    """Directed acyclic graph of workspace packages.

    An edge A → B means "A depends on B". Construction validates the
    package list and raises a ``StructuralError`` subclass for duplicate
    names, dependencies outside the workspace and cycles.
    """

    def __init__(self, packages: Iterable[Package]) -> None:
        self._packages: list[Package] = []
        self._index: dict[str, int] = {}
        for pkg in packages:
            if pkg.name in self._index:
                first = self._packages[self._index[pkg.name]]
                raise DuplicatePackageError(pkg.name, (first.path, pkg.path))
            self._index[pkg.name] = len(self._packages)
            self._packages.append(pkg)

        # dependencies[i]: indices package i depends on
        # dependents[i]: indices that depend on package i
        self._dependencies: list[list[int]] = [[] for _ in self._packages]
        self._dependents: list[list[int]] = [[] for _ in self._packages]
        for i, pkg in enumerate(self._packages):
            for dep in pkg.dependencies:
                j = self._index.get(dep)
                if j is None:
                    raise UnknownDependencyError(pkg.name, dep)
                if j not in self._dependencies[i]:
                    self._dependencies[i].append(j)
                    self._dependents[j].append(i)

        cycle = self.detect_cycle()
        if cycle:
            raise CycleError(cycle)

        self._order: list[int] | None = None
        self._dependents_closure: dict[int, frozenset[int]] = {}
        self._dependencies_closure: dict[int, frozenset[int]] = {}

    def __len__(self) -> int:
        return len(self._packages)

    def __iter__(self) -> Iterator[Package]:
        return iter(self._packages)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __getitem__(self, name: str) -> Package:
        return self._packages[self._index[name]]

    @property
    def names(self) -> list[str]:
        return [p.name for p in self._packages]

    def require(self, name: str) -> Package:
        """Look up a package, suggesting close names when it is unknown.

        Raises:
            UnknownPackageError: If no package is called ``name``.
        """
        if name not in self:
            suggestions = difflib.get_close_matches(name, self.names, n=3, cutoff=0.5)
            raise UnknownPackageError(name, suggestions)
        return self[name]

    def detect_cycle(self) -> list[str] | None:
        """Find a dependency cycle, if there is one.

        Iterative depth-first search with three node states, visiting
        packages and their dependencies in name order so the reported
        cycle is stable.

        Returns:
            The cycle as a list of names starting and ending with the same
            package (e.g. ["a", "b", "a"]), or None if the graph is acyclic.
        """
        white, grey, black = 0, 1, 2
        state = [white] * len(self._packages)

        def by_name(indices: Iterable[int]) -> list[int]:
            return sorted(indices, key=lambda k: self._packages[k].name)

        for start in by_name(range(len(self._packages))):
            if state[start] != white:
                continue
            path = [start]
            stack = [iter(by_name(self._dependencies[start]))]
            state[start] = grey
            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    state[path.pop()] = black
                    stack.pop()
                elif state[nxt] == grey:
                    cycle = path[path.index(nxt):] + [nxt]
                    return [self._packages[k].name for k in cycle]
                elif state[nxt] == white:
                    state[nxt] = grey
                    path.append(nxt)
                    stack.append(iter(by_name(self._dependencies[nxt])))
        return None

    def topological_order(self) -> list[Package]:
        """Packages ordered so dependencies come before dependents.

        Uses Kahn's algorithm. Among packages whose dependencies are all
        placed, the alphabetically smallest goes next, so the order is the
        same on every run for the same graph.
        """
        if self._order is None:
            in_degree = [len(deps) for deps in self._dependencies]
            ready = [(self._packages[i].name, i) for i, d in enumerate(in_degree) if d == 0]
            heapq.heapify(ready)
            order: list[int] = []
            while ready:
                _, node = heapq.heappop(ready)
                order.append(node)
                for dependent in self._dependents[node]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        heapq.heappush(ready, (self._packages[dependent].name, dependent))
            self._order = order
        return [self._packages[i] for i in self._order]

    def topological_names(self) -> list[str]:
        return [p.name for p in self.topological_order()]

    def transitive_dependents(self, name: str) -> set[str]:
        """All packages that depend on ``name``, directly or indirectly."""
        i = self._index[name]
        if i not in self._dependents_closure:
            self._dependents_closure[i] = self._reach(i, self._dependents)
        return {self._packages[k].name for k in self._dependents_closure[i]}

    def transitive_dependencies(self, name: str) -> set[str]:
        """All packages ``name`` depends on, directly or indirectly."""
        i = self._index[name]
        if i not in self._dependencies_closure:
            self._dependencies_closure[i] = self._reach(i, self._dependencies)
        return {self._packages[k].name for k in self._dependencies_closure[i]}

    def propagation_targets(
        self, names: Iterable[str], *, respect_pins: bool = False
    ) -> dict[str, list[str]]:
        """Dependents reached when ``names`` change.

        With ``respect_pins``, an edge is not followed when the dependent
        pins an exact version of the dependency in its manifest.

        Returns:
            Map of reached package name → direct dependencies it was reached
            through, in topological order. Sources themselves are included
            only when reached from another source.
        """
        sources = [self._index[n] for n in names]
        reached: dict[int, list[int]] = {}
        queue = deque(sources)
        seen = set(sources)
        while queue:
            node = queue.popleft()
            for dependent in self._dependents[node]:
                if respect_pins and self._packages[node].name in self._packages[dependent].pinned:
                    continue
                reached.setdefault(dependent, [])
                if node not in reached[dependent]:
                    reached[dependent].append(node)
                if dependent not in seen:
                    seen.add(dependent)
                    queue.append(dependent)

        result: dict[str, list[str]] = {}
        for pkg in self.topological_order():
            i = self._index[pkg.name]
            if i in reached:
                result[pkg.name] = sorted(self._packages[k].name for k in reached[i])
        return result

    def validate_order(self, names: Iterable[str]) -> None:
        """Check that no package is listed before one of its dependencies.

        Raises:
            StructuralError: If the sequence violates dependency order.
        """
        position = {name: pos for pos, name in enumerate(names)}
        for name, pos in position.items():
            for dep in self.transitive_dependencies(name):
                if dep in position and position[dep] > pos:
                    raise StructuralError(
                        f"Package '{name}' is ordered before its dependency '{dep}'"
                    )

    @staticmethod
    def _reach(start: int, edges: list[list[int]]) -> frozenset[int]:
        seen: set[int] = set()
        queue = deque(edges[start])
        while queue:
            node = queue.popleft()
            if node not in seen:
                seen.add(node)
                queue.extend(edges[node])
        return frozenset(seen)

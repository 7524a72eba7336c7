"""Dependency graph utilities.

Builds the workspace dependency graph and provides topological sorting
for determining release order. Crates must be released in dependency
order so that when crate A depends on crate B, B's new version exists
before A's manifest references it.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .errors import CyclicDependency, DuplicateCrate
from .models import CrateInfo


def topo_sort(crates: Mapping[str, CrateInfo]) -> list[str]:
    """Topologically sort crates by their internal dependencies.

    Uses Kahn's algorithm to produce an order where dependencies come
    before dependents. Crates with no pending dependencies are sorted
    alphabetically for deterministic output.

    Args:
        crates: Map of crate name → CrateInfo with deps list.

    Returns:
        List of crate names in release order (dependencies first).

    Raises:
        CyclicDependency: If a dependency cycle is detected.

    Example:
        If A depends on B, and B depends on C:
        topo_sort({A, B, C}) → [C, B, A]
    """
    # Count incoming edges (dependencies) for each crate
    in_degree = {n: 0 for n in crates}
    # Track reverse dependencies (who depends on each crate)
    reverse_deps: dict[str, list[str]] = {n: [] for n in crates}

    for name, info in crates.items():
        for dep in set(info.deps):
            # Only count dependencies within the crates we're sorting
            if dep in crates:
                in_degree[name] += 1
                reverse_deps[dep].append(name)

    queue = sorted(n for n, d in in_degree.items() if d == 0)
    order: list[str] = []

    while queue:
        node = queue.pop(0)
        order.append(node)
        for dependent in sorted(reverse_deps[node]):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    # If we didn't process all crates, there must be a cycle
    if len(order) != len(crates):
        raise CyclicDependency(set(crates) - set(order))

    return order


class DependencyGraph:
    """Acyclic "depends on" graph over the crates of one workspace.

    Construction validates the graph, so an instance is always acyclic and
    free of duplicate names. Edges to names outside the workspace are
    dropped.
    """

    def __init__(self, crates: Mapping[str, CrateInfo]) -> None:
        self._crates = dict(crates)
        self._order = topo_sort(self._crates)
        self._dependents: dict[str, list[str]] = {n: [] for n in self._crates}
        for name, info in self._crates.items():
            for dep in info.deps:
                if dep in self._crates and name not in self._dependents[dep]:
                    self._dependents[dep].append(name)

    def __contains__(self, name: object) -> bool:
        return name in self._crates

    def __len__(self) -> int:
        return len(self._crates)

    @property
    def crates(self) -> dict[str, CrateInfo]:
        return dict(self._crates)

    def crate(self, name: str) -> CrateInfo:
        return self._crates[name]

    def topological_order(self) -> list[str]:
        """All crate names, every crate after everything it depends on."""
        return list(self._order)

    def dependencies_of(self, name: str) -> list[str]:
        """Direct internal dependencies of a crate."""
        return [d for d in self._crates[name].deps if d in self._crates]

    def direct_dependents(self, name: str) -> list[str]:
        return sorted(self._dependents[name])

    def dependents_of(self, name: str) -> set[str]:
        """Every crate that transitively depends on ``name``.

        Breadth-first walk over reverse edges; ``name`` itself is not
        included.
        """
        seen: set[str] = set()
        queue = self.direct_dependents(name)
        while queue:
            node = queue.pop(0)
            if node in seen:
                continue
            seen.add(node)
            queue.extend(self.direct_dependents(node))
        return seen


def build_graph(crates: Iterable[CrateInfo]) -> DependencyGraph:
    """Build the workspace graph from discovered manifest descriptors.

    Raises:
        DuplicateCrate: If two manifests declare the same crate name.
        CyclicDependency: If internal dependencies form a cycle.
    """
    by_name: dict[str, CrateInfo] = {}
    for info in crates:
        if info.name in by_name:
            raise DuplicateCrate(info.name, [by_name[info.name].manifest, info.manifest])
        by_name[info.name] = info
    return DependencyGraph(by_name)

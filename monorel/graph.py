"""Dependency graph utilities.

Provides cycle detection, topological layering and change closure for a
monorepo. Packages must be published in dependency order so that when
package A depends on package B, B is confirmed in the registry first.

Edges come only from path dependencies (uv workspace or path sources);
dev dependencies are left out because the index never needs them to
resolve. Internally nodes are integer handles into a sorted name arena,
so mutually dependent packages never reference each other directly.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping

from .errors import GraphError
from .models import PackageInfo

WHITE, GRAY, BLACK = 0, 1, 2


class DependencyGraph:
    """Directed "depends on" graph over package names."""

    def __init__(self, names: Iterable[str], edges: Iterable[tuple[str, str]]) -> None:
        self.names: list[str] = sorted(set(names))
        self.index: dict[str, int] = {n: i for i, n in enumerate(self.names)}
        self._deps: list[list[int]] = [[] for _ in self.names]
        self._rdeps: list[list[int]] = [[] for _ in self.names]
        for src, dst in edges:
            # Only keep edges within the node set
            # (external deps or filtered-out packages are already resolvable)
            if src not in self.index or dst not in self.index:
                continue
            s, d = self.index[src], self.index[dst]
            if d not in self._deps[s]:
                self._deps[s].append(d)
                self._rdeps[d].append(s)
        for adj in (*self._deps, *self._rdeps):
            adj.sort()

    @classmethod
    def from_packages(
        cls, packages: Mapping[str, PackageInfo], *, include_dev: bool = False
    ) -> DependencyGraph:
        """Build the graph from each package's path dependencies."""
        edges = [
            (name, dep)
            for name, info in packages.items()
            for dep in info.path_deps(include_dev=include_dev)
        ]
        return cls(packages.keys(), edges)

    def __contains__(self, name: object) -> bool:
        return name in self.index

    def __len__(self) -> int:
        return len(self.names)

    def dependencies(self, name: str) -> list[str]:
        return [self.names[i] for i in self._deps[self.index[name]]]

    def dependents(self, name: str) -> list[str]:
        return [self.names[i] for i in self._rdeps[self.index[name]]]

    def edges(self) -> list[tuple[str, str]]:
        return [
            (self.names[s], self.names[d])
            for s, deps in enumerate(self._deps)
            for d in deps
        ]

    def subgraph(self, names: Iterable[str]) -> DependencyGraph:
        """Restrict the graph to ``names``, dropping edges that leave the set."""
        keep = {n for n in names if n in self.index}
        return DependencyGraph(keep, [(s, d) for s, d in self.edges() if s in keep and d in keep])

    def find_cycle(self) -> list[str] | None:
        """Depth-first search with recursion-stack coloring.

        Returns:
            The cycle as a closed path (first node repeated at the end),
            or None if the graph is acyclic.
        """
        color = [WHITE] * len(self.names)
        parent = [-1] * len(self.names)

        for start in range(len(self.names)):
            if color[start] != WHITE:
                continue
            # Explicit stack of (node, next child position) to avoid recursion limits
            stack: list[tuple[int, int]] = [(start, 0)]
            color[start] = GRAY
            while stack:
                node, pos = stack[-1]
                if pos < len(self._deps[node]):
                    stack[-1] = (node, pos + 1)
                    child = self._deps[node][pos]
                    if color[child] == WHITE:
                        color[child] = GRAY
                        parent[child] = node
                        stack.append((child, 0))
                    elif color[child] == GRAY:
                        # Back-edge: walk parents from node back to child
                        path = [node]
                        while path[-1] != child:
                            path.append(parent[path[-1]])
                        path.reverse()
                        return [self.names[i] for i in path] + [self.names[child]]
                else:
                    color[node] = BLACK
                    stack.pop()
        return None

    def check_acyclic(self) -> None:
        """Raise GraphError naming the cycle if there is one."""
        cycle = self.find_cycle()
        if cycle is not None:
            raise GraphError(cycle)

    def layers(self) -> list[list[str]]:
        """Topological layers using Kahn's algorithm.

        Layer 0 holds packages with no dependencies; each later layer holds
        packages whose dependencies all sit in earlier layers. Names within a
        layer are sorted for deterministic output.

        Raises:
            GraphError: If a dependency cycle is detected.

        Example:
            If A depends on B, and B depends on C:
            layers() → [[C], [B], [A]]
        """
        self.check_acyclic()
        # Count incoming edges (unresolved dependencies) for each package
        in_degree = [len(deps) for deps in self._deps]
        current = [i for i, d in enumerate(in_degree) if d == 0]
        result: list[list[str]] = []

        while current:
            result.append([self.names[i] for i in current])
            following: list[int] = []
            for node in current:
                # Decrement in_degree for all packages that depend on this one
                for dependent in self._rdeps[node]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        following.append(dependent)
            current = sorted(following)

        return result

    def dependents_closure(self, seeds: Iterable[str]) -> dict[str, str]:
        """Everything that transitively depends on ``seeds``.

        Returns:
            Map of each newly reached package → the dependency it was
            reached through. Seeds themselves are not included.
        """
        seen = {self.index[s] for s in seeds if s in self.index}
        reached: dict[str, str] = {}
        queue = deque(sorted(seen))
        while queue:
            node = queue.popleft()
            for dependent in self._rdeps[node]:
                if dependent not in seen:
                    seen.add(dependent)
                    reached[self.names[dependent]] = self.names[node]
                    queue.append(dependent)
        return reached

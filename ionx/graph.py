"""Dependency graph with cycle detection and topological ordering."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field


class CycleError(Exception):
    """Raised when the dependency graph contains a cycle."""


@dataclass
class ResolvedNode:
    """A package after resolution."""

    name: str
    version: str
    source_uri: str
    cmake_targets: list[str] = field(default_factory=list)
    direct_deps: list[str] = field(default_factory=list)


class DependencyGraph:
    """Directed graph of package name to its version and direct dependency names."""

    def __init__(self) -> None:
        self._nodes: dict[str, tuple[str, list[str]]] = {}

    def add_node(self, name: str, version: str, deps: list[str]) -> None:
        self._nodes[name] = (version, list(deps))

    def topological_sort(self) -> list[str]:
        """Names in dependency-first order; raises CycleError on a cycle."""
        in_degree: dict[str, int] = {}
        dependents: dict[str, list[str]] = {}
        for name, (_, deps) in self._nodes.items():
            in_degree.setdefault(name, 0)
            for dep in deps:
                if dep in self._nodes:
                    in_degree[name] += 1
                    dependents.setdefault(dep, []).append(name)

        queue = deque(name for name, degree in in_degree.items() if degree == 0)
        ordered: list[str] = []
        while queue:
            node = queue.popleft()
            ordered.append(node)
            for dependent in dependents.get(node, ()):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(ordered) != len(self._nodes):
            in_cycle = [name for name, degree in in_degree.items() if degree > 0]
            raise CycleError(
                f"Circular dependency detected among: [{', '.join(in_cycle)}]. "
                "Ion cannot resolve cyclic C++ dependencies."
            )
        return ordered

    def transitive_deps(self, root: str) -> set[str]:
        """All packages reachable from ``root``, excluding ``root`` itself."""
        visited: set[str] = set()
        stack = [root]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            node = self._nodes.get(current)
            if node is not None:
                stack.extend(dep for dep in node[1] if dep not in visited)
        visited.discard(root)
        return visited

    def check_removal(self, package: str) -> list[str]:
        """Packages that directly depend on ``package``."""
        return [
            name
            for name, (_, deps) in self._nodes.items()
            if name != package and package in deps
        ]
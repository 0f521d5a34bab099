"""Dependency ordering helpers shared by splitting and orchestration."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence


class CyclicDependencyError(ValueError):
    """Raised when a dependency graph cannot be ordered."""

    def __init__(self, message: str, *, nodes: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.nodes = tuple(nodes)


def validate_dependencies(
    nodes: Sequence[str],
    dependencies: Mapping[str, Sequence[str]],
) -> None:
    """Reject references to nodes outside of ``nodes``."""

    known = set(nodes)
    for node in nodes:
        for dependency in dependencies.get(node, ()):
            if dependency not in known:
                raise ValueError(f"Unknown dependency {dependency!r} referenced by {node!r}")


def stable_topological_order(
    nodes: Sequence[str],
    dependencies: Mapping[str, Sequence[str]],
) -> list[str]:
    """Order nodes so dependencies come first, keeping input order among peers."""

    validate_dependencies(nodes, dependencies)
    ordered: list[str] = []
    placed: set[str] = set()
    remaining = list(nodes)
    while remaining:
        progressed = False
        for node in list(remaining):
            if all(dependency in placed for dependency in dependencies.get(node, ())):
                ordered.append(node)
                placed.add(node)
                remaining.remove(node)
                progressed = True
        if not progressed:
            raise CyclicDependencyError(
                f"Circular dependency detected among: {', '.join(remaining)}",
                nodes=remaining,
            )
    return ordered


def dependency_levels(
    nodes: Sequence[str],
    dependencies: Mapping[str, Sequence[str]],
) -> list[list[str]]:
    """Group nodes into levels; level n depends only on levels < n."""

    validate_dependencies(nodes, dependencies)
    levels: list[list[str]] = []
    placed: set[str] = set()
    remaining = list(nodes)
    while remaining:
        frontier = [
            node
            for node in remaining
            if all(dependency in placed for dependency in dependencies.get(node, ()))
        ]
        if not frontier:
            raise CyclicDependencyError(
                f"Circular dependency detected among: {', '.join(remaining)}",
                nodes=remaining,
            )
        levels.append(frontier)
        placed.update(frontier)
        remaining = [node for node in remaining if node not in placed]
    return levels


def depth_first_order(
    nodes: Sequence[str],
    dependencies: Mapping[str, Sequence[str]],
) -> list[str]:
    """Post-order DFS topological sort that reports the cycle path.

    Iterative, so chains of any length order without hitting the recursion limit.
    """

    validate_dependencies(nodes, dependencies)
    ordered: list[str] = []
    visited: set[str] = set()
    path: list[str] = []
    on_path: set[str] = set()
    pending: list[Iterator[str]] = []

    for root in nodes:
        if root in visited:
            continue
        path.append(root)
        on_path.add(root)
        pending.append(iter(dependencies.get(root, ())))
        while pending:
            dependency = next(pending[-1], None)
            if dependency is None:
                pending.pop()
                node = path.pop()
                on_path.discard(node)
                visited.add(node)
                ordered.append(node)
            elif dependency in on_path:
                cycle = [*path[path.index(dependency) :], dependency]
                raise CyclicDependencyError(
                    f"Circular dependency detected: {' -> '.join(cycle)}",
                    nodes=cycle,
                )
            elif dependency not in visited:
                path.append(dependency)
                on_path.add(dependency)
                pending.append(iter(dependencies.get(dependency, ())))
    return ordered


def is_topological(order: Sequence[str], dependencies: Mapping[str, Sequence[str]]) -> bool:
    """True when every node appears after all of its dependencies."""

    position = {node: index for index, node in enumerate(order)}
    return all(
        dependency in position and position[dependency] < position[node]
        for node in order
        for dependency in dependencies.get(node, ())
    )

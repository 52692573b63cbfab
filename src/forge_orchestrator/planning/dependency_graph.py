"""Deterministic package dependency graph with cycle detection and build layers."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from heapq import heapify, heappop, heappush

from forge_orchestrator.domain.errors import CycleError, UnresolvedDependencyError
from forge_orchestrator.domain.models import JSONValue, Package

MetadataLookup = Callable[[str], Package | None] | Mapping[str, Package]


class DependencyGraph:
    """
    Read-only set of packages plus ``package -> dependency`` edges.

    Construction fails fast on dangling edges (``UnresolvedDependencyError``) and
    cycles (``CycleError``). Packages keep the order they were supplied in, which is
    the discovery order used for scheduler tie-breaking.
    """

    __slots__ = ("_packages", "_index", "_dependents", "_layers")

    def __init__(self, packages: Iterable[Package]) -> None:
        self._packages: dict[str, Package] = {}
        for package in packages:
            if package.name in self._packages:
                raise ValueError(f"duplicate package {package.name!r} in dependency graph")
            self._packages[package.name] = package

        self._index: dict[str, int] = {name: pos for pos, name in enumerate(self._packages)}
        self._dependents: dict[str, set[str]] = {name: set() for name in self._packages}
        for package in self._packages.values():
            for dependency in package.dependencies:
                if dependency not in self._packages:
                    raise UnresolvedDependencyError(dependency, required_by=package.name)
                self._dependents[dependency].add(package.name)

        cycle = self._find_cycle()
        if cycle is not None:
            raise CycleError(cycle)
        self._layers = self._compute_layers()

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def __len__(self) -> int:
        return len(self._packages)

    def __iter__(self) -> Iterator[Package]:
        return iter(self._packages.values())

    @property
    def discovery_order(self) -> tuple[str, ...]:
        """Package names in stable discovery order."""
        return tuple(self._packages)

    @property
    def packages(self) -> tuple[Package, ...]:
        return tuple(self._packages.values())

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """All edges as ``(package, dependency)`` pairs in deterministic order."""
        return tuple(
            (name, dependency)
            for name in sorted(self._packages)
            for dependency in self._packages[name].dependencies
        )

    def package(self, name: str) -> Package:
        self._assert_known(name)
        return self._packages[name]

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        return self.package(name).dependencies

    def dependents_of(self, name: str) -> tuple[str, ...]:
        """Direct dependents in discovery order."""
        self._assert_known(name)
        return self._in_discovery_order(self._dependents[name])

    def transitive_dependents(self, name: str) -> tuple[str, ...]:
        """All packages that depend on ``name`` directly or indirectly, in discovery order."""
        self._assert_known(name)
        visited: set[str] = set()
        pending: list[str] = list(self._dependents[name])
        while pending:
            current = pending.pop()
            if current in visited:
                continue
            visited.add(current)
            pending.extend(item for item in self._dependents[current] if item not in visited)
        return self._in_discovery_order(visited)

    def layer_of(self, name: str) -> int:
        self._assert_known(name)
        return self._layers[name]

    def layers(self) -> tuple[tuple[str, ...], ...]:
        """Packages grouped by build layer; names sorted within each layer."""
        if not self._layers:
            return ()
        depth = max(self._layers.values()) + 1
        grouped: list[list[str]] = [[] for _ in range(depth)]
        for name, layer in self._layers.items():
            grouped[layer].append(name)
        return tuple(tuple(sorted(group)) for group in grouped)

    def topological_order(self) -> tuple[str, ...]:
        """Dependencies first; ties broken by layer, then discovery order."""
        return tuple(
            sorted(self._packages, key=lambda item: (self._layers[item], self._index[item]))
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "packages": [self._packages[name].to_dict() for name in self._packages],
            "edges": [[name, dependency] for name, dependency in self.edges],
            "layers": [list(layer) for layer in self.layers()],
        }

    def _compute_layers(self) -> dict[str, int]:
        remaining: dict[str, int] = {
            name: len(package.dependencies) for name, package in self._packages.items()
        }
        ready: list[tuple[int, str]] = [
            (self._index[name], name) for name, count in remaining.items() if count == 0
        ]
        heapify(ready)

        layers: dict[str, int] = {}
        while ready:
            _, name = heappop(ready)
            dependencies = self._packages[name].dependencies
            layers[name] = 1 + max(layers[dep] for dep in dependencies) if dependencies else 0
            for dependent in self._dependents[name]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heappush(ready, (self._index[dependent], dependent))
        return layers

    def _find_cycle(self) -> tuple[str, ...] | None:
        state: dict[str, int] = {}
        stack: list[str] = []

        for start in self._packages:
            if state.get(start, 0) != 0:
                continue

            state[start] = 1
            stack.append(start)
            frames: list[tuple[str, Iterator[str]]] = [
                (start, iter(self._packages[start].dependencies))
            ]

            while frames:
                node, child_iter = frames[-1]
                try:
                    child = next(child_iter)
                except StopIteration:
                    frames.pop()
                    state[node] = 2
                    stack.pop()
                    continue

                child_state = state.get(child, 0)
                if child_state == 0:
                    state[child] = 1
                    stack.append(child)
                    frames.append((child, iter(self._packages[child].dependencies)))
                elif child_state == 1:
                    return tuple(stack[stack.index(child) :] + [child])
        return None

    def _in_discovery_order(self, names: Iterable[str]) -> tuple[str, ...]:
        return tuple(sorted(names, key=self._index.__getitem__))

    def _assert_known(self, name: str) -> None:
        if name not in self._packages:
            raise KeyError(f"Unknown package: {name}")


def resolve_dependency_graph(root: str, lookup: MetadataLookup) -> DependencyGraph:
    """
    Expand ``root`` into its transitive dependency graph.

    Already-expanded packages are memoized. Revisiting a package still on the
    expansion stack raises ``CycleError`` with the closed offending path; a lookup
    miss raises ``UnresolvedDependencyError`` naming the missing package.
    """

    resolve = _as_lookup(lookup)
    root_package = resolve(root)
    if root_package is None:
        raise UnresolvedDependencyError(root)

    discovered: dict[str, Package] = {root_package.name: root_package}
    state: dict[str, int] = {root_package.name: 1}
    stack: list[str] = [root_package.name]
    frames: list[tuple[str, Iterator[str]]] = [
        (root_package.name, iter(root_package.dependencies))
    ]

    while frames:
        name, dependency_iter = frames[-1]
        try:
            dependency = next(dependency_iter)
        except StopIteration:
            frames.pop()
            stack.pop()
            state[name] = 2
            continue

        dependency_state = state.get(dependency, 0)
        if dependency_state == 2:
            continue
        if dependency_state == 1:
            raise CycleError(stack[stack.index(dependency) :] + [dependency])

        package = resolve(dependency)
        if package is None:
            raise UnresolvedDependencyError(dependency, required_by=name)
        if package.name != dependency:
            raise ValueError(
                f"metadata lookup for {dependency!r} returned package {package.name!r}"
            )

        discovered[package.name] = package
        state[package.name] = 1
        stack.append(package.name)
        frames.append((package.name, iter(package.dependencies)))

    return DependencyGraph(discovered.values())


def build_dependency_graph(packages: Iterable[Package]) -> DependencyGraph:
    """Build a graph from an already-collected package set (e.g. a whole workspace)."""

    return DependencyGraph(packages)


def _as_lookup(lookup: MetadataLookup) -> Callable[[str], Package | None]:
    if isinstance(lookup, Mapping):
        return lookup.get
    return lookup


__all__ = [
    "DependencyGraph",
    "MetadataLookup",
    "build_dependency_graph",
    "resolve_dependency_graph",
]

"""Unit tests for dependency resolution, layering, and cycle detection."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from forge_orchestrator.domain import CycleError, Package, UnresolvedDependencyError
from forge_orchestrator.planning import (
    DependencyGraph,
    build_dependency_graph,
    resolve_dependency_graph,
)


def _packages(*specs: tuple[str, tuple[str, ...]]) -> dict[str, Package]:
    return {name: Package(name=name, dependencies=deps) for name, deps in specs}


def test_resolve_expands_transitive_dependencies() -> None:
    lookup = _packages(("app", ("api", "ui")), ("api", ("core",)), ("ui", ("core",)), ("core", ()))

    graph = resolve_dependency_graph("app", lookup)

    assert set(graph.discovery_order) == {"app", "api", "ui", "core"}
    assert graph.layers() == (("core",), ("api", "ui"), ("app",))
    assert graph.topological_order()[0] == "core"
    assert graph.topological_order()[-1] == "app"
    assert graph.layer_of("app") == 2


def test_resolve_ignores_packages_outside_the_closure() -> None:
    lookup = _packages(("app", ("core",)), ("core", ()), ("unrelated", ()))

    graph = resolve_dependency_graph("app", lookup)

    assert "unrelated" not in graph
    assert len(graph) == 2


def test_resolve_reports_closed_cycle_path() -> None:
    lookup = _packages(("a", ("b",)), ("b", ("c",)), ("c", ("a",)))

    with pytest.raises(CycleError) as excinfo:
        resolve_dependency_graph("a", lookup)

    assert excinfo.value.cycle == ("a", "b", "c", "a")


def test_self_dependency_is_a_one_node_cycle() -> None:
    lookup = _packages(("app", ("a",)), ("a", ("a",)))

    with pytest.raises(CycleError) as excinfo:
        resolve_dependency_graph("app", lookup)
    assert excinfo.value.cycle == ("a", "a")

    with pytest.raises(CycleError) as excinfo:
        DependencyGraph(lookup.values())
    assert excinfo.value.cycle == ("a", "a")


def test_resolve_reports_missing_dependency() -> None:
    lookup = _packages(("app", ("ghost",)))

    with pytest.raises(UnresolvedDependencyError) as excinfo:
        resolve_dependency_graph("app", lookup)

    assert excinfo.value.missing == "ghost"
    assert excinfo.value.required_by == "app"


def test_resolve_missing_root() -> None:
    with pytest.raises(UnresolvedDependencyError):
        resolve_dependency_graph("nope", {})


def test_resolve_accepts_callable_lookup() -> None:
    table = _packages(("a", ("b",)), ("b", ()))
    graph = resolve_dependency_graph("a", table.get)
    assert graph.dependencies_of("a") == ("b",)


def test_graph_rejects_duplicates_and_dangling_edges() -> None:
    with pytest.raises(ValueError, match="duplicate"):
        DependencyGraph([Package(name="a"), Package(name="a")])
    with pytest.raises(UnresolvedDependencyError):
        DependencyGraph([Package(name="a", dependencies=("b",))])


def test_graph_detects_cycle_on_construction() -> None:
    with pytest.raises(CycleError) as excinfo:
        DependencyGraph(
            [Package(name="a", dependencies=("b",)), Package(name="b", dependencies=("a",))]
        )
    assert set(excinfo.value.members) == {"a", "b"}


def test_dependents_and_transitive_dependents() -> None:
    graph = DependencyGraph(
        [
            Package(name="a"),
            Package(name="b", dependencies=("a",)),
            Package(name="c", dependencies=("b",)),
            Package(name="d"),
        ]
    )

    assert graph.dependents_of("a") == ("b",)
    assert graph.transitive_dependents("a") == ("b", "c")
    assert graph.transitive_dependents("d") == ()
    with pytest.raises(KeyError):
        graph.dependents_of("zzz")


def test_to_dict_is_deterministic() -> None:
    graph = DependencyGraph([Package(name="b", dependencies=("a",)), Package(name="a")])
    payload = graph.to_dict()

    assert payload["edges"] == [["b", "a"]]
    assert payload["layers"] == [["a"], ["b"]]


@st.composite
def _acyclic_specs(draw: st.DrawFn) -> list[Package]:
    count = draw(st.integers(min_value=1, max_value=12))
    names = [f"p{index}" for index in range(count)]
    packages: list[Package] = []
    for index, name in enumerate(names):
        deps = draw(st.lists(st.sampled_from(names[:index]), unique=True)) if index else []
        packages.append(Package(name=name, dependencies=tuple(deps)))
    return packages


@given(_acyclic_specs())
@settings(max_examples=75, deadline=None)
def test_every_dependency_sits_in_an_earlier_layer(packages: list[Package]) -> None:
    graph = DependencyGraph(packages)
    order = graph.topological_order()
    position = {name: index for index, name in enumerate(order)}

    assert sorted(order) == sorted(package.name for package in packages)
    for package in packages:
        for dependency in package.dependencies:
            assert graph.layer_of(dependency) < graph.layer_of(package.name)
            assert position[dependency] < position[package.name]


@given(_acyclic_specs())
@settings(max_examples=75, deadline=None)
def test_resolving_twice_yields_identical_layers(packages: list[Package]) -> None:
    root = Package(name="root", dependencies=tuple(package.name for package in packages))
    lookup = {package.name: package for package in (*packages, root)}

    first = resolve_dependency_graph("root", lookup)
    second = resolve_dependency_graph("root", dict(reversed(lookup.items())))

    assert first.layers() == second.layers()
    assert first.discovery_order == second.discovery_order
    assert first.to_dict() == second.to_dict()


def test_build_dependency_graph_keeps_supplied_order() -> None:
    graph = build_dependency_graph(
        [Package(name="ui", dependencies=("core",)), Package(name="core"), Package(name="docs")]
    )

    assert graph.discovery_order == ("ui", "core", "docs")
    assert graph.layers() == (("core", "docs"), ("ui",))
    with pytest.raises(UnresolvedDependencyError):
        build_dependency_graph([Package(name="ui", dependencies=("core",))])

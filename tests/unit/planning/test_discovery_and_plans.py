"""Unit tests for workspace discovery, plan resolution, and MECE validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from forge_orchestrator.domain import Package, PackageCategory
from forge_orchestrator.domain.errors import (
    CycleError,
    MeceViolationError,
    PlanNotFoundError,
    PlanValidationError,
)
from forge_orchestrator.planning import (
    DependencyGraph,
    ManifestError,
    PlanResolver,
    WorkspaceIndex,
    analyze_mece,
    assert_mece,
    load_manifest,
    validate_plan,
)

_PLAN = """# Overview
Core helpers.

## Requirements
- stable API

## Implementation
- write it

## Testing
- test it
"""


def _write_manifest(root: Path, directory: str, body: str) -> Path:
    package_dir = root / directory
    package_dir.mkdir(parents=True, exist_ok=True)
    manifest = package_dir / "forge.yaml"
    manifest.write_text(body, encoding="utf-8")
    return manifest


def test_load_manifest_sets_package_path(tmp_path: Path) -> None:
    manifest = _write_manifest(
        tmp_path, "core", "name: '@acme/core'\nversion: 1.0.0\ncategory: core\n"
    )

    package = load_manifest(manifest)

    assert package.name == "@acme/core"
    assert package.category is PackageCategory.CORE
    assert package.path == (tmp_path / "core").resolve().as_posix()


@pytest.mark.parametrize(
    ("body", "match"),
    [
        ("name: [unclosed\n", "invalid YAML"),
        ("- just\n- a list\n", "must be a mapping"),
        ("version: 1.0.0\n", "invalid manifest"),
    ],
)
def test_load_manifest_errors_name_the_file(tmp_path: Path, body: str, match: str) -> None:
    manifest = _write_manifest(tmp_path, "bad", body)

    with pytest.raises(ManifestError, match=match) as excinfo:
        load_manifest(manifest)

    assert "forge.yaml" in str(excinfo.value)


def test_workspace_scan_resolves_graph(tmp_path: Path) -> None:
    _write_manifest(tmp_path, "core", "name: core\n")
    _write_manifest(tmp_path, "api", "name: api\ndependencies: [core]\n")
    _write_manifest(tmp_path, "node_modules/stray", "name: stray\n")

    index = WorkspaceIndex.scan(tmp_path)
    graph = index.resolve("api")

    assert index.names == ("api", "core")
    assert "stray" not in index
    assert graph.layers() == (("core",), ("api",))


def test_workspace_graph_covers_every_package(tmp_path: Path) -> None:
    _write_manifest(tmp_path, "core", "name: core\n")
    _write_manifest(tmp_path, "api", "name: api\ndependencies: [core]\n")
    _write_manifest(tmp_path, "tools", "name: tools\n")

    graph = WorkspaceIndex.scan(tmp_path).graph()

    assert graph.discovery_order == ("api", "core", "tools")
    assert graph.layers() == (("core", "tools"), ("api",))


def test_self_dependent_manifest_loads_and_fails_as_a_cycle(tmp_path: Path) -> None:
    _write_manifest(tmp_path, "loop", "name: loop\ndependencies: [loop]\n")

    index = WorkspaceIndex.scan(tmp_path)

    with pytest.raises(CycleError) as excinfo:
        index.graph()
    assert excinfo.value.cycle == ("loop", "loop")


def test_workspace_scan_rejects_duplicate_names(tmp_path: Path) -> None:
    _write_manifest(tmp_path, "one", "name: same\n")
    _write_manifest(tmp_path, "two", "name: same\n")

    with pytest.raises(ManifestError, match="declared twice"):
        WorkspaceIndex.scan(tmp_path)


def test_workspace_scan_requires_directory(tmp_path: Path) -> None:
    with pytest.raises(ManifestError, match="not a directory"):
        WorkspaceIndex.scan(tmp_path / "missing")


def test_validate_plan_accepts_heading_variations() -> None:
    result = validate_plan("# Summary\n## Scope\n## Tasks\n## Tests\n")
    assert result.passed
    assert result.found_sections == ("Summary", "Scope", "Tasks", "Tests")


def test_validate_plan_lists_missing_sections() -> None:
    result = validate_plan("# Overview\nno other headings\n")
    assert not result.passed
    assert result.missing_sections == ("Requirements", "Implementation", "Testing")


def test_plan_resolver_prefers_explicit_text(tmp_path: Path) -> None:
    (tmp_path / "core.md").write_text("# Overview only\n", encoding="utf-8")
    resolver = PlanResolver(tmp_path, explicit={"core": _PLAN})

    plan = resolver.resolve("core")

    assert plan.source == "explicit"
    assert len(plan.digest) == 64


def test_plan_resolver_finds_scoped_plan_file(tmp_path: Path) -> None:
    nested = tmp_path / "nested"
    nested.mkdir()
    (nested / "core.md").write_text(_PLAN, encoding="utf-8")

    plan = PlanResolver(tmp_path).resolve("@acme/core")

    assert plan.source.endswith("nested/core.md")


def test_plan_resolver_missing_and_invalid(tmp_path: Path) -> None:
    resolver = PlanResolver(tmp_path)
    with pytest.raises(PlanNotFoundError) as excinfo:
        resolver.resolve("ghost")
    assert excinfo.value.package == "ghost"

    (tmp_path / "thin.md").write_text("# Overview\n", encoding="utf-8")
    with pytest.raises(PlanValidationError) as invalid:
        resolver.resolve("thin")
    assert "Testing" in invalid.value.missing_sections


def test_mece_detects_overlaps_and_gaps() -> None:
    graph = DependencyGraph(
        [
            Package(name="a", provides=("auth",)),
            Package(name="b", provides=("auth", "billing")),
            Package(name="c"),
        ]
    )

    report = analyze_mece(graph, planned={"a", "b"})

    assert not report.compliant
    assert report.overlaps == ("'auth' provided by a, b",)
    assert report.gaps == ("c: no declared responsibility", "c: no plan")
    with pytest.raises(MeceViolationError) as excinfo:
        assert_mece(graph, planned={"a", "b"})
    assert len(excinfo.value.violations) == 3


def test_mece_passes_for_disjoint_suite() -> None:
    graph = DependencyGraph(
        [Package(name="a", provides=("auth",)), Package(name="b", category=PackageCategory.UI)]
    )
    assert assert_mece(graph, planned={"a", "b"}).compliant

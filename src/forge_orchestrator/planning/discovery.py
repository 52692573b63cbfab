"""
forge-orchestrator — workspace discovery

File: src/forge_orchestrator/planning/discovery.py
Last updated: 2026-10-19

Purpose
- Index package manifests (``forge.yaml``) under a workspace root and expose them as
  the metadata lookup used by the dependency resolver.

Functional requirements
- Manifests are parsed with ``yaml.safe_load``; malformed manifests raise
  ``ManifestError`` naming the file.
- Duplicate package names across manifests are rejected.
- Scanning order is deterministic (sorted directory walk).
"""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Final

import yaml

from forge_orchestrator.constants import PACKAGE_MANIFEST_NAME
from forge_orchestrator.domain.models import Package
from forge_orchestrator.planning.dependency_graph import (
    DependencyGraph,
    build_dependency_graph,
    resolve_dependency_graph,
)

_SKIPPED_DIRS: Final[frozenset[str]] = frozenset(
    {".git", ".venv", "venv", "node_modules", "__pycache__", "dist", "build", ".tox"}
)


class ManifestError(ValueError):
    """Raised when a package manifest cannot be loaded."""


def load_manifest(path: str | Path) -> Package:
    """Load one ``forge.yaml`` manifest; the package path is the manifest's directory."""

    manifest_path = Path(path)
    try:
        raw_text = manifest_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"unable to read manifest {manifest_path}: {exc}") from exc

    try:
        payload = yaml.safe_load(raw_text)
    except yaml.YAMLError as exc:
        raise ManifestError(f"invalid YAML in {manifest_path}: {exc}") from exc

    if not isinstance(payload, Mapping):
        raise ManifestError(f"manifest root must be a mapping: {manifest_path}")

    try:
        return Package.from_dict(payload, path=manifest_path.parent.resolve().as_posix())
    except ValueError as exc:
        raise ManifestError(f"invalid manifest {manifest_path}: {exc}") from exc


class WorkspaceIndex:
    """Name-to-package index over every manifest found under a workspace root."""

    __slots__ = ("_root", "_packages")

    def __init__(self, root: str | Path, packages: Mapping[str, Package]) -> None:
        self._root = Path(root)
        self._packages = dict(packages)

    @classmethod
    def scan(cls, root: str | Path) -> WorkspaceIndex:
        workspace = Path(root)
        if not workspace.is_dir():
            raise ManifestError(f"workspace root is not a directory: {workspace}")

        packages: dict[str, Package] = {}
        origins: dict[str, Path] = {}
        for manifest_path in _iter_manifests(workspace):
            package = load_manifest(manifest_path)
            previous = origins.get(package.name)
            if previous is not None:
                raise ManifestError(
                    f"package {package.name!r} is declared twice: {previous} and {manifest_path}"
                )
            packages[package.name] = package
            origins[package.name] = manifest_path
        return cls(workspace, packages)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._packages))

    def __contains__(self, name: object) -> bool:
        return name in self._packages

    def __len__(self) -> int:
        return len(self._packages)

    def lookup(self, name: str) -> Package | None:
        return self._packages.get(name)

    def resolve(self, root_package: str) -> DependencyGraph:
        """Resolve the transitive dependency graph of ``root_package``."""

        return resolve_dependency_graph(root_package, self.lookup)

    def graph(self) -> DependencyGraph:
        """Every package in the workspace, discovered in name order."""

        return build_dependency_graph(self._packages[name] for name in self.names)


def _iter_manifests(root: Path) -> Iterator[Path]:
    for directory, subdirs, files in os.walk(root):
        subdirs[:] = sorted(
            item for item in subdirs if item not in _SKIPPED_DIRS and not item.startswith(".")
        )
        if PACKAGE_MANIFEST_NAME in files:
            yield Path(directory) / PACKAGE_MANIFEST_NAME


__all__ = ["ManifestError", "WorkspaceIndex", "load_manifest"]

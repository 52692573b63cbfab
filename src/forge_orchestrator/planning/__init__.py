"""
forge-orchestrator — planning layer

File: src/forge_orchestrator/planning/__init__.py
Last updated: 2026-10-19

Purpose
- Discovery, dependency resolution, plan lookup, and MECE validation for a suite.

Functional requirements
- Must output an acyclic dependency graph with deterministic build layers.
"""

from __future__ import annotations

from forge_orchestrator.planning.dependency_graph import (
    DependencyGraph,
    build_dependency_graph,
    resolve_dependency_graph,
)
from forge_orchestrator.planning.discovery import ManifestError, WorkspaceIndex, load_manifest
from forge_orchestrator.planning.mece import MeceReport, analyze_mece, assert_mece
from forge_orchestrator.planning.plans import PlanResolver, ResolvedPlan, validate_plan

__all__ = [
    "DependencyGraph",
    "ManifestError",
    "MeceReport",
    "PlanResolver",
    "ResolvedPlan",
    "WorkspaceIndex",
    "analyze_mece",
    "assert_mece",
    "build_dependency_graph",
    "load_manifest",
    "resolve_dependency_graph",
    "validate_plan",
]

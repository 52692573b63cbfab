"""MECE validation of package responsibilities across a suite."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from forge_orchestrator.domain.errors import MeceViolationError
from forge_orchestrator.domain.models import PackageCategory

if TYPE_CHECKING:
    from collections.abc import Collection

    from forge_orchestrator.planning.dependency_graph import DependencyGraph


@dataclass(frozen=True, slots=True)
class MeceReport:
    """Overlapping responsibilities and uncovered packages, sorted."""

    overlaps: tuple[str, ...]
    gaps: tuple[str, ...]

    @property
    def compliant(self) -> bool:
        return not self.overlaps and not self.gaps

    @property
    def violations(self) -> tuple[str, ...]:
        return self.overlaps + self.gaps


def analyze_mece(graph: DependencyGraph, *, planned: Collection[str]) -> MeceReport:
    """
    Mutually exclusive: no ``provides`` tag is claimed by two packages.
    Collectively exhaustive: every package has a plan and a declared responsibility
    (at least one ``provides`` tag, or a category other than ``unknown``).
    """

    claimants: dict[str, list[str]] = defaultdict(list)
    gaps: list[str] = []
    for package in graph:
        for tag in package.provides:
            claimants[tag].append(package.name)
        if package.name not in planned:
            gaps.append(f"{package.name}: no plan")
        if not package.provides and package.category is PackageCategory.UNKNOWN:
            gaps.append(f"{package.name}: no declared responsibility")

    overlaps = [
        f"{tag!r} provided by {', '.join(sorted(owners))}"
        for tag, owners in sorted(claimants.items())
        if len(owners) > 1
    ]
    return MeceReport(overlaps=tuple(overlaps), gaps=tuple(sorted(gaps)))


def assert_mece(graph: DependencyGraph, *, planned: Collection[str]) -> MeceReport:
    report = analyze_mece(graph, planned=planned)
    if not report.compliant:
        raise MeceViolationError(report.violations)
    return report


__all__ = ["MeceReport", "analyze_mece", "assert_mece"]

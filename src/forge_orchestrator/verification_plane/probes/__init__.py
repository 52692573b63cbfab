"""
forge-orchestrator — quality probes

File: src/forge_orchestrator/verification_plane/probes/__init__.py
Last updated: 2026-10-19

Purpose
- One probe per quality check. Importing this package registers every built-in probe in
  ``DEFAULT_PROBE_REGISTRY``.
"""

from forge_orchestrator.verification_plane.probes.base import (
    DEFAULT_PROBE_REGISTRY,
    CommandProbe,
    ProbeContext,
    ProbeFactory,
    ProbeOutcome,
    ProbeRegistration,
    ProbeRegistry,
    QualityProbe,
    QualitySettings,
    parse_findings,
    register_builtin_probe,
)
from forge_orchestrator.verification_plane.probes.documentation import DocumentationProbe
from forge_orchestrator.verification_plane.probes.integration import IntegrationProbe
from forge_orchestrator.verification_plane.probes.license import LicenseProbe
from forge_orchestrator.verification_plane.probes.lint import LintProbe
from forge_orchestrator.verification_plane.probes.security import SecurityProbe
from forge_orchestrator.verification_plane.probes.structure import StructureProbe
from forge_orchestrator.verification_plane.probes.typecheck import TypecheckProbe
from forge_orchestrator.verification_plane.probes.unit_tests import TestsProbe, parse_coverage

__all__ = [
    "CommandProbe",
    "DEFAULT_PROBE_REGISTRY",
    "DocumentationProbe",
    "IntegrationProbe",
    "LicenseProbe",
    "LintProbe",
    "ProbeContext",
    "ProbeFactory",
    "ProbeOutcome",
    "ProbeRegistration",
    "ProbeRegistry",
    "QualityProbe",
    "QualitySettings",
    "SecurityProbe",
    "StructureProbe",
    "TestsProbe",
    "TypecheckProbe",
    "parse_coverage",
    "parse_findings",
    "register_builtin_probe",
]

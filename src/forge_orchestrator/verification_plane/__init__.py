"""
forge-orchestrator — verification plane

File: src/forge_orchestrator/verification_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Quality probes, weighted compliance scoring, and the quality gate.
"""

from forge_orchestrator.verification_plane.quality_gate import (
    QualityGate,
    QualityReport,
    failing_details,
)
from forge_orchestrator.verification_plane.scoring import (
    CHECK_WEIGHTS,
    compliance_level,
    compute_compliance_score,
    score_from_pass_map,
)

__all__ = [
    "CHECK_WEIGHTS",
    "QualityGate",
    "QualityReport",
    "compliance_level",
    "compute_compliance_score",
    "failing_details",
    "score_from_pass_map",
]

"""Weighted compliance scoring over the eight quality checks."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Final

from forge_orchestrator.domain.models import (
    CheckName,
    ComplianceLevel,
    ComplianceScore,
    QualityCheckResult,
)

CHECK_WEIGHTS: Final[Mapping[CheckName, int]] = MappingProxyType(
    {
        CheckName.STRUCTURE: 10,
        CheckName.TYPECHECK: 20,
        CheckName.LINT: 15,
        CheckName.TESTS: 25,
        CheckName.SECURITY: 10,
        CheckName.DOCUMENTATION: 10,
        CheckName.LICENSE: 5,
        CheckName.INTEGRATION: 5,
    }
)

EXCELLENT_THRESHOLD: Final[int] = 95
GOOD_THRESHOLD: Final[int] = 90
ACCEPTABLE_THRESHOLD: Final[int] = 85

if sum(CHECK_WEIGHTS.values()) != 100:  # pragma: no cover - import-time contract
    raise RuntimeError("quality check weights must sum to 100")


def compliance_level(score: int) -> ComplianceLevel:
    """Map a 0-100 score onto its level; every threshold is inclusive."""

    if isinstance(score, bool) or not isinstance(score, int):
        raise TypeError(f"score must be an integer, got {type(score).__name__}")
    if not 0 <= score <= 100:
        raise ValueError(f"score must be within 0..100, got {score}")
    if score >= EXCELLENT_THRESHOLD:
        return ComplianceLevel.EXCELLENT
    if score >= GOOD_THRESHOLD:
        return ComplianceLevel.GOOD
    if score >= ACCEPTABLE_THRESHOLD:
        return ComplianceLevel.ACCEPTABLE
    return ComplianceLevel.BLOCKED


def compute_compliance_score(results: Iterable[QualityCheckResult]) -> ComplianceScore:
    """
    Sum the weights of passing checks.

    Exactly one result per check is required; a missing or duplicated check raises
    ``ValueError``. The function has no side effects.
    """

    by_check: dict[CheckName, QualityCheckResult] = {}
    for result in results:
        if result.check in by_check:
            raise ValueError(f"duplicate result for check {result.check.value!r}")
        by_check[result.check] = result

    missing = [check.value for check in CheckName if check not in by_check]
    if missing:
        raise ValueError(f"missing result(s) for check(s): {', '.join(missing)}")

    return score_from_pass_map({check: by_check[check].passed for check in CheckName})


def score_from_pass_map(passed: Mapping[CheckName | str, bool]) -> ComplianceScore:
    """Score a complete ``check -> passed`` map (used by the CLI and reports)."""

    normalized: dict[CheckName, bool] = {}
    for key, value in passed.items():
        normalized[CheckName(key)] = bool(value)
    missing = [check.value for check in CheckName if check not in normalized]
    if missing:
        raise ValueError(f"missing result(s) for check(s): {', '.join(missing)}")

    score = sum(CHECK_WEIGHTS[check] for check in CheckName if normalized[check])
    return ComplianceScore(
        score=score,
        level=compliance_level(score),
        passed_checks=tuple(check for check in CheckName if normalized[check]),
        failed_checks=tuple(check for check in CheckName if not normalized[check]),
    )


__all__ = [
    "ACCEPTABLE_THRESHOLD",
    "CHECK_WEIGHTS",
    "EXCELLENT_THRESHOLD",
    "GOOD_THRESHOLD",
    "compliance_level",
    "compute_compliance_score",
    "score_from_pass_map",
]

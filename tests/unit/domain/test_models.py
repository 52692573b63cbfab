"""Unit tests for domain models and the error taxonomy."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from forge_orchestrator.domain import (
    ActionHistoryEntry,
    BuildTaskState,
    CheckName,
    ComplianceLevel,
    ComplianceScore,
    CycleError,
    Package,
    PackageBuildTask,
    PackageCategory,
    QualityBlocked,
    QualityCheckResult,
    RemediationExhausted,
    UnresolvedDependencyError,
)
from forge_orchestrator.domain.models import CommandOutcome, package_slug
from forge_orchestrator.verification_plane import QualityReport


def test_package_normalizes_dependencies_and_category() -> None:
    package = Package.from_dict(
        {
            "name": " @acme/app ",
            "version": 1.2,
            "dependencies": ["@acme/core", "@acme/auth", "@acme/core"],
            "category": "Service",
        }
    )

    assert package.name == "@acme/app"
    assert package.version == "1.2"
    assert package.dependencies == ("@acme/auth", "@acme/core")
    assert package.category is PackageCategory.SERVICE
    assert package.slug == "acme-app"


def test_package_keeps_self_dependency_and_rejects_unknown_fields() -> None:
    assert Package(name="a", dependencies=("a",)).dependencies == ("a",)
    with pytest.raises(ValueError, match="unknown field"):
        Package.from_dict({"name": "a", "scripts": {}})
    with pytest.raises(ValueError, match="invalid value"):
        Package.from_dict({"name": "a", "category": "widget"})


def test_package_slug_strips_scope() -> None:
    assert package_slug("@scope/name") == "scope-name"
    assert package_slug("plain") == "plain"
    with pytest.raises(ValueError):
        package_slug("@")


def test_terminal_states() -> None:
    terminal = {state for state in BuildTaskState if state.is_terminal}
    assert terminal == {
        BuildTaskState.PUBLISHED,
        BuildTaskState.FAILED,
        BuildTaskState.SKIPPED,
        BuildTaskState.AWAITING_INTERVENTION,
    }
    assert BuildTaskState.PUBLISHED.is_success
    assert not BuildTaskState.AWAITING_INTERVENTION.is_success


def test_build_task_refuses_to_leave_terminal_state() -> None:
    task = PackageBuildTask(package="a")
    task.transition(BuildTaskState.READY)
    task.transition(BuildTaskState.BUILDING)
    task.fail(BuildTaskState.FAILED, RuntimeError("boom"))

    assert task.last_error == "boom"
    assert task.error_type == "RuntimeError"
    with pytest.raises(ValueError, match="already terminal"):
        task.transition(BuildTaskState.READY)


def test_build_task_duration_and_serialization() -> None:
    start = datetime(2026, 1, 1, tzinfo=UTC)
    task = PackageBuildTask(
        package="a", started_at=start, finished_at=start + timedelta(seconds=1.5)
    )
    payload = task.to_dict()

    assert payload["package"] == "a"
    assert payload["state"] == "pending"
    assert payload["score"] is None
    assert task.duration_seconds == pytest.approx(1.5)


def test_quality_check_result_fault_cannot_pass() -> None:
    with pytest.raises(ValueError, match="faulted check cannot pass"):
        QualityCheckResult(check=CheckName.LINT, passed=True, fault="crashed")

    result = QualityCheckResult(check="lint", passed=False, fault="crashed")
    assert result.check is CheckName.LINT
    assert result.faulted
    assert result.to_dict()["fault"] == "crashed"


def test_compliance_score_bounds() -> None:
    with pytest.raises(ValueError):
        ComplianceScore(score=101, level=ComplianceLevel.EXCELLENT)
    with pytest.raises(ValueError):
        ComplianceScore(score=True, level=ComplianceLevel.EXCELLENT)  # type: ignore[arg-type]

    score = ComplianceScore(score=84, level=ComplianceLevel.BLOCKED)
    assert score.is_blocked


def test_action_history_entry_rejects_turn_zero() -> None:
    with pytest.raises(ValueError):
        ActionHistoryEntry(turn=0, command="read-file", outcome=CommandOutcome.SUCCESS)

    entry = ActionHistoryEntry(turn=1, command="read-file", outcome="success")
    assert entry.succeeded
    assert entry.to_dict()["timestamp"].endswith("Z")


def test_cycle_error_reports_path_and_members() -> None:
    error = CycleError(["a", "b", "a"])
    assert "a -> b -> a" in str(error)
    assert error.members == ("a", "b")
    assert isinstance(error, ValueError)


def test_unresolved_dependency_names_missing_package() -> None:
    error = UnresolvedDependencyError("ghost", required_by="app")
    assert error.missing == "ghost"
    assert "'ghost'" in str(error)
    assert isinstance(error, LookupError)


def test_quality_errors_carry_score() -> None:
    score = ComplianceScore(
        score=80,
        level=ComplianceLevel.BLOCKED,
        failed_checks=(CheckName.TYPECHECK,),
    )
    report = QualityReport(package="core", results=(), score=score)
    blocked = QualityBlocked(score, report=report)
    assert blocked.retryable
    assert blocked.report is report
    assert "typecheck" in str(blocked)

    exhausted = RemediationExhausted(3, score)
    assert exhausted.attempts == 3
    assert exhausted.score is score
    assert "80" in str(exhausted)

"""
forge-orchestrator — persisted build reports

File: src/forge_orchestrator/reporting/reports.py
Last updated: 2026-10-19

Purpose
- Persist one JSON report per package plus a suite summary after every suite run.
- Read reports back for the ``forge report`` command. The orchestrator core never reads them.

Functional requirements
- Layout: ``<reports_dir>/<suite_id>/packages/<slug>.json`` and
  ``<reports_dir>/<suite_id>/suite-summary.json``.
- Write-once: an existing report file is never overwritten (``FileExistsError``).
- JSON is canonical: sorted keys, UTF-8, trailing newline.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from forge_orchestrator.constants import REPORT_SCHEMA_VERSION, SUITE_SUMMARY_FILENAME
from forge_orchestrator.domain.models import (
    BuildTaskState,
    CheckName,
    JSONValue,
    PackageBuildTask,
    package_slug,
)

_PACKAGES_DIR: Final[str] = "packages"
_TOP_N: Final[int] = 5


class ReportError(ValueError):
    """A persisted report is unreadable or malformed."""


@dataclass(frozen=True, slots=True)
class PackageReport:
    name: str
    state: BuildTaskState
    score: int | None = None
    level: str | None = None
    checks: Mapping[str, bool] = field(default_factory=dict)
    remediation_attempts: int = 0
    duration_seconds: float = 0.0
    cause: str | None = None
    error_type: str | None = None
    skipped_because: str | None = None
    published_version: str | None = None
    turns: int = 0

    @classmethod
    def from_task(cls, task: PackageBuildTask) -> PackageReport:
        checks: dict[str, bool] = {}
        if task.score is not None:
            checks = {check.value: check in task.score.passed_checks for check in CheckName}
        return cls(
            name=task.package,
            state=task.state,
            score=task.score.score if task.score is not None else None,
            level=task.score.level.value if task.score is not None else None,
            checks=checks,
            remediation_attempts=task.remediation_attempts,
            duration_seconds=round(task.duration_seconds, 3),
            cause=task.last_error,
            error_type=task.error_type,
            skipped_because=task.skipped_because,
            published_version=task.published_version,
            turns=task.turns,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PackageReport:
        try:
            raw_checks = data.get("checks") or {}
            if not isinstance(raw_checks, Mapping):
                raise ReportError("checks must be an object")
            return cls(
                name=str(data["name"]),
                state=BuildTaskState(str(data["state"])),
                score=_optional_int(data.get("score")),
                level=_optional_str(data.get("level")),
                checks={str(key): bool(value) for key, value in raw_checks.items()},
                remediation_attempts=_as_count(data.get("remediation_attempts")),
                duration_seconds=_as_seconds(data.get("duration_seconds")),
                cause=_optional_str(data.get("cause")),
                error_type=_optional_str(data.get("error_type")),
                skipped_because=_optional_str(data.get("skipped_because")),
                published_version=_optional_str(data.get("published_version")),
                turns=_as_count(data.get("turns")),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ReportError(f"malformed package report: {exc}") from exc

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": REPORT_SCHEMA_VERSION,
            "name": self.name,
            "state": self.state.value,
            "score": self.score,
            "level": self.level,
            "checks": dict(self.checks),
            "remediation_attempts": self.remediation_attempts,
            "duration_seconds": self.duration_seconds,
            "cause": self.cause,
            "error_type": self.error_type,
            "skipped_because": self.skipped_because,
            "published_version": self.published_version,
            "turns": self.turns,
        }


@dataclass(frozen=True, slots=True)
class SuiteSummary:
    suite_id: str
    root_package: str
    phase: str
    totals: Mapping[str, int]
    slowest: tuple[tuple[str, float], ...] = ()
    most_remediated: tuple[tuple[str, int], ...] = ()
    failure: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": REPORT_SCHEMA_VERSION,
            "suite_id": self.suite_id,
            "root_package": self.root_package,
            "phase": self.phase,
            "totals": dict(self.totals),
            "slowest": [{"package": name, "seconds": secs} for name, secs in self.slowest],
            "most_remediated": [
                {"package": name, "attempts": attempts} for name, attempts in self.most_remediated
            ],
            "failure": self.failure,
        }


def build_suite_summary(
    *,
    suite_id: str,
    root_package: str,
    phase: str,
    reports: Iterable[PackageReport],
    failure: str | None = None,
) -> SuiteSummary:
    items = list(reports)
    counts = Counter(report.state.value for report in items)
    totals = {state.value: counts.get(state.value, 0) for state in BuildTaskState}
    totals["total"] = len(items)

    slowest = sorted(items, key=lambda report: (-report.duration_seconds, report.name))[:_TOP_N]
    remediated = sorted(
        (report for report in items if report.remediation_attempts > 0),
        key=lambda report: (-report.remediation_attempts, report.name),
    )[:_TOP_N]
    return SuiteSummary(
        suite_id=suite_id,
        root_package=root_package,
        phase=phase,
        totals=totals,
        slowest=tuple((report.name, report.duration_seconds) for report in slowest),
        most_remediated=tuple((report.name, report.remediation_attempts) for report in remediated),
        failure=failure,
    )


class ReportWriter:
    """Write-once JSON writer rooted at ``reports_dir``."""

    def __init__(self, reports_dir: str | Path) -> None:
        self._reports_dir = Path(reports_dir)

    @property
    def reports_dir(self) -> Path:
        return self._reports_dir

    def suite_dir(self, suite_id: str) -> Path:
        slug = suite_id.strip()
        if not slug or Path(slug).name != slug or slug in {".", ".."}:
            raise ValueError(f"invalid suite id: {suite_id!r}")
        return self._reports_dir / slug

    def write_package_report(self, suite_id: str, report: PackageReport) -> Path:
        filename = f"{package_slug(report.name)}.json"
        destination = self.suite_dir(suite_id) / _PACKAGES_DIR / filename
        _write_json_once(destination, report.to_dict())
        return destination

    def write_suite_summary(self, suite_id: str, summary: SuiteSummary) -> Path:
        destination = self.suite_dir(suite_id) / SUITE_SUMMARY_FILENAME
        _write_json_once(destination, summary.to_dict())
        return destination

    def write_suite(
        self,
        *,
        suite_id: str,
        root_package: str,
        phase: str,
        tasks: Mapping[str, PackageBuildTask],
        failure: str | None = None,
    ) -> Path:
        """Persist every package report and the summary; returns the suite directory."""

        reports = [PackageReport.from_task(tasks[name]) for name in sorted(tasks)]
        for report in reports:
            self.write_package_report(suite_id, report)
        summary = build_suite_summary(
            suite_id=suite_id,
            root_package=root_package,
            phase=phase,
            reports=reports,
            failure=failure,
        )
        self.write_suite_summary(suite_id, summary)
        return self.suite_dir(suite_id)


def load_package_reports(directory: str | Path) -> tuple[PackageReport, ...]:
    """
    Read package reports from a suite directory, sorted by package name.

    Accepts either the suite directory or its ``packages`` subdirectory. The suite
    summary is skipped.
    """

    root = Path(directory)
    if not root.is_dir():
        raise ReportError(f"report directory not found: {root}")
    source = root / _PACKAGES_DIR if (root / _PACKAGES_DIR).is_dir() else root

    reports: list[PackageReport] = []
    for path in sorted(source.glob("*.json")):
        if path.name == SUITE_SUMMARY_FILENAME:
            continue
        reports.append(PackageReport.from_dict(_read_json_object(path)))
    return tuple(sorted(reports, key=lambda report: report.name))


def load_suite_summary(directory: str | Path) -> dict[str, object] | None:
    path = Path(directory) / SUITE_SUMMARY_FILENAME
    if not path.is_file():
        return None
    return _read_json_object(path)


def _write_json_once(destination: Path, payload: Mapping[str, JSONValue]) -> None:
    if destination.exists():
        raise FileExistsError(f"report already exists: {destination}")
    destination.parent.mkdir(parents=True, exist_ok=True)
    rendered = json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False) + "\n"
    with destination.open("x", encoding="utf-8") as handle:
        handle.write(rendered)


def _read_json_object(path: Path) -> dict[str, object]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ReportError(f"unreadable report {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ReportError(f"report {path} must contain a JSON object")
    return payload


def _optional_int(value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ReportError(f"expected integer, got {type(value).__name__}")
    return value


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)


def _as_count(value: object) -> int:
    if value is None:
        return 0
    parsed = _optional_int(value)
    if parsed is None or parsed < 0:
        raise ReportError(f"expected non-negative integer, got {value!r}")
    return parsed


def _as_seconds(value: object) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ReportError(f"expected number, got {type(value).__name__}")
    return float(value)


__all__ = [
    "PackageReport",
    "ReportError",
    "ReportWriter",
    "SuiteSummary",
    "build_suite_summary",
    "load_package_reports",
    "load_suite_summary",
]

"""Persisted per-package and suite-level build reports."""

from forge_orchestrator.reporting.reports import (
    PackageReport,
    ReportError,
    ReportWriter,
    SuiteSummary,
    build_suite_summary,
    load_package_reports,
    load_suite_summary,
)

__all__ = [
    "PackageReport",
    "ReportError",
    "ReportWriter",
    "SuiteSummary",
    "build_suite_summary",
    "load_package_reports",
    "load_suite_summary",
]

"""Stable constants shared across orchestrator planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
REPORT_SCHEMA_VERSION: Final[int] = 1

# Generation loop limits.
MAX_LOOP_ITERATIONS: Final[int] = 40
MAX_CONSECUTIVE_LINT_FAILURES: Final[int] = 3
MAX_FILE_MODIFICATIONS_BEFORE_META: Final[int] = 3
MAX_META_CORRECTION_ATTEMPTS: Final[int] = 2
MAX_ERROR_HISTORY_CHARS: Final[int] = 500

# Scheduling, remediation, quality.
DEFAULT_MAX_CONCURRENT_BUILDS: Final[int] = 4
MAX_REMEDIATION_ATTEMPTS: Final[int] = 3
PASSING_SCORE: Final[int] = 85
MIN_TEST_COVERAGE: Final[int] = 90

# Workspace conventions.
PACKAGE_MANIFEST_NAME: Final[str] = "forge.yaml"
DEFAULT_PLANS_DIR: Final[PurePosixPath] = PurePosixPath("plans/packages")
DEFAULT_REPORTS_DIR: Final[PurePosixPath] = PurePosixPath("reports")
SUITE_SUMMARY_FILENAME: Final[str] = "suite-summary.json"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_MAX_CONCURRENT_BUILDS",
    "DEFAULT_PLANS_DIR",
    "DEFAULT_REPORTS_DIR",
    "MAX_CONSECUTIVE_LINT_FAILURES",
    "MAX_ERROR_HISTORY_CHARS",
    "MAX_FILE_MODIFICATIONS_BEFORE_META",
    "MAX_LOOP_ITERATIONS",
    "MAX_META_CORRECTION_ATTEMPTS",
    "MAX_REMEDIATION_ATTEMPTS",
    "MIN_TEST_COVERAGE",
    "PACKAGE_MANIFEST_NAME",
    "PASSING_SCORE",
    "REPORT_SCHEMA_VERSION",
    "SUITE_SUMMARY_FILENAME",
]

"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import NoReturn

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_MAX_TEXT = 8192
_MAX_COLLECTION = 512


class PackageCategory(StrEnum):
    VALIDATOR = "validator"
    CORE = "core"
    UTILITY = "utility"
    SERVICE = "service"
    UI = "ui"
    SUITE = "suite"
    UNKNOWN = "unknown"


class BuildTaskState(StrEnum):
    """Lifecycle of one scheduler unit."""

    PENDING = "pending"
    READY = "ready"
    BUILDING = "building"
    QUALITY_CHECK = "quality_check"
    REMEDIATING = "remediating"
    PUBLISHED = "published"
    FAILED = "failed"
    SKIPPED = "skipped"
    AWAITING_INTERVENTION = "awaiting_intervention"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def is_success(self) -> bool:
        return self is BuildTaskState.PUBLISHED


_TERMINAL_STATES = frozenset(
    {
        BuildTaskState.PUBLISHED,
        BuildTaskState.FAILED,
        BuildTaskState.SKIPPED,
        BuildTaskState.AWAITING_INTERVENTION,
    }
)


class CheckName(StrEnum):
    """The eight quality checks, in canonical report order."""

    STRUCTURE = "structure"
    TYPECHECK = "typecheck"
    LINT = "lint"
    TESTS = "tests"
    SECURITY = "security"
    DOCUMENTATION = "documentation"
    LICENSE = "license"
    INTEGRATION = "integration"


class ComplianceLevel(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    BLOCKED = "blocked"


class CommandOutcome(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Package:
    """One independently buildable unit discovered in the workspace."""

    name: str
    version: str = "0.0.0"
    dependencies: tuple[str, ...] = ()
    category: PackageCategory = PackageCategory.UNKNOWN
    path: str = ""
    provides: tuple[str, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _as_str(self.name, "Package.name", max_len=214))
        object.__setattr__(self, "version", _as_str(self.version, "Package.version", max_len=64))
        object.__setattr__(
            self, "dependencies", _as_sorted_unique(self.dependencies, "Package.dependencies")
        )
        object.__setattr__(self, "category", _as_category(self.category, "Package.category"))
        if not isinstance(self.path, str):
            _fail("Package.path", f"expected string, got {type(self.path).__name__}")
        object.__setattr__(self, "provides", _as_sorted_unique(self.provides, "Package.provides"))
        if not isinstance(self.description, str):
            _fail("Package.description", "expected string")

    @property
    def slug(self) -> str:
        """Filesystem-safe identifier, e.g. ``@acme/core`` -> ``acme-core``."""
        return package_slug(self.name)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "version": self.version,
            "dependencies": list(self.dependencies),
            "category": self.category.value,
            "path": self.path,
            "provides": list(self.provides),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, path: str = "") -> Package:
        if not isinstance(data, Mapping):
            _fail("Package", f"expected object, got {type(data).__name__}")
        unknown = sorted(
            str(key)
            for key in data
            if key
            not in {
                "name",
                "version",
                "dependencies",
                "category",
                "provides",
                "description",
                "license",
                "path",
            }
        )
        if unknown:
            _fail("Package", f"unknown field(s): {', '.join(unknown)}")
        if "name" not in data:
            _fail("Package.name", "is required")
        raw_version = data.get("version", "0.0.0")
        if isinstance(raw_version, (int, float)) and not isinstance(raw_version, bool):
            raw_version = str(raw_version)
        return cls(
            name=_as_str(data["name"], "Package.name"),
            version=_as_str(raw_version, "Package.version"),
            dependencies=_as_str_sequence(data.get("dependencies", ()), "Package.dependencies"),
            category=_as_category(data.get("category"), "Package.category"),
            path=str(data.get("path", path) or path),
            provides=_as_str_sequence(data.get("provides", ()), "Package.provides"),
            description=str(data.get("description", "") or ""),
        )


@dataclass(frozen=True, slots=True)
class QualityCheckResult:
    """Outcome of one quality check; superseded, never mutated."""

    check: CheckName
    passed: bool
    details: Mapping[str, JSONValue] = field(default_factory=dict)
    fault: str | None = None
    duration_ms: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "check", _as_check_name(self.check, "QualityCheckResult.check"))
        if not isinstance(self.passed, bool):
            _fail("QualityCheckResult.passed", "expected boolean")
        if self.fault is not None and self.passed:
            _fail("QualityCheckResult.fault", "a faulted check cannot pass")
        if self.duration_ms < 0:
            _fail("QualityCheckResult.duration_ms", "must be >= 0")
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    @property
    def faulted(self) -> bool:
        return self.fault is not None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "check": self.check.value,
            "passed": self.passed,
            "details": to_json_value(dict(self.details)),
            "fault": self.fault,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True, slots=True)
class ComplianceScore:
    """Weighted 0-100 result of the eight checks plus its derived level."""

    score: int
    level: ComplianceLevel
    passed_checks: tuple[CheckName, ...] = ()
    failed_checks: tuple[CheckName, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.score, bool) or not isinstance(self.score, int):
            _fail("ComplianceScore.score", "expected integer")
        if not 0 <= self.score <= 100:
            _fail("ComplianceScore.score", "must be within 0..100")

    @property
    def is_blocked(self) -> bool:
        return self.level is ComplianceLevel.BLOCKED

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "score": self.score,
            "level": self.level.value,
            "passed_checks": [item.value for item in self.passed_checks],
            "failed_checks": [item.value for item in self.failed_checks],
        }


@dataclass(frozen=True, slots=True)
class ActionHistoryEntry:
    """One turn of the generation loop."""

    turn: int
    command: str
    outcome: CommandOutcome
    detail: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if self.turn < 1:
            _fail("ActionHistoryEntry.turn", "must be >= 1")
        object.__setattr__(self, "outcome", CommandOutcome(self.outcome))

    @property
    def succeeded(self) -> bool:
        return self.outcome is CommandOutcome.SUCCESS

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "turn": self.turn,
            "command": self.command,
            "outcome": self.outcome.value,
            "detail": self.detail,
            "timestamp": self.timestamp.isoformat(timespec="milliseconds").replace(
                "+00:00", "Z"
            ),
        }


@dataclass(slots=True)
class FileFailureEntry:
    """Per-file repeated-failure bookkeeping owned by one generation loop."""

    path: str
    modification_count: int = 1
    error_history: list[str] = field(default_factory=list)
    last_error_hash: str = ""
    meta_correction_sent: bool = False
    meta_correction_attempts: int = 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "path": self.path,
            "modification_count": self.modification_count,
            "error_history": list(self.error_history),
            "last_error_hash": self.last_error_hash,
            "meta_correction_sent": self.meta_correction_sent,
            "meta_correction_attempts": self.meta_correction_attempts,
        }


@dataclass(slots=True)
class PackageBuildTask:
    """Mutable scheduler unit; only the scheduler coordinator and its builder mutate it."""

    package: str
    state: BuildTaskState = BuildTaskState.PENDING
    remediation_attempts: int = 0
    score: ComplianceScore | None = None
    last_error: str | None = None
    error_type: str | None = None
    skipped_because: str | None = None
    published_version: str | None = None
    turns: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def transition(self, state: BuildTaskState) -> None:
        if self.state.is_terminal:
            raise ValueError(
                f"task {self.package!r} is already terminal ({self.state.value}); "
                f"cannot move to {state.value}"
            )
        self.state = state

    def fail(self, state: BuildTaskState, error: BaseException | str) -> None:
        self.transition(state)
        if isinstance(error, BaseException):
            self.last_error = str(error) or type(error).__name__
            self.error_type = type(error).__name__
        else:
            self.last_error = error

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return max(0.0, (self.finished_at - self.started_at).total_seconds())

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "package": self.package,
            "state": self.state.value,
            "remediation_attempts": self.remediation_attempts,
            "score": self.score.to_dict() if self.score is not None else None,
            "last_error": self.last_error,
            "error_type": self.error_type,
            "skipped_because": self.skipped_because,
            "published_version": self.published_version,
            "turns": self.turns,
            "duration_seconds": round(self.duration_seconds, 3),
        }


def package_slug(name: str) -> str:
    """Return the filesystem-safe slug for a scoped package name."""

    slug = name.strip().lstrip("@").replace("/", "-")
    if not slug:
        _fail("package name", "must produce a non-empty slug")
    return slug


def canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _as_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        _fail(path, "must not be empty")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_str_sequence(value: object, path: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        _fail(path, f"expected array, got {type(value).__name__}")
    if len(value) > _MAX_COLLECTION:
        _fail(path, f"too many items (>{_MAX_COLLECTION})")
    return tuple(_as_str(item, f"{path}[{index}]") for index, item in enumerate(value))


def _as_sorted_unique(value: object, path: str) -> tuple[str, ...]:
    return tuple(sorted(set(_as_str_sequence(value, path))))


def _as_category(value: object, path: str) -> PackageCategory:
    if value is None:
        return PackageCategory.UNKNOWN
    if isinstance(value, PackageCategory):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    try:
        return PackageCategory(value.strip().lower())
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in PackageCategory))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_check_name(value: object, path: str) -> CheckName:
    if isinstance(value, CheckName):
        return value
    try:
        return CheckName(str(value))
    except ValueError:
        allowed = ", ".join(item.value for item in CheckName)
        _fail(path, f"invalid check {value!r}; expected one of: {allowed}")


def to_json_value(value: object, *, depth: int = 0) -> JSONValue:
    if depth > 16:
        _fail("details", "nesting too deep")
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Mapping):
        return {
            str(key): to_json_value(value[key], depth=depth + 1)
            for key in sorted(value, key=str)
        }
    if isinstance(value, (list, tuple)):
        return [to_json_value(item, depth=depth + 1) for item in value]
    return str(value)


__all__ = [
    "ActionHistoryEntry",
    "BuildTaskState",
    "CheckName",
    "CommandOutcome",
    "ComplianceLevel",
    "ComplianceScore",
    "FileFailureEntry",
    "JSONValue",
    "Package",
    "PackageBuildTask",
    "PackageCategory",
    "QualityCheckResult",
    "canonical_json",
    "package_slug",
    "to_json_value",
]

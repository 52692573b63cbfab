"""
forge-orchestrator — configuration schema and validation.

File: src/forge_orchestrator/config/schema.py
Last updated: 2026-10-19

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Profile overlay validation and deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support the built-in ``fast`` and ``strict`` profile overlays.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from forge_orchestrator.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_MAX_CONCURRENT_BUILDS,
    DEFAULT_PLANS_DIR,
    DEFAULT_REPORTS_DIR,
    MAX_CONSECUTIVE_LINT_FAILURES,
    MAX_FILE_MODIFICATIONS_BEFORE_META,
    MAX_LOOP_ITERATIONS,
    MAX_META_CORRECTION_ATTEMPTS,
    MAX_REMEDIATION_ATTEMPTS,
    MIN_TEST_COVERAGE,
    PASSING_SCORE,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("fast", "strict")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "password",
    "secret",
    "token",
    "credential",
)

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "workspace_root"),
    ("paths", "plans_dir"),
    ("paths", "reports_dir"),
    ("observability", "log_dir"),
)

_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
_SECTIONS: Final[tuple[str, ...]] = (
    "meta",
    "scheduler",
    "generation",
    "remediation",
    "quality",
    "publishing",
    "paths",
    "observability",
)


class MetaConfig(TypedDict):
    schema_version: int


class SchedulerConfig(TypedDict):
    max_concurrent_builds: int


class GenerationConfig(TypedDict):
    max_loop_iterations: int
    max_consecutive_lint_failures: int
    max_file_modifications_before_meta: int
    max_meta_correction_attempts: int
    agent_command: str
    agent_timeout_seconds: float
    instructions: str


class RemediationConfig(TypedDict):
    max_attempts: int
    target_score: int


class QualityConfig(TypedDict):
    min_test_coverage: int
    coverage_targets: dict[str, int]
    probe_timeout_seconds: float
    typecheck_command: str
    lint_command: str
    test_command: str
    security_command: str
    license_marker: str
    license_header_lines: int
    source_extensions: list[str]
    required_files: list[str]
    readme_sections: list[str]
    integrations: dict[str, list[str]]
    integration_markers: dict[str, list[str]]


class PublishingConfig(TypedDict):
    registry: str
    dry_run: bool
    command: str
    max_attempts: int
    token_env: str
    publish_from_loop: bool


class PathsConfig(TypedDict):
    workspace_root: str
    plans_dir: str
    reports_dir: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    scheduler: dict[str, object]
    generation: dict[str, object]
    remediation: dict[str, object]
    quality: dict[str, object]
    publishing: dict[str, object]
    paths: dict[str, object]
    observability: dict[str, object]


class ForgeConfig(TypedDict):
    meta: MetaConfig
    scheduler: SchedulerConfig
    generation: GenerationConfig
    remediation: RemediationConfig
    quality: QualityConfig
    publishing: PublishingConfig
    paths: PathsConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[ForgeConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "scheduler": {
        "max_concurrent_builds": DEFAULT_MAX_CONCURRENT_BUILDS,
    },
    "generation": {
        "max_loop_iterations": MAX_LOOP_ITERATIONS,
        "max_consecutive_lint_failures": MAX_CONSECUTIVE_LINT_FAILURES,
        "max_file_modifications_before_meta": MAX_FILE_MODIFICATIONS_BEFORE_META,
        "max_meta_correction_attempts": MAX_META_CORRECTION_ATTEMPTS,
        "agent_command": "",
        "agent_timeout_seconds": 900.0,
        "instructions": "",
    },
    "remediation": {
        "max_attempts": MAX_REMEDIATION_ATTEMPTS,
        "target_score": PASSING_SCORE,
    },
    "quality": {
        "min_test_coverage": MIN_TEST_COVERAGE,
        "coverage_targets": {
            "core": 90,
            "validator": 90,
            "service": 85,
            "utility": 85,
            "suite": 80,
            "ui": 80,
        },
        "probe_timeout_seconds": 300.0,
        "typecheck_command": "mypy .",
        "lint_command": "ruff check .",
        "test_command": "pytest -q --cov=. --cov-report=term",
        "security_command": "pip-audit",
        "license_marker": "SPDX-License-Identifier",
        "license_header_lines": 5,
        "source_extensions": [".py"],
        "required_files": ["forge.yaml", "README.md"],
        "readme_sections": ["Installation", "Usage"],
        "integrations": {"core": ["logging"], "service": ["logging"]},
        "integration_markers": {"logging": ["import logging", "structlog"]},
    },
    "publishing": {
        "registry": "https://upload.pypi.org/legacy/",
        "dry_run": True,
        "command": "",
        "max_attempts": 3,
        "token_env": "FORGE_PUBLISH_TOKEN",
        "publish_from_loop": False,
    },
    "paths": {
        "workspace_root": "packages/",
        "plans_dir": DEFAULT_PLANS_DIR.as_posix(),
        "reports_dir": DEFAULT_REPORTS_DIR.as_posix(),
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs/",
        "redact_secrets": True,
    },
    "profiles": {
        "fast": {
            "generation": {"max_loop_iterations": 20},
            "remediation": {"max_attempts": 1},
            "quality": {"min_test_coverage": 80},
        },
        "strict": {
            "scheduler": {"max_concurrent_builds": 1},
            "remediation": {"target_score": 95},
            "quality": {"min_test_coverage": 95},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


_Parser = Callable[[object, str, _IssueCollector], Any]


def default_config() -> ForgeConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade forge.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the forge-orchestrator runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    selected = profile.strip() if profile is not None else ""
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    overlay_raw = profiles_raw.get(selected) if isinstance(profiles_raw, Mapping) else None
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )
    return assert_valid_config(merge_config(materialized, overlay_raw))


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a redacted copy for display; ``*_env`` names and secret-like keys are masked."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    return redacted if isinstance(redacted, dict) else {}


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {*_SECTIONS, "profiles"}, "", issues)
    _require_keys(payload, set(_SECTIONS), "", issues)

    out: dict[str, Any] = {}
    for name in _SECTIONS:
        raw = payload.get(name)
        if raw is None:
            continue
        section = _as_object(raw, name, issues)
        if section is not None:
            out[name] = _SECTION_VALIDATORS[name](section, name, issues, partial=False)

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles = _as_object(profiles_raw, "profiles", issues)
        if profiles is not None:
            out["profiles"] = _validate_profiles(profiles, "profiles", issues)

    generation = out.get("generation", {})
    if generation.get("max_loop_iterations", 1) < generation.get(
        "max_consecutive_lint_failures", 0
    ):
        issues.add(
            "generation.max_consecutive_lint_failures",
            "must not exceed generation.max_loop_iterations",
        )
    publishing = out.get("publishing", {})
    if publishing.get("dry_run") is False and not publishing.get("command"):
        issues.add("publishing.command", "required when publishing.dry_run is false")
    return out


def _validate_fields(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
    parsers: Mapping[str, _Parser],
) -> dict[str, Any]:
    _reject_unknown_keys(payload, set(parsers), path, issues)
    if not partial:
        _require_keys(payload, set(parsers), path, issues)

    out: dict[str, Any] = {}
    for key in sorted(parsers):
        if key not in payload:
            continue
        parsed = parsers[key](payload[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    out = _validate_fields(
        payload,
        path,
        issues,
        partial=partial,
        parsers={"schema_version": _int_parser(minimum=1)},
    )
    version = out.get("schema_version")
    if version is not None and version != ConfigSchemaVersion:
        issues.add(_join(path, "schema_version"), migration_guidance(version))
    return out


def _validate_scheduler(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    return _validate_fields(
        payload,
        path,
        issues,
        partial=partial,
        parsers={"max_concurrent_builds": _int_parser(minimum=1)},
    )


def _validate_generation(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    return _validate_fields(
        payload,
        path,
        issues,
        partial=partial,
        parsers={
            "max_loop_iterations": _int_parser(minimum=1),
            "max_consecutive_lint_failures": _int_parser(minimum=1),
            "max_file_modifications_before_meta": _int_parser(minimum=1),
            "max_meta_correction_attempts": _int_parser(minimum=0),
            "agent_command": _as_text,
            "agent_timeout_seconds": _float_parser(minimum=1.0),
            "instructions": _as_text,
        },
    )


def _validate_remediation(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    return _validate_fields(
        payload,
        path,
        issues,
        partial=partial,
        parsers={
            "max_attempts": _int_parser(minimum=0),
            "target_score": _int_parser(minimum=PASSING_SCORE, maximum=100),
        },
    )


def _validate_quality(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    return _validate_fields(
        payload,
        path,
        issues,
        partial=partial,
        parsers={
            "min_test_coverage": _int_parser(minimum=0, maximum=100),
            "coverage_targets": _as_percent_table,
            "probe_timeout_seconds": _float_parser(minimum=1.0),
            "typecheck_command": _as_str,
            "lint_command": _as_str,
            "test_command": _as_str,
            "security_command": _as_str,
            "license_marker": _as_str,
            "license_header_lines": _int_parser(minimum=1),
            "source_extensions": _as_str_list,
            "required_files": _as_str_list,
            "readme_sections": _as_str_list,
            "integrations": _as_str_list_table,
            "integration_markers": _as_str_list_table,
        },
    )


def _validate_publishing(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    return _validate_fields(
        payload,
        path,
        issues,
        partial=partial,
        parsers={
            "registry": _as_text,
            "dry_run": _as_bool,
            "command": _as_text,
            "max_attempts": _int_parser(minimum=1),
            "token_env": _as_optional_env_name,
            "publish_from_loop": _as_bool,
        },
    )


def _validate_paths(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    return _validate_fields(
        payload,
        path,
        issues,
        partial=partial,
        parsers={
            "workspace_root": _as_path_text,
            "plans_dir": _as_path_text,
            "reports_dir": _as_path_text,
        },
    )


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector, *, partial: bool
) -> dict[str, Any]:
    return _validate_fields(
        payload,
        path,
        issues,
        partial=partial,
        parsers={
            "log_level": _enum_parser(_LOG_LEVELS),
            "log_dir": _as_path_text,
            "redact_secrets": _as_bool,
        },
    )


_SECTION_VALIDATORS: Final[Mapping[str, Callable[..., dict[str, Any]]]] = {
    "meta": _validate_meta,
    "scheduler": _validate_scheduler,
    "generation": _validate_generation,
    "remediation": _validate_remediation,
    "quality": _validate_quality,
    "publishing": _validate_publishing,
    "paths": _validate_paths,
    "observability": _validate_observability,
}


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    overlay_sections = {name for name in _SECTIONS if name != "meta"}
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        profile = _as_object(payload[profile_name], profile_path, issues)
        if profile is None:
            continue
        _reject_unknown_keys(profile, overlay_sections, profile_path, issues)

        overlay: dict[str, Any] = {}
        for section_name in sorted(overlay_sections):
            raw = profile.get(section_name)
            if raw is None:
                continue
            section_path = _join(profile_path, section_name)
            section = _as_object(raw, section_path, issues)
            if section is not None:
                overlay[section_name] = _SECTION_VALIDATORS[section_name](
                    section, section_path, issues, partial=True
                )
        out[profile_name] = overlay
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    """String that may be empty; empty means "not configured"."""

    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    return value.strip()


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_text(value, path, issues)
    if parsed is None:
        return None
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_optional_env_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_text(value, path, issues)
    if parsed and not _ENV_NAME_PATTERN.fullmatch(parsed):
        issues.add(path, "must be an env var name (example: FORGE_PUBLISH_TOKEN)")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    if maximum is not None and value > maximum:
        issues.add(path, f"must be <= {maximum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, list | tuple):
        issues.add(path, f"expected array, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is not None:
            out.append(parsed)
    return out


def _as_str_list_table(
    value: object, path: str, issues: _IssueCollector
) -> dict[str, list[str]] | None:
    table = _as_object(value, path, issues)
    if table is None:
        return None
    out: dict[str, list[str]] = {}
    for key in sorted(table):
        parsed = _as_str_list(table[key], _join(path, key), issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _as_percent_table(value: object, path: str, issues: _IssueCollector) -> dict[str, int] | None:
    table = _as_object(value, path, issues)
    if table is None:
        return None
    out: dict[str, int] = {}
    for key in sorted(table):
        parsed = _as_int(table[key], _join(path, key), issues, minimum=0, maximum=100)
        if parsed is not None:
            out[key] = parsed
    return out


def _int_parser(*, minimum: int | None = None, maximum: int | None = None) -> _Parser:
    def parse(value: object, path: str, issues: _IssueCollector) -> int | None:
        return _as_int(value, path, issues, minimum=minimum, maximum=maximum)

    return parse


def _float_parser(*, minimum: float | None = None) -> _Parser:
    def parse(value: object, path: str, issues: _IssueCollector) -> float | None:
        return _as_float(value, path, issues, minimum=minimum)

    return parse


def _enum_parser(allowed_values: tuple[str, ...]) -> _Parser:
    def parse(value: object, path: str, issues: _IssueCollector) -> str | None:
        return _as_enum(value, path, issues, allowed_values=allowed_values)

    return parse


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded secret values are forbidden; use an *_env key with an env var name",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _normalize_key(key: str) -> str:
    return _NON_ALNUM.sub("_", key.strip().lower()).strip("_")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.endswith("_env"):
        return False
    return any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES)


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            nested = _deep_copy_mapping(existing)
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list | tuple):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        return {
            key: "<redacted>" if _key_is_sensitive(key) else _redact_value(value[key], key)
            for key in sorted(value)
        }
    if isinstance(value, list | tuple):
        return [_redact_value(item, parent_key) for item in value]
    return value


def _key_is_sensitive(key: str) -> bool:
    normalized = _normalize_key(key)
    if normalized.startswith("redact_"):
        return False
    return normalized.endswith("_env") or _looks_sensitive_key(normalized)


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "ForgeConfig",
    "PATH_FIELDS",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]

"""Plan lookup and section validation for package builds."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

from forge_orchestrator.domain.errors import PlanNotFoundError, PlanValidationError
from forge_orchestrator.domain.models import package_slug
from forge_orchestrator.utils.hashing import sha256_text

if TYPE_CHECKING:
    from collections.abc import Mapping

_HEADING_RE: Final[re.Pattern[str]] = re.compile(r"^#{1,6}\s+(?P<title>.+?)\s*#*\s*$")

# Each required section accepts any heading containing one of its variations.
REQUIRED_PLAN_SECTIONS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("Overview", ("overview", "description", "summary")),
    ("Requirements", ("requirements", "scope")),
    ("Implementation", ("implementation", "tasks")),
    ("Testing", ("testing", "tests")),
)


@dataclass(frozen=True, slots=True)
class PlanValidationResult:
    passed: bool
    missing_sections: tuple[str, ...]
    found_sections: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ResolvedPlan:
    """Plan text plus where it came from."""

    package: str
    text: str
    source: str

    @property
    def digest(self) -> str:
        return sha256_text(self.text)


def validate_plan(text: str) -> PlanValidationResult:
    """Check that markdown ``text`` has every required section heading."""

    found: list[str] = []
    for line in text.splitlines():
        match = _HEADING_RE.match(line.strip())
        if match is not None:
            found.append(match.group("title").strip())

    lowered = [item.lower() for item in found]
    missing = tuple(
        name
        for name, variations in REQUIRED_PLAN_SECTIONS
        if not any(variation in heading for heading in lowered for variation in variations)
    )
    return PlanValidationResult(
        passed=not missing,
        missing_sections=missing,
        found_sections=tuple(found),
    )


class PlanResolver:
    """
    Resolve a package's plan from explicit text or the plans directory.

    A missing plan is an explicit ``PlanNotFoundError``; there is no fallback to
    similarity search or elicitation.
    """

    __slots__ = ("_plans_dir", "_explicit")

    def __init__(
        self,
        plans_dir: str | Path | None = None,
        *,
        explicit: Mapping[str, str] | None = None,
    ) -> None:
        self._plans_dir = Path(plans_dir) if plans_dir is not None else None
        self._explicit = dict(explicit or {})

    def find(self, package: str) -> ResolvedPlan | None:
        explicit = self._explicit.get(package)
        if explicit is not None and explicit.strip():
            return ResolvedPlan(package=package, text=explicit, source="explicit")

        if self._plans_dir is None or not self._plans_dir.is_dir():
            return None

        candidates = _plan_file_stems(package)
        for plan_path in sorted(self._plans_dir.rglob("*.md")):
            if plan_path.stem in candidates and plan_path.is_file():
                return ResolvedPlan(
                    package=package,
                    text=plan_path.read_text(encoding="utf-8"),
                    source=plan_path.as_posix(),
                )
        return None

    def resolve(self, package: str) -> ResolvedPlan:
        """Return a validated plan or raise ``PlanNotFoundError``/``PlanValidationError``."""

        plan = self.find(package)
        if plan is None:
            searched = ["explicit input"]
            if self._plans_dir is not None:
                searched.append(f"{self._plans_dir.as_posix()}/**/{package_slug(package)}.md")
            raise PlanNotFoundError(package, searched=searched)

        result = validate_plan(plan.text)
        if not result.passed:
            raise PlanValidationError(package, result.missing_sections)
        return plan


def _plan_file_stems(package: str) -> frozenset[str]:
    unscoped = package.split("/", 1)[1] if package.startswith("@") and "/" in package else package
    return frozenset({unscoped, package_slug(package)})


__all__ = [
    "REQUIRED_PLAN_SECTIONS",
    "PlanResolver",
    "PlanValidationResult",
    "ResolvedPlan",
    "validate_plan",
]

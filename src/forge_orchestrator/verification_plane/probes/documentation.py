"""README presence and required-section probe."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

from forge_orchestrator.domain.models import CheckName
from forge_orchestrator.verification_plane.probes.base import ProbeOutcome, register_builtin_probe

if TYPE_CHECKING:
    from forge_orchestrator.domain.models import Package
    from forge_orchestrator.verification_plane.probes.base import ProbeContext

README_NAME: Final[str] = "README.md"
_HEADING_RE: Final[re.Pattern[str]] = re.compile(r"^#{1,6}\s+(?P<title>.+?)\s*#*\s*$")


@register_builtin_probe(CheckName.DOCUMENTATION)
class DocumentationProbe:
    """``README.md`` exists, has a title, and covers every ``quality.readme_sections`` entry."""

    check = CheckName.DOCUMENTATION

    async def run(self, package: Package, context: ProbeContext) -> ProbeOutcome:
        readme = context.package_root(package) / README_NAME
        if not readme.is_file():
            return ProbeOutcome(passed=False, details={"missing": [README_NAME]})

        headings = [
            match.group("title").strip().lower()
            for match in (
                _HEADING_RE.match(line.strip())
                for line in readme.read_text(encoding="utf-8").splitlines()
            )
            if match is not None
        ]
        missing = [
            section
            for section in context.settings.readme_sections
            if not any(section.lower() in heading for heading in headings)
        ]
        if not headings:
            missing.insert(0, "title heading")
        return ProbeOutcome(passed=not missing, details={"missing": missing})


__all__ = ["DocumentationProbe", "README_NAME"]

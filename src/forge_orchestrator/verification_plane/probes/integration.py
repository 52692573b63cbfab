"""Category-specific integration probe."""

from __future__ import annotations

from typing import TYPE_CHECKING

from forge_orchestrator.domain.models import CheckName
from forge_orchestrator.verification_plane.probes.base import (
    ProbeOutcome,
    iter_source_files,
    register_builtin_probe,
)

if TYPE_CHECKING:
    from forge_orchestrator.domain.models import Package
    from forge_orchestrator.verification_plane.probes.base import ProbeContext


@register_builtin_probe(CheckName.INTEGRATION)
class IntegrationProbe:
    """
    Required integrations for the package category appear in its sources.

    ``quality.integrations`` maps a category to integration names and
    ``quality.integration_markers`` maps a name to the source snippets that prove it is
    wired in. A name without markers is searched for literally.
    """

    check = CheckName.INTEGRATION

    async def run(self, package: Package, context: ProbeContext) -> ProbeOutcome:
        settings = context.settings
        category = package.category.value
        required = sorted(set(settings.integrations.get(category, ())))
        if not required:
            return ProbeOutcome(
                passed=True,
                details={
                    "package_type": category,
                    "required_integrations": [],
                    "missing_integrations": [],
                    "found_integrations": [],
                    "issues": [],
                },
            )

        root = context.package_root(package)
        corpus = [
            path.read_text(encoding="utf-8", errors="replace")
            for path in iter_source_files(root, settings.source_extensions)
        ]
        found: list[str] = []
        missing: list[str] = []
        for name in required:
            markers = settings.integration_markers.get(name) or (name,)
            if any(marker in text for text in corpus for marker in markers):
                found.append(name)
            else:
                missing.append(name)

        return ProbeOutcome(
            passed=not missing,
            details={
                "package_type": category,
                "required_integrations": required,
                "missing_integrations": missing,
                "found_integrations": found,
                "issues": [f"{category} packages must integrate {name}" for name in missing],
            },
        )


__all__ = ["IntegrationProbe"]

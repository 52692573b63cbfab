"""License header probe."""

from __future__ import annotations

from itertools import islice
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


@register_builtin_probe(CheckName.LICENSE)
class LicenseProbe:
    """Every source file carries ``quality.license_marker`` within its first lines."""

    check = CheckName.LICENSE

    async def run(self, package: Package, context: ProbeContext) -> ProbeOutcome:
        root = context.package_root(package)
        settings = context.settings
        missing: list[str] = []
        sources = iter_source_files(root, settings.source_extensions)
        for path in sources:
            with path.open(encoding="utf-8", errors="replace") as handle:
                header = "".join(islice(handle, settings.license_header_lines))
            if settings.license_marker not in header:
                missing.append(path.relative_to(root).as_posix())

        return ProbeOutcome(
            passed=not missing,
            details={
                "files_without_license": missing,
                "files_checked": len(sources),
                "marker": settings.license_marker,
            },
        )


__all__ = ["LicenseProbe"]

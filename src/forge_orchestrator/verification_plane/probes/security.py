"""Dependency audit probe."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

from forge_orchestrator.domain.models import CheckName
from forge_orchestrator.verification_plane.probes.base import (
    CommandProbe,
    ProbeOutcome,
    register_builtin_probe,
)

if TYPE_CHECKING:
    from forge_orchestrator.domain.models import Package
    from forge_orchestrator.integration_plane.executor import CommandResult, CommandSpec
    from forge_orchestrator.verification_plane.probes.base import ProbeContext

_ADVISORY_RE: Final[re.Pattern[str]] = re.compile(
    r"\b(?:GHSA-[\w-]+|PYSEC-\d{4}-\d+|CVE-\d{4}-\d+)"
)


@register_builtin_probe(CheckName.SECURITY)
class SecurityProbe(CommandProbe):
    """Runs ``quality.security_command`` (an auditor such as ``pip-audit``)."""

    check = CheckName.SECURITY
    command_setting = "security_command"

    def evaluate(
        self,
        *,
        package: Package,
        result: CommandResult,
        spec: CommandSpec,
        context: ProbeContext,
    ) -> ProbeOutcome:
        outcome = super().evaluate(package=package, result=result, spec=spec, context=context)
        advisories = sorted(set(_ADVISORY_RE.findall(result.output)))
        return ProbeOutcome(
            passed=outcome.passed and not advisories,
            details={**outcome.details, "vulnerabilities": list(advisories)},
        )


__all__ = ["SecurityProbe"]

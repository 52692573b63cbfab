"""Lint probe."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Final

from forge_orchestrator.domain.models import CheckName, JSONValue
from forge_orchestrator.verification_plane.probes.base import (
    CommandProbe,
    ProbeOutcome,
    register_builtin_probe,
)

if TYPE_CHECKING:
    from forge_orchestrator.domain.models import Package
    from forge_orchestrator.integration_plane.executor import CommandResult, CommandSpec
    from forge_orchestrator.verification_plane.probes.base import ProbeContext

_RULE_RE: Final[re.Pattern[str]] = re.compile(r"^(?P<rule>[A-Z]{1,4}\d{2,4})\b\s*(?P<rest>.*)$")


@register_builtin_probe(CheckName.LINT)
class LintProbe(CommandProbe):
    """Runs ``quality.lint_command`` and splits rule codes out of each finding."""

    check = CheckName.LINT
    command_setting = "lint_command"

    def evaluate(
        self,
        *,
        package: Package,
        result: CommandResult,
        spec: CommandSpec,
        context: ProbeContext,
    ) -> ProbeOutcome:
        outcome = super().evaluate(package=package, result=result, spec=spec, context=context)
        findings = outcome.details.get("findings")
        if not isinstance(findings, list):
            return outcome

        enriched: list[JSONValue] = []
        for finding in findings:
            if isinstance(finding, dict):
                message = finding.get("message")
                match = _RULE_RE.match(message) if isinstance(message, str) else None
                if match is not None:
                    finding = {
                        **finding,
                        "rule": match.group("rule"),
                        "message": match.group("rest"),
                    }
            enriched.append(finding)
        return ProbeOutcome(
            passed=outcome.passed,
            details={**outcome.details, "findings": enriched},
        )


__all__ = ["LintProbe"]

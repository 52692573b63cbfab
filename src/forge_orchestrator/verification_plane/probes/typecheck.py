"""Static type-check probe."""

from __future__ import annotations

from forge_orchestrator.domain.models import CheckName
from forge_orchestrator.verification_plane.probes.base import CommandProbe, register_builtin_probe


@register_builtin_probe(CheckName.TYPECHECK)
class TypecheckProbe(CommandProbe):
    """Runs ``quality.typecheck_command``; findings carry file and line of each error."""

    check = CheckName.TYPECHECK
    command_setting = "typecheck_command"


__all__ = ["TypecheckProbe"]

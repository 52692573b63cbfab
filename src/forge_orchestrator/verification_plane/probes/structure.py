"""Package layout and manifest probe."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Final

import yaml

from forge_orchestrator.constants import PACKAGE_MANIFEST_NAME
from forge_orchestrator.domain.models import CheckName, JSONValue
from forge_orchestrator.verification_plane.probes.base import ProbeOutcome, register_builtin_probe

if TYPE_CHECKING:
    from forge_orchestrator.domain.models import Package
    from forge_orchestrator.verification_plane.probes.base import ProbeContext

_REQUIRED_MANIFEST_FIELDS: Final[tuple[str, ...]] = ("name", "version", "description", "license")


@register_builtin_probe(CheckName.STRUCTURE)
class StructureProbe:
    """Required files exist and the manifest declares every required field."""

    check = CheckName.STRUCTURE

    async def run(self, package: Package, context: ProbeContext) -> ProbeOutcome:
        root = context.package_root(package)
        missing_files = sorted(
            name for name in context.settings.required_files if not (root / name).is_file()
        )
        invalid_fields: list[str] = []

        manifest_path = root / PACKAGE_MANIFEST_NAME
        if manifest_path.is_file():
            try:
                manifest = yaml.safe_load(manifest_path.read_text(encoding="utf-8"))
            except yaml.YAMLError as exc:
                invalid_fields.append(f"{PACKAGE_MANIFEST_NAME}: invalid YAML ({exc})")
                manifest = None
            if isinstance(manifest, Mapping):
                for key in _REQUIRED_MANIFEST_FIELDS:
                    value = manifest.get(key)
                    if value is None or (isinstance(value, str) and not value.strip()):
                        invalid_fields.append(key)
                if manifest.get("name") not in (None, package.name):
                    invalid_fields.append("name (does not match package)")
            elif manifest is not None:
                invalid_fields.append(f"{PACKAGE_MANIFEST_NAME}: root must be a mapping")
        elif PACKAGE_MANIFEST_NAME not in missing_files:
            missing_files.append(PACKAGE_MANIFEST_NAME)

        details: dict[str, JSONValue] = {
            "missing_files": list(missing_files),
            "invalid_fields": list(invalid_fields),
        }
        return ProbeOutcome(passed=not missing_files and not invalid_fields, details=details)


__all__ = ["StructureProbe"]

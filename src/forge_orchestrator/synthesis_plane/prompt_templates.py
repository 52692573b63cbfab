"""
forge-orchestrator — prompt templates

File: src/forge_orchestrator/synthesis_plane/prompt_templates.py
Last updated: 2026-10-19

Purpose
- Render the per-turn agent context, the meta-correction directive, and the remediation
  brief from strict jinja2 templates.

Functional requirements
- Must render deterministically for the same inputs.
- Missing variables fail loudly (``StrictUndefined``); unexpected variables are rejected.
- Every rendered prompt carries a sha256 hash for report reproducibility.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from jinja2 import Environment, StrictUndefined, TemplateError, meta

from forge_orchestrator.utils.hashing import sha256_text

if TYPE_CHECKING:
    from collections.abc import Mapping


class PromptTemplateError(RuntimeError):
    """Base error for prompt template rendering."""


class PromptTemplateVariableError(PromptTemplateError, ValueError):
    """Raised for missing or unexpected template variables."""


DEFAULT_INSTRUCTIONS: Final[str] = """\
You are building one package of a larger suite.

Rules:
1. Follow the plan exactly as written.
2. Include tests that meet the package's coverage floor.
3. Add the license header to every source file.
4. Keep the manifest (forge.yaml) complete and valid.

Workflow:
1. Use apply-file-changes to create, update or delete files.
2. Use validate-manifest after editing forge.yaml.
3. Use check-license-headers after creating source files.
4. Use run-lint once the code is written.
5. Use run-tests after lint passes.
6. Use publish only when every check passes.

If a check fails, fix it with apply-file-changes and re-run the check.
Reply with exactly one JSON command object per turn."""

_TURN_CONTEXT = """\
{% if directive %}{{ directive }}

---

{% endif %}{% if hints %}## Human hints
{% for hint in hints %}- {{ hint }}
{% endfor %}
{% endif %}## Current state
{{ summary }}
{% if remediation %}
## Remediation required
{{ remediation }}
{% endif %}"""

_META_CORRECTION = """\
## STUCK ON FILE: {{ path }}

You have attempted to modify {{ path }} {{ count }} times with the same error.

### Expected format
{{ expected_format }}

### Latest error
{{ error }}

### Instructions
1. Read the error above carefully; it has not changed between attempts.
2. Check that the file content matches the expected format exactly.
3. Structured files (JSON, YAML, TOML) must not be wrapped in markdown code fences.
4. Change your approach instead of resubmitting the same content.

You have {{ remaining }} attempt(s) remaining before this build terminates."""

_REMEDIATION = """\
Quality score {{ score }}/100 ({{ level }}) is below the required {{ target }}.
Remediation attempt {{ attempt }} of {{ max_attempts }}. Fix these issues in priority order:
{% for task in tasks %}
### [{{ task.priority }}] {{ task.category }}: {{ task.description }}
{% for line in task.details %}- {{ line }}
{% endfor %}{% endfor %}"""

TEMPLATES: Final[Mapping[str, str]] = MappingProxyType(
    {
        "turn_context": _TURN_CONTEXT,
        "meta_correction": _META_CORRECTION,
        "remediation": _REMEDIATION,
    }
)


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    """Rendered prompt text plus its deterministic hash."""

    template_name: str
    text: str
    prompt_hash: str


class PromptRenderer:
    """Strict renderer over a fixed template table."""

    def __init__(self, templates: Mapping[str, str] | None = None) -> None:
        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=False,
            lstrip_blocks=False,
            newline_sequence="\n",
            keep_trailing_newline=False,
        )
        self._sources = dict(templates if templates is not None else TEMPLATES)
        self._declared: dict[str, frozenset[str]] = {
            name: frozenset(meta.find_undeclared_variables(self._environment.parse(source)))
            for name, source in self._sources.items()
        }

    def declared_variables(self, template_name: str) -> tuple[str, ...]:
        return tuple(sorted(self._require(template_name)))

    def render(self, template_name: str, /, **variables: object) -> RenderedPrompt:
        declared = self._require(template_name)
        unexpected = sorted(set(variables) - declared)
        if unexpected:
            raise PromptTemplateVariableError(
                f"unexpected variables for {template_name!r}: {', '.join(unexpected)}"
            )
        missing = sorted(declared - set(variables))
        if missing:
            raise PromptTemplateVariableError(
                f"missing variables for {template_name!r}: {', '.join(missing)}"
            )

        try:
            text = self._environment.from_string(self._sources[template_name]).render(**variables)
        except TemplateError as exc:
            raise PromptTemplateError(f"failed to render {template_name!r}: {exc}") from exc
        text = text.strip()
        return RenderedPrompt(
            template_name=template_name,
            text=text,
            prompt_hash=sha256_text(text),
        )

    def _require(self, template_name: str) -> frozenset[str]:
        declared = self._declared.get(template_name)
        if declared is None:
            known = ", ".join(sorted(self._declared))
            raise PromptTemplateError(f"unknown template {template_name!r}; known: [{known}]")
        return declared


@lru_cache(maxsize=1)
def default_renderer() -> PromptRenderer:
    return PromptRenderer()


__all__ = [
    "DEFAULT_INSTRUCTIONS",
    "TEMPLATES",
    "PromptRenderer",
    "PromptTemplateError",
    "PromptTemplateVariableError",
    "RenderedPrompt",
    "default_renderer",
]

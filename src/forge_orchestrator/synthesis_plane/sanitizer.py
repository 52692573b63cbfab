"""
Structured-data sanitizer for agent-written files.

Agents frequently wrap JSON/YAML/TOML file bodies in markdown code fences. Before such a
file is written, an enclosing fence is stripped, but only when the unwrapped text
actually parses; otherwise the original content is kept so the failure surfaces in the
next check with the agent's own text.
"""

from __future__ import annotations

import json
import re
import tomllib
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Final

import yaml

STRUCTURED_SUFFIXES: Final[frozenset[str]] = frozenset({".json", ".yaml", ".yml", ".toml"})

_FENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"\A\s*```[ \t]*(?P<lang>[A-Za-z0-9_+.-]*)[ \t]*\r?\n(?P<body>.*?)\r?\n?```\s*\Z",
    re.DOTALL,
)


@dataclass(frozen=True, slots=True)
class SanitizedContent:
    content: str
    unwrapped: bool
    warning: str | None = None


def strip_code_fence(text: str) -> str | None:
    """Return the body of a single enclosing ``` fence, or ``None`` when there is none."""

    match = _FENCE_RE.match(text)
    if match is None:
        return None
    return match.group("body")


def parses_as(suffix: str, text: str) -> bool:
    """Whether ``text`` parses as the structured format implied by ``suffix``."""

    try:
        if suffix == ".json":
            json.loads(text)
        elif suffix in {".yaml", ".yml"}:
            yaml.safe_load(text)
        elif suffix == ".toml":
            tomllib.loads(text)
        else:
            return False
    except (ValueError, yaml.YAMLError):
        return False
    return True


def sanitize_structured_content(path: str, content: str) -> SanitizedContent:
    """Unwrap fenced structured content for ``path`` when the result is valid."""

    suffix = PurePosixPath(path).suffix.lower()
    if suffix not in STRUCTURED_SUFFIXES:
        return SanitizedContent(content=content, unwrapped=False)

    body = strip_code_fence(content)
    if body is None:
        return SanitizedContent(content=content, unwrapped=False)

    if not parses_as(suffix, body):
        return SanitizedContent(
            content=content,
            unwrapped=False,
            warning=f"{path}: fenced content does not parse as {suffix[1:]}; kept as written",
        )

    unwrapped = body if body.endswith("\n") else f"{body}\n"
    return SanitizedContent(
        content=unwrapped,
        unwrapped=True,
        warning=f"{path}: removed markdown code fence",
    )


__all__ = [
    "STRUCTURED_SUFFIXES",
    "SanitizedContent",
    "parses_as",
    "sanitize_structured_content",
    "strip_code_fence",
]

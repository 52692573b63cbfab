"""
forge-orchestrator — hashing utilities

File: src/forge_orchestrator/utils/hashing.py
Last updated: 2026-10-19

Purpose
- Provide deterministic SHA-256 helpers for bytes and text.
- Fingerprint tool error text so repeated identical failures can be recognised.

Functional requirements
- Error fingerprints ignore case and whitespace layout differences.

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib
import re

_WHITESPACE_RUN = re.compile(r"\s+")

__all__ = [
    "error_fingerprint",
    "normalize_error_text",
    "sha256_bytes",
    "sha256_text",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def normalize_error_text(text: str) -> str:
    """Lowercase, collapse whitespace runs, and strip."""

    return _WHITESPACE_RUN.sub(" ", text.lower()).strip()


def error_fingerprint(text: str) -> str:
    """Stable hash of an error message, insensitive to case and whitespace layout."""

    return sha256_text(normalize_error_text(text))

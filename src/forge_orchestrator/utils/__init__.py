"""Utility exports for filesystem and hashing helpers."""

from forge_orchestrator.utils.fs import atomic_write, resolve_within, safe_delete
from forge_orchestrator.utils.hashing import (
    error_fingerprint,
    normalize_error_text,
    sha256_bytes,
    sha256_text,
)

__all__ = [
    "atomic_write",
    "error_fingerprint",
    "normalize_error_text",
    "resolve_within",
    "safe_delete",
    "sha256_bytes",
    "sha256_text",
]

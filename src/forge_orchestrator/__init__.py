"""
forge-orchestrator — package root

File: src/forge_orchestrator/__init__.py
Last updated: 2026-10-19

Purpose
- Autonomous build orchestration: dependency resolution, bounded parallel builds,
  agent-driven code generation, compliance scoring, remediation, and publishing.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]

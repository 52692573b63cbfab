"""
forge-orchestrator — integration plane

File: src/forge_orchestrator/integration_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Side effects of agent commands: tool subprocesses, file mutation, and publishing.
"""

"""
forge-orchestrator — runtime config loader.

File: src/forge_orchestrator/config/loader.py
Last updated: 2026-10-19

Purpose
- Build the effective runtime config for one CLI invocation.

What should be included in this file
- Layering: defaults, ``forge.toml``, profile overlay, ``FORGE_*`` env vars, CLI overrides.
- Env var names derived from the config tree, with values coerced to the type of the
  setting they replace.
- Path fields resolved against the directory holding the config file.
- Redacted JSON dump for ``forge config``.

Functional requirements
- Every layer is validated against the schema after it is applied.
- A publish token is demanded only when real (non dry-run) publishing is configured.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from forge_orchestrator.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "forge.toml"
ENV_PREFIX: Final[str] = "FORGE_"
PROFILE_ENV: Final[str] = f"{ENV_PREFIX}PROFILE"

# Sections that cannot be set from the environment.
_ENV_EXCLUDED_SECTIONS: Final[frozenset[str]] = frozenset({"meta", "profiles"})

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

Coercer = Callable[[str], object]


class ConfigLoadError(ValueError):
    """Raised when config cannot be read or an override cannot be applied."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    require_publish_token: bool = False,
) -> dict[str, Any]:
    """
    Return the validated effective config.

    ``config_path`` defaults to ``./forge.toml``; a missing default file is fine, a
    missing explicit one is not. ``cli_overrides`` uses dotted keys and ``None`` values
    are ignored so argparse defaults can be passed through untouched.
    """

    env = dict(os.environ) if environ is None else dict(environ)
    overrides = dict(cli_overrides or {})
    source = _config_file_path(config_path)

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(source, must_exist=config_path is not None))
    )

    chosen = _choose_profile(profile, overrides, env)
    if chosen:
        config = apply_profile_overlay(config, chosen)

    config = merge_config(config, _env_layer(config, env))
    config = merge_config(config, _cli_layer(overrides))
    config = assert_valid_config(normalize_paths(assert_valid_config(config), source.parent))

    if require_publish_token:
        _check_publish_token(config, env)
    return config


def normalize_paths(config: Mapping[str, object], base_dir: Path) -> dict[str, Any]:
    """Resolve every path field (profiles included) against ``base_dir``."""

    result = merge_config({}, config)
    targets: list[tuple[str, ...]] = list(PATH_FIELDS)
    profiles = result.get("profiles")
    if isinstance(profiles, Mapping):
        for name in sorted(profiles):
            targets.extend(("profiles", name, *field) for field in PATH_FIELDS)

    for path in targets:
        parent = _lookup(result, path[:-1])
        if isinstance(parent, dict) and isinstance(parent.get(path[-1]), str):
            parent[path[-1]] = _absolute(parent[path[-1]], base_dir)
    return result


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Redacted effective config, safe to print or log."""

    return redact_config(config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(effective_config(config), sort_keys=True, indent=2, ensure_ascii=False)


def env_name_for_path(path: tuple[str, ...]) -> str:
    """``("scheduler", "max_concurrent_builds")`` -> ``FORGE_SCHEDULER_MAX_CONCURRENT_BUILDS``."""

    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _config_file_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return Path.cwd().joinpath(DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, must_exist: bool) -> dict[str, Any]:
    if not path.is_file():
        if must_exist:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _choose_profile(
    explicit: str | None, overrides: Mapping[str, object], env: Mapping[str, str]
) -> str | None:
    if explicit is not None:
        return explicit.strip() or None
    if "profile" in overrides and overrides["profile"] is not None:
        from_cli = overrides["profile"]
        if not isinstance(from_cli, str):
            raise ConfigLoadError("cli override 'profile' must be a string")
        return from_cli.strip() or None
    return env.get(PROFILE_ENV, "").strip() or None


def _env_layer(config: Mapping[str, object], env: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for path, current in _settings(config):
        name = env_name_for_path(path)
        if name not in env:
            continue
        coerce = _coercer_for(current)
        if coerce is None:
            continue
        try:
            value = coerce(env[name].strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {'.'.join(path)} {exc}") from exc
        _assign(layer, path, value)
    return layer


def _settings(
    node: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key in sorted(node):
        if not prefix and key in _ENV_EXCLUDED_SECTIONS:
            continue
        value = node[key]
        if isinstance(value, Mapping):
            yield from _settings(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _coercer_for(current: object) -> Coercer | None:
    if isinstance(current, bool):
        return _to_bool
    if isinstance(current, int):
        return _to_int
    if isinstance(current, float):
        return _to_float
    if isinstance(current, str):
        return str
    if isinstance(current, list | tuple) and all(isinstance(item, str) for item in current):
        return _to_list
    return None


def _to_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


def _to_int(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError("must be an integer") from None


def _to_float(raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError("must be a number") from None


def _to_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key in sorted(overrides):
        value = overrides[key]
        if key == "profile" or value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if len(path) < 2:
            raise ConfigLoadError(f"invalid CLI override key {key!r}; expected section.field")
        _assign(layer, path, value)
    return layer


def _assign(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    node = target
    for part in path[:-1]:
        node = node.setdefault(part, {})
    node[path[-1]] = value


def _lookup(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    node: object = payload
    for part in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _absolute(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


def _check_publish_token(config: Mapping[str, object], env: Mapping[str, str]) -> None:
    if _lookup(config, ("publishing", "dry_run")) is not False:
        return
    token_env = _lookup(config, ("publishing", "token_env"))
    if isinstance(token_env, str) and token_env and not env.get(token_env, "").strip():
        raise ConfigLoadError(
            f"missing publish token: publishing.token_env -> {token_env} is not set"
        )


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV",
    "dump_effective_config",
    "effective_config",
    "env_name_for_path",
    "load_config",
    "normalize_paths",
]

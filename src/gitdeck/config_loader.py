"""Layered configuration for gitdeck.

Layers, lowest precedence first:

1. Model defaults
2. ``~/.gitdeck/config.toml``
3. ``.gitdeck/config.toml`` in the project directory or its nearest parent
4. ``GITDECK_*`` environment variables

A broken user file is skipped with a warning; a broken project file or a
merged result that fails validation raises ``ConfigError``.
"""

from __future__ import annotations

import os
import sys
import threading
import warnings
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import ValidationError

from .config_schema import GitdeckConfig


CONFIG_DIR_NAME = ".gitdeck"
CONFIG_FILENAME = "config.toml"

# Environment variable -> dotted setting
ENV_MAPPING: Dict[str, str] = {
    "GITDECK_CACHE_TTL": "cache.ttl_seconds",
    "GITDECK_CACHE_MAX_RETENTION": "cache.max_retention_seconds",
    "GITDECK_CACHE_SWEEP_INTERVAL": "cache.sweep_interval_seconds",
    "GITDECK_PERF_MAX_HISTORY": "performance.max_history",
    "GITDECK_GIT_BINARY": "git.binary",
    "GITDECK_GIT_TIMEOUT": "git.command_timeout_seconds",
    "GITDECK_CLI_FALLBACK": "git.enable_cli_fallback",
    "GITDECK_LOG_LEVEL": "logging.level",
    "GITDECK_LOG_DIR": "logging.dir",
    "GITDECK_LOG_MAX_BYTES": "logging.max_bytes",
    "GITDECK_LOG_BACKUP_COUNT": "logging.backup_count",
    "GITDECK_LOG_DISABLE_FILE": "logging.disable_file",
}


class ConfigError(Exception):
    """A config file could not be read or the merged settings are invalid."""


def _get_user_config_dir() -> Path:
    return Path.home() / CONFIG_DIR_NAME


def _get_project_config_dir(project_path: Optional[Path] = None) -> Optional[Path]:
    """Nearest ``.gitdeck`` directory at or above ``project_path`` (default: cwd).

    The user directory never counts as a project directory.
    """
    start = project_path or Path.cwd()
    if not start.is_absolute():
        start = start.resolve()
    user_dir = _get_user_config_dir()
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_DIR_NAME
        if candidate != user_dir and candidate.is_dir():
            return candidate
    return None


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` updated with ``override``; tables merge, other values replace."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _apply_env_overlay(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Layer set ``GITDECK_*`` variables over ``settings``.

    Values stay strings; the pydantic models coerce them.
    """
    overlay: Dict[str, Any] = {}
    for env_var, dotted in ENV_MAPPING.items():
        raw = os.environ.get(env_var)
        if raw is None:
            continue
        *sections, key = dotted.split(".")
        table = overlay
        for section in sections:
            table = table.setdefault(section, {})
        table[key] = raw
    return _deep_merge(settings, overlay)


def _file_layers(project_path: Optional[Path]) -> Iterator[Tuple[str, Path]]:
    yield "user", _get_user_config_dir() / CONFIG_FILENAME
    project_dir = _get_project_config_dir(project_path)
    if project_dir is not None:
        yield "project", project_dir / CONFIG_FILENAME


def load_config(project_path: Optional[Path] = None, skip_env: bool = False) -> GitdeckConfig:
    """Merge every config layer and validate the result.

    Args:
        project_path: Where to start looking for a project ``.gitdeck`` directory
        skip_env: Ignore ``GITDECK_*`` environment variables

    Raises:
        ConfigError: Unreadable project file or invalid merged settings
    """
    settings: Dict[str, Any] = {}
    for layer, path in _file_layers(project_path):
        if not path.is_file():
            continue
        try:
            settings = _deep_merge(settings, _read_toml(path))
        except ConfigError as e:
            if layer == "project":
                raise ConfigError(f"Invalid project config: {e}") from e
            warnings.warn(f"Skipping invalid user config at {path}: {e}", UserWarning)

    if not skip_env:
        settings = _apply_env_overlay(settings)

    try:
        return GitdeckConfig.model_validate(settings)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed:\n{e}") from e


def get_config_paths(project_path: Optional[Path] = None) -> Dict[str, Optional[Path]]:
    """Config files that would be consulted (they need not exist)."""
    paths: Dict[str, Optional[Path]] = {"user_config": None, "project_config": None}
    for layer, path in _file_layers(project_path):
        paths[f"{layer}_config"] = path
    return paths


# (resolved project path, config) of the last load
_cached: Optional[Tuple[Optional[Path], GitdeckConfig]] = None
_cache_lock = threading.Lock()


def get_config(project_path: Optional[Path] = None, force_reload: bool = False) -> GitdeckConfig:
    """Config for ``project_path``, reusing the last load for the same path."""
    global _cached
    key = project_path.resolve() if project_path else None
    with _cache_lock:
        if force_reload or _cached is None or _cached[0] != key:
            _cached = (key, load_config(project_path))
        return _cached[1]


def clear_config_cache() -> None:
    global _cached
    with _cache_lock:
        _cached = None

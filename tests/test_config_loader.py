"""Tests for config_loader module."""

from __future__ import annotations

from pathlib import Path

import pytest

from gitdeck.config_loader import (
    ENV_MAPPING,
    ConfigError,
    _apply_env_overlay,
    _deep_merge,
    _get_project_config_dir,
    _get_user_config_dir,
    clear_config_cache,
    get_config,
    get_config_paths,
    load_config,
)
from gitdeck.config_schema import GitdeckConfig


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point the user config at an empty home and clear GITDECK_* overrides."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for name in ENV_MAPPING:
        monkeypatch.delenv(name, raising=False)
    clear_config_cache()
    yield home
    clear_config_cache()


def _write_config(directory: Path, text: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "config.toml"
    path.write_text(text)
    return path


class TestDeepMerge:
    def test_nested_merge(self):
        base = {"cache": {"ttl_seconds": 1, "max_repositories": 5}}
        override = {"cache": {"ttl_seconds": 2}, "version": 1}
        assert _deep_merge(base, override) == {
            "cache": {"ttl_seconds": 2, "max_repositories": 5},
            "version": 1,
        }

    def test_base_unchanged(self):
        base = {"a": {"b": 1}}
        _deep_merge(base, {"a": {"b": 2}})
        assert base == {"a": {"b": 1}}


class TestEnvOverlay:
    def test_values_land_in_sections(self, monkeypatch):
        monkeypatch.setenv("GITDECK_CACHE_TTL", "30")
        monkeypatch.setenv("GITDECK_LOG_LEVEL", "debug")
        result = _apply_env_overlay({"cache": {"max_repositories": 3}})
        assert result == {
            "cache": {"max_repositories": 3, "ttl_seconds": "30"},
            "logging": {"level": "debug"},
        }

    def test_env_types_are_validated(self, monkeypatch):
        monkeypatch.setenv("GITDECK_CACHE_TTL", "30")
        monkeypatch.setenv("GITDECK_CLI_FALLBACK", "false")
        monkeypatch.setenv("GITDECK_PERF_MAX_HISTORY", "10")
        config = load_config()
        assert config.cache.ttl_seconds == 30.0
        assert config.git.enable_cli_fallback is False
        assert config.performance.max_history == 10

    def test_skip_env(self, monkeypatch):
        monkeypatch.setenv("GITDECK_CACHE_TTL", "30")
        assert load_config(skip_env=True).cache.ttl_seconds == 300.0

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv("GITDECK_CACHE_TTL", "1000")
        with pytest.raises(ConfigError, match="max_retention_seconds"):
            load_config()


class TestConfigDirectories:
    def test_user_config_dir(self, isolated_home):
        assert _get_user_config_dir() == isolated_home / ".gitdeck"

    def test_project_config_dir_searches_upward(self, tmp_path):
        config_dir = tmp_path / "project" / ".gitdeck"
        config_dir.mkdir(parents=True)
        subdir = tmp_path / "project" / "src" / "deep"
        subdir.mkdir(parents=True)
        assert _get_project_config_dir(subdir) == config_dir

    def test_project_config_dir_not_found(self, tmp_path):
        assert _get_project_config_dir(tmp_path / "home") is None

    def test_user_dir_is_not_a_project_dir(self, isolated_home):
        (isolated_home / ".gitdeck").mkdir()
        assert _get_project_config_dir(isolated_home) is None

    def test_get_config_paths(self, isolated_home, tmp_path):
        (tmp_path / "project" / ".gitdeck").mkdir(parents=True)
        paths = get_config_paths(tmp_path / "project")
        assert paths["user_config"] == isolated_home / ".gitdeck" / "config.toml"
        assert paths["project_config"] == tmp_path / "project" / ".gitdeck" / "config.toml"


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        config = load_config(tmp_path)
        assert config == GitdeckConfig()

    def test_project_overrides_user(self, isolated_home, tmp_path):
        _write_config(
            isolated_home / ".gitdeck",
            "[cache]\nttl_seconds = 60\nmax_repositories = 5\n",
        )
        project = tmp_path / "project"
        _write_config(project / ".gitdeck", "[cache]\nttl_seconds = 120\n")

        config = load_config(project)
        assert config.cache.ttl_seconds == 120.0
        assert config.cache.max_repositories == 5

    def test_env_overrides_files(self, tmp_path, monkeypatch):
        project = tmp_path / "project"
        _write_config(project / ".gitdeck", "[logging]\nlevel = \"warning\"\n")
        monkeypatch.setenv("GITDECK_LOG_LEVEL", "error")
        assert load_config(project).logging.level == "ERROR"

    def test_invalid_user_toml_warns(self, isolated_home, tmp_path):
        _write_config(isolated_home / ".gitdeck", "[cache\n")
        with pytest.warns(UserWarning, match="Skipping invalid user config"):
            config = load_config(tmp_path)
        assert config.cache.ttl_seconds == 300.0

    def test_invalid_project_toml_raises(self, tmp_path):
        project = tmp_path / "project"
        _write_config(project / ".gitdeck", "not = [valid")
        with pytest.raises(ConfigError, match="Invalid project config"):
            load_config(project)

    def test_validation_error(self, tmp_path):
        project = tmp_path / "project"
        _write_config(project / ".gitdeck", "[performance]\nmax_history = 0\n")
        with pytest.raises(ConfigError, match="Config validation failed"):
            load_config(project)


class TestGetConfig:
    def test_cached_until_reload(self, tmp_path):
        first = get_config(tmp_path)
        assert get_config(tmp_path) is first
        assert get_config(tmp_path, force_reload=True) is not first

    def test_new_project_path_reloads(self, tmp_path):
        project = tmp_path / "project"
        _write_config(project / ".gitdeck", "[cache]\nttl_seconds = 10\n")
        assert get_config(tmp_path).cache.ttl_seconds == 300.0
        assert get_config(project).cache.ttl_seconds == 10.0

    def test_clear_config_cache(self, tmp_path):
        first = get_config(tmp_path)
        clear_config_cache()
        assert get_config(tmp_path) is not first

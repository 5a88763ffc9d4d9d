"""Tests for config_schema module."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from gitdeck.config_schema import (
    CacheConfig,
    GitConfig,
    GitdeckConfig,
    LoggingConfig,
    PerformanceConfig,
)


class TestCacheConfig:
    def test_defaults(self):
        config = CacheConfig()
        assert config.ttl_seconds == 300.0
        assert config.max_retention_seconds == 900.0
        assert config.sweep_interval_seconds == 60.0
        assert config.max_repositories == 50

    def test_retention_must_cover_ttl(self):
        with pytest.raises(ValidationError, match="max_retention_seconds"):
            CacheConfig(ttl_seconds=120, max_retention_seconds=60)
        assert CacheConfig(ttl_seconds=60, max_retention_seconds=60).ttl_seconds == 60

    @pytest.mark.parametrize("field", ["ttl_seconds", "sweep_interval_seconds"])
    def test_positive_durations(self, field):
        with pytest.raises(ValidationError):
            CacheConfig(**{field: 0})


class TestPerformanceConfig:
    def test_defaults(self):
        config = PerformanceConfig()
        assert config.max_history == 100
        assert config.recommendation_slow_ratio == 0.2
        assert config.recommendation_avg_factor == 1.5

    def test_bounds(self):
        with pytest.raises(ValidationError):
            PerformanceConfig(max_history=0)
        with pytest.raises(ValidationError):
            PerformanceConfig(recommendation_slow_ratio=1.5)
        with pytest.raises(ValidationError):
            PerformanceConfig(recommendation_avg_factor=0.5)


class TestGitConfig:
    def test_defaults(self):
        config = GitConfig()
        assert config.binary == "git"
        assert config.command_timeout_seconds == 120.0
        assert config.enable_cli_fallback is True
        assert config.include_untracked_in_stash is True

    def test_missing_binary_warns(self):
        with pytest.warns(UserWarning, match="git binary not found"):
            config = GitConfig(binary="definitely-not-git-xyz")
        assert config.binary == "definitely-not-git-xyz"


class TestLoggingConfig:
    def test_level_is_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_unknown_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(level="verbose")

    def test_file_as_log_dir_warns(self, tmp_path):
        target = tmp_path / "file.log"
        target.write_text("")
        with pytest.warns(UserWarning, match="not a directory"):
            LoggingConfig(dir=str(target))


class TestGitdeckConfig:
    def test_default(self):
        config = GitdeckConfig.default()
        assert config.version == 1
        assert config.cache == CacheConfig()
        assert config.logging.disable_file is False

    def test_nested_dicts(self):
        config = GitdeckConfig.model_validate(
            {"cache": {"ttl_seconds": 5, "max_retention_seconds": 10}, "git": {"enable_cli_fallback": False}}
        )
        assert config.cache.ttl_seconds == 5.0
        assert config.git.enable_cli_fallback is False

    def test_bad_section_type(self):
        with pytest.raises(ValidationError):
            GitdeckConfig.model_validate({"cache": "fast"})

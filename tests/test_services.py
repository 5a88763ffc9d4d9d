"""Tests for the process-wide engine services and provider assembly."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from fakes import FakeProvider, PartialRepository
from gitdeck.config_schema import GitConfig, GitdeckConfig, LoggingConfig
from gitdeck_ops import observability
from gitdeck_ops.cli_repository import CliRepository, LocalGitProvider
from gitdeck_ops.operations import GitOperations
from gitdeck_ops.provider import RoutedProvider
from gitdeck_ops.services import (
    EngineServices,
    build_provider,
    get_services,
    shutdown_services,
)


@pytest.fixture
def config():
    return GitdeckConfig(logging=LoggingConfig(disable_file=True))


@pytest.fixture(autouse=True)
def fresh_services():
    shutdown_services()
    yield
    shutdown_services()
    observability.configure(None)


def test_from_config_applies_settings():
    config = GitdeckConfig.model_validate(
        {
            "cache": {"ttl_seconds": 10, "max_retention_seconds": 20, "max_repositories": 3},
            "performance": {"max_history": 7},
        }
    )
    services = EngineServices.from_config(config)
    assert (services.cache.ttl, services.cache.max_retention) == (10.0, 20.0)
    assert services.cache.max_repositories == 3
    assert services.monitor.max_history == 7
    assert services.config is config


def test_get_services_is_a_singleton(config):
    first = get_services(config)
    assert get_services() is first
    assert get_services(GitdeckConfig()) is first
    assert observability._settings is config.logging


def test_shutdown_services_resets(config):
    first = get_services(config)
    shutdown_services()
    second = get_services(config)
    assert second is not first
    shutdown_services()
    shutdown_services()


def test_operations_default_to_shared_services(config):
    ops = GitOperations(FakeProvider([]), config=config)
    services = get_services()
    assert ops.cache is services.cache
    assert ops.monitor is services.monitor
    assert ops.config is config


@pytest.mark.anyio
async def test_start_and_shutdown(config):
    services = get_services(config)
    services.start()
    sweeper = services.cache._sweeper
    reporter = services.monitor._reporter
    assert sweeper is not None and reporter is not None

    services.start()
    assert services.cache._sweeper is sweeper

    shutdown_services()
    assert services.cache._sweeper is None
    assert services.monitor._reporter is None
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert sweeper.cancelled()
    assert reporter.cancelled()


def test_build_provider_without_host(config, tmp_path: Path):
    provider = build_provider(roots=[tmp_path], config=config)
    assert isinstance(provider, LocalGitProvider)
    assert provider.roots == [tmp_path]
    assert provider.timeout == 120.0


@pytest.mark.anyio
async def test_build_provider_with_host_routes_to_cli(config):
    host = FakeProvider([PartialRepository("/work")])
    provider = build_provider(host, config=config)
    assert isinstance(provider, RoutedProvider)

    (router,) = await provider.list_repositories()
    assert isinstance(router.fallback, CliRepository)
    assert router.fallback.root == Path("/work")
    assert router.source_of("merge") == "fallback"


@pytest.mark.anyio
async def test_build_provider_without_cli_fallback():
    config = GitdeckConfig(
        git=GitConfig(enable_cli_fallback=False),
        logging=LoggingConfig(disable_file=True),
    )
    provider = build_provider(FakeProvider([PartialRepository("/work")]), config=config)
    assert provider.fallback_factory is None

    (router,) = await provider.list_repositories()
    assert router.source_of("merge") is None

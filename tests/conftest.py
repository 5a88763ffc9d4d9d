from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import pytest

# Keep test runs from writing session log files under the home directory
os.environ.setdefault("GITDECK_LOG_DISABLE_FILE", "1")


def pytest_sessionstart(session):  # type: ignore[override]
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))
    os.environ.setdefault("PYTHONPATH", str(src))


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to use asyncio backend only.

    The engine schedules its own tasks with asyncio and the command-line
    adapter runs git through asyncio.to_thread.
    """
    return "asyncio"


@pytest.fixture
def make_ops():
    """Build a ``GitOperations`` over fake repositories with private services."""
    from fakes import FakeProvider, FakeRepository, ScriptedNotifier
    from gitdeck.config_schema import GitdeckConfig
    from gitdeck_ops.branch_cache import BranchCache
    from gitdeck_ops.operations import GitOperations
    from gitdeck_ops.performance import PerformanceMonitor

    def factory(repository=None, notifier=None, *, state=None, config=None):
        if repository is None:
            repository = FakeRepository(state=state)
        notifier = notifier if notifier is not None else ScriptedNotifier()
        ops = GitOperations(
            FakeProvider([repository]),
            notifier,
            cache=BranchCache(),
            monitor=PerformanceMonitor(),
            config=config or GitdeckConfig(),
        )
        return ops, repository, notifier

    return factory


@pytest.fixture
def gitdeck_logs(caplog):
    """caplog capturing the gitdeck logger at INFO."""
    from gitdeck_ops import observability

    observability._get_logger()
    caplog.set_level(logging.INFO, logger=observability.LOGGER_NAME)
    return caplog

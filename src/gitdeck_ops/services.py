"""Process-wide engine services.

The branch cache and the performance monitor live once per process. They are
built on first use from the loaded configuration, handed to ``GitOperations``
explicitly, and torn down by ``shutdown_services()`` (also registered with
``atexit``).
"""

from __future__ import annotations

import atexit
import threading
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Optional, Sequence

from gitdeck.config_loader import get_config
from gitdeck.config_schema import GitdeckConfig

from . import observability
from .branch_cache import BranchCache
from .cli_repository import CliRepository, LocalGitProvider, configure_git_binary
from .observability import log_debug
from .performance import PerformanceMonitor
from .provider import RoutedProvider


@dataclass
class EngineServices:
    config: GitdeckConfig
    cache: BranchCache
    monitor: PerformanceMonitor

    def start(self) -> None:
        """Start the periodic sweep and report on the running event loop."""
        self.cache.start()
        self.monitor.start()

    def shutdown(self) -> None:
        self.cache.shutdown()
        self.monitor.shutdown()

    @classmethod
    def from_config(cls, config: GitdeckConfig) -> "EngineServices":
        return cls(
            config=config,
            cache=BranchCache.from_config(config.cache),
            monitor=PerformanceMonitor.from_config(config.performance),
        )


_SERVICES: Optional[EngineServices] = None
_SERVICES_LOCK = threading.Lock()
_ATEXIT_REGISTERED = False


def get_services(config: Optional[GitdeckConfig] = None) -> EngineServices:
    """Return the process-wide services, building them on first call.

    ``config`` is only used when the services do not exist yet.
    """
    global _SERVICES, _ATEXIT_REGISTERED
    with _SERVICES_LOCK:
        if _SERVICES is not None:
            return _SERVICES

        config = config or get_config()
        observability.configure(config.logging)
        configure_git_binary(config.git.binary)

        _SERVICES = EngineServices.from_config(config)
        if not _ATEXIT_REGISTERED:
            atexit.register(shutdown_services)
            _ATEXIT_REGISTERED = True
        log_debug(
            "Engine services created",
            ttl=config.cache.ttl_seconds,
            max_history=config.performance.max_history,
        )
        return _SERVICES


def shutdown_services() -> None:
    """Dispose the process-wide services. The next ``get_services`` rebuilds them."""
    global _SERVICES
    with _SERVICES_LOCK:
        services, _SERVICES = _SERVICES, None
    if services is not None:
        services.shutdown()
        log_debug("Engine services shut down")


def build_provider(
    host: Any = None,
    roots: Optional[Sequence[Path | str]] = None,
    config: Optional[GitdeckConfig] = None,
) -> Any:
    """Provider the engine should talk to.

    With a host provider, each repository is routed through a capability router
    that falls back to the command-line adapter (unless disabled in config).
    Without one, a ``LocalGitProvider`` over ``roots`` is returned.
    """
    config = config or get_config()
    timeout = config.git.command_timeout_seconds
    if host is None:
        return LocalGitProvider(roots or [], timeout=timeout)

    fallback_factory = None
    if config.git.enable_cli_fallback:
        fallback_factory = partial(CliRepository, timeout=timeout)
    return RoutedProvider(host, fallback_factory)

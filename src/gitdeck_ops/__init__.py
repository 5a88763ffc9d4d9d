"""gitdeck engine

Guarded git operations, branch cache and performance monitor on top of a
host git provider, with a command-line fallback for missing capabilities.
"""

from .branch_cache import BranchCache, CacheRead
from .notifications import CancellationToken, NullNotifier
from .operations import GitOperations
from .performance import PerformanceMonitor
from .provider import CapabilityRouter, RoutedProvider
from .cli_repository import CliRepository, LocalGitProvider
from .services import EngineServices, build_provider, get_services, shutdown_services

__all__ = [
    "BranchCache",
    "CacheRead",
    "CancellationToken",
    "NullNotifier",
    "GitOperations",
    "PerformanceMonitor",
    "CapabilityRouter",
    "RoutedProvider",
    "CliRepository",
    "LocalGitProvider",
    "EngineServices",
    "build_provider",
    "get_services",
    "shutdown_services",
]

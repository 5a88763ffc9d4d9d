"""Per-repository cache of branch and remote listings.

Entries are keyed by (repository root, listing kind). A fresh entry (younger
than the TTL) is served as-is. Otherwise exactly one load runs per key: callers
arriving while it is in flight await the same future and receive the same
tuple. A failed load leaves the previous entry in place.

Invalidation bumps a per-repository generation counter. A load that started
before the bump still completes for its own waiters but its result is not
stored, and the next ``get`` starts a new load.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from gitdeck.config_schema import CacheConfig
from gitdeck.errors import GitOperationError, classify_error
from gitdeck.models import ListKind

from .listings import load_listing
from .observability import log_debug, log_warning


CacheKey = Tuple[Path, ListKind]
Loader = Callable[[Any, ListKind], Awaitable[Tuple[Any, ...]]]

# Operation names used when classifying load failures
_LIST_OPERATIONS = {
    ListKind.LOCAL: "get_branches",
    ListKind.REMOTE: "get_branches",
    ListKind.REMOTES: "get_remotes",
}


@dataclass(frozen=True)
class _Entry:
    items: Tuple[Any, ...]
    fetched_at: float


@dataclass(frozen=True)
class CacheRead:
    """Best-effort read result.

    ``items`` is empty when the load failed; ``error`` then holds the
    classified failure and ``stale`` whatever the cache still had.
    """

    items: Tuple[Any, ...] = ()
    error: Optional[GitOperationError] = None
    stale: Tuple[Any, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


def _root_of(repository: Any) -> Path:
    if isinstance(repository, (str, Path)):
        return Path(repository)
    return Path(repository.root)


class BranchCache:
    """TTL cache with in-flight de-duplication for branch listings.

    Attributes:
        ttl: Seconds an entry is served without a refresh
        max_retention: Seconds after which the sweep drops an entry
        sweep_interval: Seconds between periodic sweeps once started
        max_repositories: Repositories kept before least-recently-used eviction
    """

    def __init__(
        self,
        ttl: float = 300.0,
        max_retention: float = 900.0,
        sweep_interval: float = 60.0,
        max_repositories: int = 50,
        *,
        clock: Callable[[], float] = time.monotonic,
        loader: Loader = load_listing,
    ):
        if max_retention < ttl:
            raise ValueError("max_retention must be greater than or equal to ttl")
        self.ttl = ttl
        self.max_retention = max_retention
        self.sweep_interval = sweep_interval
        self.max_repositories = max_repositories
        self._clock = clock
        self._loader = loader

        self._entries: Dict[CacheKey, _Entry] = {}
        self._inflight: Dict[CacheKey, asyncio.Future] = {}
        self._generation: Dict[Path, int] = {}
        self._recent: "OrderedDict[Path, None]" = OrderedDict()
        self._sweeper: Optional[asyncio.Task] = None

        self._hits = 0
        self._misses = 0

    @classmethod
    def from_config(cls, config: CacheConfig, **kwargs: Any) -> "BranchCache":
        return cls(
            ttl=config.ttl_seconds,
            max_retention=config.max_retention_seconds,
            sweep_interval=config.sweep_interval_seconds,
            max_repositories=config.max_repositories,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, repository: Any, kind: ListKind | str, *, force: bool = False) -> Tuple[Any, ...]:
        """Return the listing for ``repository``, loading it if needed.

        Args:
            repository: Adapter exposing ``root`` and ``get_state()``
            kind: Which listing to return
            force: Skip the TTL check (an in-flight load is still shared)

        Raises:
            GitOperationError: The load failed (the previous entry is kept)
        """
        kind = ListKind(kind)
        root = _root_of(repository)
        key = (root, kind)
        self._touch(root)

        if not force:
            entry = self._entries.get(key)
            if entry is not None and self._clock() - entry.fetched_at <= self.ttl:
                self._hits += 1
                return entry.items

        self._misses += 1
        future = self._inflight.get(key)
        if future is None:
            generation = self._generation.get(root, 0)
            future = asyncio.ensure_future(self._load(repository, key, generation))
            self._inflight[key] = future
            future.add_done_callback(partial(self._settle, key))
        else:
            log_debug("Joining in-flight branch load", root=str(root), kind=kind.value)

        # one cancelled waiter must not cancel the load for the others
        return await asyncio.shield(future)

    async def read(self, repository: Any, kind: ListKind | str, *, force: bool = False) -> CacheRead:
        """Like ``get`` but never raises; failures come back as an empty read."""
        try:
            items = await self.get(repository, kind, force=force)
        except GitOperationError as e:
            log_warning(
                "Branch listing unavailable",
                root=str(_root_of(repository)),
                kind=ListKind(kind).value,
                code=e.code.value,
                error=e.message,
            )
            return CacheRead(error=e, stale=self.peek(repository, kind) or ())
        return CacheRead(items=items)

    def peek(self, repository: Any, kind: ListKind | str) -> Optional[Tuple[Any, ...]]:
        """The stored listing regardless of age, or None."""
        entry = self._entries.get((_root_of(repository), ListKind(kind)))
        return entry.items if entry is not None else None

    async def _load(self, repository: Any, key: CacheKey, generation: int) -> Tuple[Any, ...]:
        root, kind = key
        try:
            items = tuple(await self._loader(repository, kind))
        except Exception as e:
            error = classify_error(e, _LIST_OPERATIONS[kind], context={"root": str(root)})
            if error is e:
                raise
            raise error from e

        if self._generation.get(root, 0) == generation:
            self._entries[key] = _Entry(items, self._clock())
        else:
            log_debug("Discarding listing loaded before invalidation", root=str(root), kind=kind.value)
        return items

    def _settle(self, key: CacheKey, future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        if not future.cancelled():
            # mark the exception retrieved even when every waiter went away
            future.exception()

    # ------------------------------------------------------------------
    # Invalidation and housekeeping
    # ------------------------------------------------------------------

    def invalidate(self, repository: Any) -> None:
        """Drop every listing for a repository and detach in-flight loads."""
        root = _root_of(repository)
        self._generation[root] = self._generation.get(root, 0) + 1
        for key in [k for k in self._entries if k[0] == root]:
            del self._entries[key]
        for key in [k for k in self._inflight if k[0] == root]:
            del self._inflight[key]
        log_debug("Branch cache invalidated", root=str(root))

    def clear(self) -> None:
        for root in {k[0] for k in self._entries} | {k[0] for k in self._inflight}:
            self._generation[root] = self._generation.get(root, 0) + 1
        self._entries.clear()
        self._inflight.clear()
        self._recent.clear()

    def _touch(self, root: Path) -> None:
        self._recent[root] = None
        self._recent.move_to_end(root)
        while len(self._recent) > self.max_repositories:
            oldest, _ = self._recent.popitem(last=False)
            log_debug("Evicting least recently used repository", root=str(oldest))
            self.invalidate(oldest)

    def sweep(self) -> int:
        """Remove entries older than the retention horizon.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.fetched_at > self.max_retention]
        for key in expired:
            del self._entries[key]

        live = {k[0] for k in self._entries} | {k[0] for k in self._inflight}
        for root in [r for r in self._recent if r not in live]:
            del self._recent[root]
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.sweep()
            if removed:
                log_debug("Branch cache sweep", removed=removed, remaining=len(self._entries))

    def start(self) -> None:
        """Schedule the periodic sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    def shutdown(self) -> None:
        """Stop the sweep and drop all cached data."""
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None and not sweeper.done():
            try:
                sweeper.cancel()
            except RuntimeError:
                # event loop already closed at interpreter exit
                log_debug("Branch cache sweeper outlived its event loop")
        self.clear()
        self._hits = 0
        self._misses = 0

    def stats(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": (self._hits / lookups) if lookups else 0.0,
            "in_flight": len(self._inflight),
            "entries": len(self._entries),
            "repositories": len(self._recent),
        }

"""Git provider interfaces and capability routing.

A host (an editor's built-in git support, or ``LocalGitProvider`` outside an
editor) hands out ``RepositoryAdapter`` objects. Host adapters often implement
only part of the surface, so every adapter is wrapped in a
``CapabilityRouter`` that decides, once at construction, which implementation
serves each capability: the host adapter when it has one, the command-line
adapter otherwise.
"""

from __future__ import annotations

from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from gitdeck.errors import ErrorCode, GitOperationError
from gitdeck.models import RepositoryState, ResetMode, StashEntry

from .observability import log_debug


# Everything the engine may ask of a repository adapter
CAPABILITIES = (
    "get_state",
    "create_branch",
    "checkout",
    "rename_branch",
    "commit",
    "add",
    "fetch",
    "pull",
    "push",
    "merge",
    "rebase",
    "reset",
    "create_stash",
    "pop_stash",
    "list_stashes",
    "add_remote",
    "remove_remote",
    "continue_rebase",
    "abort_merge",
    "abort_rebase",
    "is_in_merge_state",
    "is_in_rebase_state",
    "read_text",
    "write_text",
)


@runtime_checkable
class RepositoryAdapter(Protocol):
    """One repository as exposed by a git provider.

    ``root`` is the repository identity. Remote refs in ``get_state()`` carry the
    short branch name in ``Ref.name`` and the remote in ``Ref.remote``.

    Failures are raised as exceptions; a ``code`` attribute naming an
    ``ErrorCode`` takes precedence over the exception text when classifying.
    """

    root: Path

    async def get_state(self) -> RepositoryState: ...

    async def create_branch(self, name: str, start_point: Optional[str] = None) -> None:
        """Create ``name`` at ``start_point`` (HEAD if None) and check it out."""

    async def checkout(self, ref: str) -> None: ...

    async def rename_branch(self, old: str, new: str) -> None: ...

    async def commit(self, message: str) -> None: ...

    async def add(self, paths: Sequence[str]) -> None: ...

    async def fetch(self) -> None: ...

    async def pull(self) -> None: ...

    async def push(self, branch: Optional[str] = None) -> None: ...

    async def merge(self, ref: str) -> None: ...

    async def rebase(self, ref: str) -> None: ...

    async def reset(self, ref: str, mode: ResetMode) -> None: ...

    async def create_stash(self, message: str, include_untracked: bool) -> None: ...

    async def pop_stash(self, index: int) -> None: ...

    async def list_stashes(self) -> List[StashEntry]: ...

    async def add_remote(self, name: str, url: str) -> None: ...

    async def remove_remote(self, name: str) -> None: ...

    async def continue_rebase(self) -> None: ...

    async def abort_merge(self) -> None: ...

    async def abort_rebase(self) -> None: ...

    async def is_in_merge_state(self) -> bool: ...

    async def is_in_rebase_state(self) -> bool: ...

    async def read_text(self, path: str) -> str: ...

    async def write_text(self, path: str, text: str) -> None: ...


@runtime_checkable
class GitProvider(Protocol):
    """Source of repositories (the host's git support)."""

    async def list_repositories(self) -> Sequence[Any]: ...


def probe_capabilities(adapter: Any) -> List[str]:
    """Names of the capabilities an adapter actually implements."""
    return [name for name in CAPABILITIES if callable(getattr(adapter, name, None))]


class CapabilityRouter:
    """Route each capability to the host adapter or the command-line fallback.

    Routing is fixed when the router is built. A capability that neither
    adapter offers raises ``GIT_EXTENSION_NOT_FOUND`` when used.
    """

    def __init__(self, primary: Any, fallback: Optional[Any] = None):
        self.primary = primary
        self.fallback = fallback
        self.root = Path(getattr(primary, "root"))
        self._routes: Dict[str, Callable[..., Any]] = {}
        self._sources: Dict[str, str] = {}

        for name in CAPABILITIES:
            method = getattr(primary, name, None)
            if callable(method):
                self._routes[name] = method
                self._sources[name] = "primary"
            elif fallback is not None and callable(getattr(fallback, name, None)):
                self._routes[name] = getattr(fallback, name)
                self._sources[name] = "fallback"

        fallback_caps = sorted(n for n, s in self._sources.items() if s == "fallback")
        if fallback_caps:
            log_debug(
                "Using command-line fallback",
                root=str(self.root),
                capabilities=fallback_caps,
            )

    def source_of(self, capability: str) -> Optional[str]:
        """``"primary"``, ``"fallback"`` or None when unavailable."""
        return self._sources.get(capability)

    def supports(self, capability: str) -> bool:
        return capability in self._routes

    def _route(self, capability: str) -> Callable[..., Any]:
        try:
            return self._routes[capability]
        except KeyError:
            raise GitOperationError(
                ErrorCode.GIT_EXTENSION_NOT_FOUND,
                f"Capability '{capability}' is not available for {self.root}",
                context={"capability": capability},
            ) from None

    async def get_state(self) -> RepositoryState:
        return await self._route("get_state")()

    async def create_branch(self, name: str, start_point: Optional[str] = None) -> None:
        await self._route("create_branch")(name, start_point)

    async def checkout(self, ref: str) -> None:
        await self._route("checkout")(ref)

    async def rename_branch(self, old: str, new: str) -> None:
        await self._route("rename_branch")(old, new)

    async def commit(self, message: str) -> None:
        await self._route("commit")(message)

    async def add(self, paths: Sequence[str]) -> None:
        await self._route("add")(list(paths))

    async def fetch(self) -> None:
        await self._route("fetch")()

    async def pull(self) -> None:
        await self._route("pull")()

    async def push(self, branch: Optional[str] = None) -> None:
        await self._route("push")(branch)

    async def merge(self, ref: str) -> None:
        await self._route("merge")(ref)

    async def rebase(self, ref: str) -> None:
        await self._route("rebase")(ref)

    async def reset(self, ref: str, mode: ResetMode) -> None:
        await self._route("reset")(ref, mode)

    async def create_stash(self, message: str, include_untracked: bool) -> None:
        await self._route("create_stash")(message, include_untracked)

    async def pop_stash(self, index: int) -> None:
        await self._route("pop_stash")(index)

    async def list_stashes(self) -> List[StashEntry]:
        return await self._route("list_stashes")()

    async def add_remote(self, name: str, url: str) -> None:
        await self._route("add_remote")(name, url)

    async def remove_remote(self, name: str) -> None:
        await self._route("remove_remote")(name)

    async def continue_rebase(self) -> None:
        await self._route("continue_rebase")()

    async def abort_merge(self) -> None:
        await self._route("abort_merge")()

    async def abort_rebase(self) -> None:
        await self._route("abort_rebase")()

    async def is_in_merge_state(self) -> bool:
        return await self._route("is_in_merge_state")()

    async def is_in_rebase_state(self) -> bool:
        return await self._route("is_in_rebase_state")()

    async def read_text(self, path: str) -> str:
        return await self._route("read_text")(path)

    async def write_text(self, path: str, text: str) -> None:
        await self._route("write_text")(path, text)

    def __repr__(self) -> str:
        return f"CapabilityRouter(root={str(self.root)!r})"


FallbackFactory = Callable[[Path], Any]


class RoutedProvider:
    """Wrap a host provider so every repository goes through a CapabilityRouter.

    Routers are built once per repository root and reused.
    """

    def __init__(self, host: Any, fallback_factory: Optional[FallbackFactory] = None):
        self.host = host
        self.fallback_factory = fallback_factory
        self._routers: Dict[Path, CapabilityRouter] = {}

    async def list_repositories(self) -> List[CapabilityRouter]:
        repositories = await self.host.list_repositories()
        routers: List[CapabilityRouter] = []
        seen = set()
        for repository in repositories:
            if isinstance(repository, CapabilityRouter):
                routers.append(repository)
                continue
            root = Path(repository.root)
            seen.add(root)
            router = self._routers.get(root)
            if router is None or router.primary is not repository:
                fallback = self.fallback_factory(root) if self.fallback_factory else None
                router = CapabilityRouter(repository, fallback)
                self._routers[root] = router
            routers.append(router)
        # forget repositories the host no longer reports
        for root in list(self._routers):
            if root not in seen:
                del self._routers[root]
        return routers

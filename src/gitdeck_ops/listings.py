"""Branch and remote listings derived from a repository state snapshot."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from gitdeck.models import (
    CommitSummary,
    ListKind,
    LocalBranch,
    Ref,
    RefKind,
    Remote,
    RemoteBranch,
    RepositoryState,
)


def _last_commit(ref: Ref):
    if ref.summary is not None:
        return ref.summary
    if ref.commit:
        return CommitSummary(hash=ref.commit)
    return None


def local_branches(state: RepositoryState) -> Tuple[LocalBranch, ...]:
    current = state.current_branch
    return tuple(
        LocalBranch(
            name=ref.name,
            is_active=ref.name == current,
            upstream=ref.upstream,
            ahead=ref.ahead,
            behind=ref.behind,
            last_commit=_last_commit(ref),
        )
        for ref in state.refs
        if ref.kind is RefKind.HEAD
    )


def remote_branches(state: RepositoryState) -> Tuple[RemoteBranch, ...]:
    return tuple(
        RemoteBranch(
            remote=ref.remote or "origin",
            name=ref.name,
            last_commit=_last_commit(ref),
        )
        for ref in state.refs
        if ref.kind is RefKind.REMOTE_HEAD
    )


def remotes(state: RepositoryState) -> Tuple[Remote, ...]:
    by_remote: Dict[str, List[str]] = {}
    for ref in state.refs:
        if ref.kind is RefKind.REMOTE_HEAD and ref.remote:
            by_remote.setdefault(ref.remote, []).append(ref.name)
    return tuple(
        Remote(
            name=info.name,
            fetch_url=info.fetch_url or "",
            push_url=info.push_url or info.fetch_url or "",
            branches=tuple(sorted(by_remote.get(info.name, ()))),
        )
        for info in state.remotes
    )


def listing_from_state(state: RepositoryState, kind: ListKind) -> Tuple[Any, ...]:
    if kind is ListKind.LOCAL:
        return local_branches(state)
    if kind is ListKind.REMOTE:
        return remote_branches(state)
    if kind is ListKind.REMOTES:
        return remotes(state)
    raise ValueError(f"Unknown listing kind: {kind!r}")


async def load_listing(repository: Any, kind: ListKind) -> Tuple[Any, ...]:
    """Read a fresh state snapshot from the adapter and derive one listing."""
    state = await repository.get_state()
    return listing_from_state(state, ListKind(kind))

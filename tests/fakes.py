"""In-memory stand-ins for a host git provider and the user."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from gitdeck.models import (
    Change,
    Head,
    Ref,
    RefKind,
    RemoteInfo,
    RepositoryState,
    StashEntry,
)


READ_CALLS = {
    "get_state",
    "list_stashes",
    "read_text",
    "is_in_merge_state",
    "is_in_rebase_state",
}


def make_state(
    root: str = "/repo",
    *,
    current: Optional[str] = "main",
    branches: Sequence[str] = ("main", "feature"),
    remote_branches: Sequence[Tuple[str, str]] = (("origin", "main"),),
    remotes: Sequence[str] = ("origin",),
    staged: Iterable[str] = (),
    unstaged: Iterable[str] = (),
    untracked: Iterable[str] = (),
    conflicted: Iterable[str] = (),
    ahead: Optional[int] = None,
    upstream: Optional[str] = None,
) -> RepositoryState:
    refs: List[Ref] = []
    for name in branches:
        is_current = name == current
        refs.append(
            Ref(
                name=name,
                kind=RefKind.HEAD,
                commit=(name[0] * 40) if name else None,
                upstream=upstream if is_current else None,
                ahead=ahead if is_current else None,
                behind=0 if is_current and ahead is not None else None,
            )
        )
    for remote, name in remote_branches:
        refs.append(Ref(name=name, kind=RefKind.REMOTE_HEAD, remote=remote, commit="f" * 40))
    return RepositoryState(
        root=Path(root),
        head=Head(name=current, upstream=upstream, ahead=ahead),
        refs=tuple(refs),
        remotes=tuple(RemoteInfo(r, f"https://example.com/{r}.git", f"https://example.com/{r}.git") for r in remotes),
        working_tree_changes=tuple(Change(p, " M") for p in unstaged),
        index_changes=tuple(Change(p, "M ") for p in staged),
        untracked_changes=tuple(Change(p, "??") for p in untracked),
        merge_changes=tuple(Change(p, "UU") for p in conflicted),
    )


class FakeRepository:
    """Records every adapter call; ``failures`` maps a call name to an exception."""

    def __init__(self, root: str = "/repo", state: Optional[RepositoryState] = None):
        self.root = Path(root)
        self.state = state or make_state(root)
        self.calls: List[Tuple[str, tuple]] = []
        self.failures: Dict[str, BaseException] = {}
        self.files: Dict[str, str] = {}
        self.stashes: List[StashEntry] = []
        self.merge_state = False
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        failure = self.failures.get(name)
        if failure is not None:
            raise failure

    def called(self, name: str) -> List[tuple]:
        return [args for call, args in self.calls if call == name]

    @property
    def mutations(self) -> List[Tuple[str, tuple]]:
        return [c for c in self.calls if c[0] not in READ_CALLS]

    def push_stash(self, message: str, branch: str = "main") -> StashEntry:
        self._clock += timedelta(minutes=1)
        entry = StashEntry(0, message, branch, self._clock)
        self.stashes = [entry] + self.stashes
        self._reindex()
        return self.stashes[0]

    def _reindex(self) -> None:
        self.stashes = [
            StashEntry(i, s.message, s.branch, s.timestamp) for i, s in enumerate(self.stashes)
        ]

    async def get_state(self) -> RepositoryState:
        self._record("get_state")
        return self.state

    async def create_branch(self, name: str, start_point: Optional[str] = None) -> None:
        self._record("create_branch", name, start_point)

    async def checkout(self, ref: str) -> None:
        self._record("checkout", ref)

    async def rename_branch(self, old: str, new: str) -> None:
        self._record("rename_branch", old, new)

    async def commit(self, message: str) -> None:
        self._record("commit", message)

    async def add(self, paths: Sequence[str]) -> None:
        self._record("add", list(paths))

    async def fetch(self) -> None:
        self._record("fetch")

    async def pull(self) -> None:
        self._record("pull")

    async def push(self, branch: Optional[str] = None) -> None:
        self._record("push", branch)

    async def merge(self, ref: str) -> None:
        self._record("merge", ref)

    async def rebase(self, ref: str) -> None:
        self._record("rebase", ref)

    async def reset(self, ref: str, mode: Any) -> None:
        self._record("reset", ref, mode)

    async def create_stash(self, message: str, include_untracked: bool) -> None:
        self._record("create_stash", message, include_untracked)
        self.push_stash(message, self.state.current_branch or "HEAD")

    async def pop_stash(self, index: int) -> None:
        self._record("pop_stash", index)
        del self.stashes[index]
        self._reindex()

    async def list_stashes(self) -> List[StashEntry]:
        self._record("list_stashes")
        return list(self.stashes)

    async def add_remote(self, name: str, url: str) -> None:
        self._record("add_remote", name, url)

    async def remove_remote(self, name: str) -> None:
        self._record("remove_remote", name)

    async def continue_rebase(self) -> None:
        self._record("continue_rebase")

    async def abort_merge(self) -> None:
        self._record("abort_merge")

    async def abort_rebase(self) -> None:
        self._record("abort_rebase")

    async def is_in_merge_state(self) -> bool:
        self._record("is_in_merge_state")
        return self.merge_state

    async def is_in_rebase_state(self) -> bool:
        self._record("is_in_rebase_state")
        return False

    async def read_text(self, path: str) -> str:
        self._record("read_text", path)
        try:
            return self.files[path]
        except KeyError:
            raise FileNotFoundError(path) from None

    async def write_text(self, path: str, text: str) -> None:
        self._record("write_text", path)
        self.files[path] = text


class PartialRepository:
    """Host adapter that only knows how to report state and check out."""

    def __init__(self, root: str = "/repo", state: Optional[RepositoryState] = None):
        self.root = Path(root)
        self.state = state or make_state(root)
        self.calls: List[str] = []

    async def get_state(self) -> RepositoryState:
        self.calls.append("get_state")
        return self.state

    async def checkout(self, ref: str) -> None:
        self.calls.append(f"checkout:{ref}")


class FakeProvider:
    def __init__(self, repositories: Sequence[Any]):
        self.repositories = list(repositories)

    async def list_repositories(self) -> List[Any]:
        return list(self.repositories)


class ScriptedNotifier:
    """Answers prompts from a script; dismisses once the script runs out."""

    def __init__(self, *answers: Optional[str]):
        self.answers = list(answers)
        self.prompts: List[Tuple[str, List[str]]] = []

    async def ask_yes_no_cancel(self, prompt: str, options: Sequence[str]) -> Optional[str]:
        self.prompts.append((prompt, list(options)))
        return self.answers.pop(0) if self.answers else None


class RecordingProgress:
    def __init__(self) -> None:
        self.reports: List[Tuple[str, Optional[float]]] = []

    def report(self, message: str, increment: Optional[float] = None) -> None:
        self.reports.append((message, increment))

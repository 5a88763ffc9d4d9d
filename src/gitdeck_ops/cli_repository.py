"""Command-line repository adapter backed by GitPython.

Serves every capability the host provider lacks, and is the only adapter for
``LocalGitProvider``. Each call runs the git command in a worker thread so the
event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import git
from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from git.refs.remote import RemoteReference

from gitdeck.errors import ErrorCode, GitOperationError
from gitdeck.models import (
    Change,
    CommitSummary,
    Head,
    Ref,
    RefKind,
    RemoteInfo,
    RepositoryState,
    ResetMode,
    StashEntry,
)

from .observability import log_debug


# Unit separator between stash list fields
_STASH_FORMAT = "--format=%gd%x1f%gs%x1f%ct"
_STASH_SUBJECT_RE = re.compile(r"^(?:WIP on|On) ([^:]+): ?(.*)$", re.DOTALL)
_STASH_INDEX_RE = re.compile(r"stash@\{(\d+)\}")

# Non-interactive editor for rebase --continue and merge commits
_NO_EDITOR_ENV = {"GIT_EDITOR": "true"}


def configure_git_binary(binary: str) -> None:
    """Point GitPython at a specific git executable."""
    if binary and binary != "git":
        git.refresh(path=binary)


def _summarize(commit: Any) -> CommitSummary:
    message = commit.summary
    if isinstance(message, bytes):
        message = message.decode("utf-8", "replace")
    return CommitSummary(
        hash=commit.hexsha,
        message=message,
        author=commit.author.name or "",
        date=commit.committed_datetime,
        parents=tuple(p.hexsha for p in commit.parents),
    )


def parse_porcelain_z(output: str) -> Tuple[List[Change], List[Change], List[Change], List[Change]]:
    """Split ``git status --porcelain -z`` output into change lists.

    Returns:
        (working_tree, index, untracked, merge) changes
    """
    working: List[Change] = []
    index: List[Change] = []
    untracked: List[Change] = []
    merge: List[Change] = []

    entries = output.split("\0")
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if len(entry) < 4:
            continue
        xy, path = entry[:2], entry[3:]
        x, y = xy[0], xy[1]

        if x in "RC":
            i += 1  # next entry is the rename source

        if "U" in xy or xy in ("AA", "DD"):
            merge.append(Change(path, xy))
        elif xy == "??":
            untracked.append(Change(path, "?"))
        elif xy == "!!":
            continue
        else:
            if x != " ":
                index.append(Change(path, x))
            if y != " ":
                working.append(Change(path, y))

    return working, index, untracked, merge


def parse_stash_list(output: str) -> List[StashEntry]:
    """Parse ``git stash list`` output produced with ``_STASH_FORMAT``."""
    stashes: List[StashEntry] = []
    for line in output.splitlines():
        parts = line.split("\x1f")
        if len(parts) != 3:
            continue
        selector, subject, stamp = parts
        match = _STASH_INDEX_RE.search(selector)
        if not match:
            continue
        subject_match = _STASH_SUBJECT_RE.match(subject)
        if subject_match:
            branch, message = subject_match.group(1), subject_match.group(2)
        else:
            branch, message = "", subject
        try:
            timestamp = datetime.fromtimestamp(int(stamp), tz=timezone.utc)
        except ValueError:
            timestamp = datetime.fromtimestamp(0, tz=timezone.utc)
        stashes.append(
            StashEntry(
                index=int(match.group(1)),
                message=message,
                branch=branch,
                timestamp=timestamp,
            )
        )
    return stashes


class CliRepository:
    """GitPython implementation of every repository capability.

    Attributes:
        root: Working tree root (repository identity)
        timeout: Seconds before a single git command is killed (None = no limit)
    """

    def __init__(self, root: Path | str, *, timeout: Optional[float] = None):
        self.root = Path(root)
        self.timeout = timeout
        self._repo_obj: Optional[Repo] = None

    @property
    def _repo(self) -> Repo:
        if self._repo_obj is None:
            self._repo_obj = Repo(self.root)
        return self._repo_obj

    def _run(self, command: str, *args: str, **kwargs: Any) -> str:
        if self.timeout:
            kwargs.setdefault("kill_after_timeout", self.timeout)
        log_debug("git", command=command, args=list(args), root=str(self.root))
        return getattr(self._repo.git, command)(*args, **kwargs)

    async def _call(self, func, *args: Any) -> Any:
        return await asyncio.to_thread(func, *args)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _ahead_behind(self, branch: str, upstream: str) -> Tuple[int, int]:
        repo = self._repo
        ahead = len(list(repo.iter_commits(f"{upstream}..{branch}")))
        behind = len(list(repo.iter_commits(f"{branch}..{upstream}")))
        return ahead, behind

    def _head_ref(self, head: Any) -> Ref:
        try:
            commit = head.commit
        except ValueError:
            commit = None
        tracking = head.tracking_branch()
        upstream = tracking.name if tracking is not None else None
        ahead = behind = None
        if upstream and commit is not None:
            try:
                ahead, behind = self._ahead_behind(head.name, upstream)
            except (GitCommandError, ValueError) as e:
                # upstream configured but not fetched yet
                log_debug("ahead/behind unavailable", branch=head.name, error=str(e))
        return Ref(
            name=head.name,
            kind=RefKind.HEAD,
            commit=commit.hexsha if commit is not None else None,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
            summary=_summarize(commit) if commit is not None else None,
        )

    def _remote_refs(self) -> Iterable[Ref]:
        for ref in self._repo.references:
            if not isinstance(ref, RemoteReference) or ref.remote_head == "HEAD":
                continue
            try:
                commit = ref.commit
            except ValueError:
                continue
            yield Ref(
                name=ref.remote_head,
                kind=RefKind.REMOTE_HEAD,
                commit=commit.hexsha,
                remote=ref.remote_name,
                summary=_summarize(commit),
            )

    def _remote_infos(self) -> List[RemoteInfo]:
        infos = []
        for remote in self._repo.remotes:
            reader = remote.config_reader
            fetch_url = reader.get_value("url", "")
            push_url = reader.get_value("pushurl", fetch_url)
            infos.append(RemoteInfo(name=remote.name, fetch_url=fetch_url, push_url=push_url))
        return infos

    def _get_state_sync(self) -> RepositoryState:
        repo = self._repo

        head_refs = [self._head_ref(h) for h in repo.heads]
        head = Head()
        if not repo.head.is_detached:
            name = repo.active_branch.name
            current = next((r for r in head_refs if r.name == name), None)
            if current is not None:
                head = Head(
                    name=name,
                    commit=current.commit,
                    upstream=current.upstream,
                    ahead=current.ahead,
                    behind=current.behind,
                )
            else:
                head = Head(name=name)  # unborn branch
        elif repo.head.is_valid():
            head = Head(name=None, commit=repo.head.commit.hexsha)

        status = self._run("status", "--porcelain", "-z", "--untracked-files=all")
        working, index, untracked, merge = parse_porcelain_z(status)

        return RepositoryState(
            root=self.root,
            head=head,
            refs=tuple(head_refs) + tuple(self._remote_refs()),
            remotes=tuple(self._remote_infos()),
            working_tree_changes=tuple(working),
            index_changes=tuple(index),
            untracked_changes=tuple(untracked),
            merge_changes=tuple(merge),
        )

    async def get_state(self) -> RepositoryState:
        return await self._call(self._get_state_sync)

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def _is_remote_ref(self, name: str) -> bool:
        return any(
            isinstance(ref, RemoteReference) and ref.name == name
            for ref in self._repo.references
        )

    def _create_branch_sync(self, name: str, start_point: Optional[str]) -> None:
        if start_point is None:
            self._run("checkout", "-b", name)
        elif self._is_remote_ref(start_point):
            self._run("checkout", "-b", name, "--track", start_point)
        else:
            self._run("checkout", "-b", name, start_point)

    async def create_branch(self, name: str, start_point: Optional[str] = None) -> None:
        await self._call(self._create_branch_sync, name, start_point)

    async def checkout(self, ref: str) -> None:
        await self._call(self._run, "checkout", ref)

    async def rename_branch(self, old: str, new: str) -> None:
        await self._call(self._run, "branch", "-m", old, new)

    # ------------------------------------------------------------------
    # Commits and remotes
    # ------------------------------------------------------------------

    async def commit(self, message: str) -> None:
        await self._call(self._run, "commit", "-m", message)

    async def add(self, paths: Sequence[str]) -> None:
        if paths:
            await self._call(self._run, "add", "-A", "--", *paths)

    async def fetch(self) -> None:
        await self._call(self._run, "fetch", "--all", "--prune")

    async def pull(self) -> None:
        await self._call(self._run, "pull")

    def _push_sync(self, branch: Optional[str]) -> None:
        repo = self._repo
        if branch is None:
            if repo.head.is_detached:
                raise GitOperationError(
                    ErrorCode.NO_BRANCH_SPECIFIED, "Cannot push a detached HEAD"
                )
            branch = repo.active_branch.name

        head = next((h for h in repo.heads if h.name == branch), None)
        if head is None:
            raise GitOperationError(
                ErrorCode.BRANCH_NOT_FOUND,
                f"Local branch '{branch}' not found",
                context={"target": branch},
            )

        tracking = head.tracking_branch()
        if tracking is not None:
            self._run("push", tracking.remote_name, f"{branch}:{tracking.remote_head}")
            return

        remote_names = [r.name for r in repo.remotes]
        if not remote_names:
            raise GitOperationError(
                ErrorCode.REMOTE_NOT_FOUND,
                "No remote configured to push to",
                context={"target": branch},
            )
        remote = "origin" if "origin" in remote_names else remote_names[0]
        self._run("push", "--set-upstream", remote, branch)

    async def push(self, branch: Optional[str] = None) -> None:
        await self._call(self._push_sync, branch)

    async def merge(self, ref: str) -> None:
        await self._call(self._run, "merge", "--no-edit", ref)

    async def rebase(self, ref: str) -> None:
        await self._call(self._run, "rebase", ref)

    async def reset(self, ref: str, mode: ResetMode) -> None:
        await self._call(self._run, "reset", f"--{ResetMode(mode).value}", ref)

    async def add_remote(self, name: str, url: str) -> None:
        await self._call(self._run, "remote", "add", name, url)

    async def remove_remote(self, name: str) -> None:
        await self._call(self._run, "remote", "remove", name)

    # ------------------------------------------------------------------
    # Stash
    # ------------------------------------------------------------------

    async def create_stash(self, message: str, include_untracked: bool = True) -> None:
        args = ["push", "-m", message]
        if include_untracked:
            args.append("--include-untracked")
        await self._call(self._run, "stash", *args)

    async def pop_stash(self, index: int) -> None:
        await self._call(self._run, "stash", "pop", f"stash@{{{index}}}")

    async def list_stashes(self) -> List[StashEntry]:
        output = await self._call(self._run, "stash", "list", _STASH_FORMAT)
        return parse_stash_list(output)

    # ------------------------------------------------------------------
    # Merge / rebase state
    # ------------------------------------------------------------------

    def _git_dir(self) -> Path:
        return Path(self._repo.git_dir)

    async def is_in_merge_state(self) -> bool:
        return await self._call(lambda: (self._git_dir() / "MERGE_HEAD").exists())

    async def is_in_rebase_state(self) -> bool:
        def check() -> bool:
            git_dir = self._git_dir()
            return (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists()

        return await self._call(check)

    async def continue_rebase(self) -> None:
        await self._call(lambda: self._run("rebase", "--continue", env=_NO_EDITOR_ENV))

    async def abort_merge(self) -> None:
        await self._call(self._run, "merge", "--abort")

    async def abort_rebase(self) -> None:
        await self._call(self._run, "rebase", "--abort")

    # ------------------------------------------------------------------
    # Working tree files
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        target = (root / path).resolve()
        if not target.is_relative_to(root):
            raise FileNotFoundError(f"{path} is outside the repository")
        return target

    def _read_text_sync(self, path: str) -> str:
        with open(self._resolve(path), "r", encoding="utf-8", newline="") as f:
            return f.read()

    def _write_text_sync(self, path: str, text: str) -> None:
        with open(self._resolve(path), "w", encoding="utf-8", newline="") as f:
            f.write(text)

    async def read_text(self, path: str) -> str:
        return await self._call(self._read_text_sync, path)

    async def write_text(self, path: str, text: str) -> None:
        await self._call(self._write_text_sync, path, text)

    def __repr__(self) -> str:
        return f"CliRepository(root={str(self.root)!r})"


def is_git_repository(path: Path) -> bool:
    try:
        Repo(path)
    except (InvalidGitRepositoryError, NoSuchPathError):
        return False
    return True


class LocalGitProvider:
    """Git provider backed only by the command-line adapter.

    For use outside an editor host. Roots that are not git repositories are
    skipped.
    """

    def __init__(self, roots: Sequence[Path | str], *, timeout: Optional[float] = None):
        self.roots = [Path(r) for r in roots]
        self.timeout = timeout
        self._repositories: Dict[Path, CliRepository] = {}

    async def list_repositories(self) -> List[CliRepository]:
        found: List[CliRepository] = []
        for root in self.roots:
            repository = self._repositories.get(root)
            if repository is None:
                if not await asyncio.to_thread(is_git_repository, root):
                    log_debug("Skipping non-repository root", root=str(root))
                    continue
                repository = CliRepository(root, timeout=self.timeout)
                self._repositories[root] = repository
            found.append(repository)
        return found

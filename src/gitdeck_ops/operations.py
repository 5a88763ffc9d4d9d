"""Engine operations: guarded git workflows over a git provider.

Every mutating operation follows the same shape:

1. Validate arguments (no adapter call on failure)
2. Read a fresh state snapshot and run the guard checks
3. Ask the user where a decision is needed (dirty tree, destructive reset)
4. Call the adapter, classify any failure, invalidate the branch cache

Failures are raised as ``GitOperationError``. Outcomes that are not failures
(nothing to push, the user declined a prompt) come back as an
``OperationResult`` with a ``NO_CHANGES`` or ``CANCELLED`` status. Each
mutating call emits exactly one ``git.<operation>`` action log line.

Read operations never raise for repository failures; they log and return
an empty result.
"""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from gitdeck.config_schema import GitdeckConfig
from gitdeck.conflicts import ConflictReport, apply_resolutions as apply_region_text
from gitdeck.conflicts import classify_file, parse_conflicts, resolve_conflicts as classify_regions
from gitdeck.errors import ErrorCode, GitOperationError, classify_error
from gitdeck.models import (
    Branch,
    ConflictRegion,
    FileConflicts,
    ListKind,
    LocalBranch,
    OperationResult,
    OperationStatus,
    RefKind,
    Remote,
    RemoteBranch,
    RepositoryState,
    ResetMode,
    StashEntry,
    WorkingTreeStatus,
)

from .branch_cache import BranchCache
from .guard import (
    GateDecision,
    auto_stash_message,
    check_not_self,
    confirm_reset,
    dirty_gate,
    find_local_branch,
    find_remote,
    parse_reset_mode,
    ref_short_name,
    require_branch,
    require_branch_absent,
    require_branch_name,
    require_commit_message,
    require_local_branch,
    require_remote_name,
    require_remote_url,
)
from .notifications import (
    CANCEL,
    REMOVE,
    STAGE_ALL,
    CancellationToken,
    Notifier,
    NullNotifier,
    NullProgress,
    Progress,
)
from .observability import log_action, log_error, log_warning
from .performance import OperationStats, PerformanceMonitor
from .services import get_services


_CONFLICT_CODES = (
    ErrorCode.MERGE_CONFLICTS,
    ErrorCode.REBASE_CONFLICTS,
    ErrorCode.STASH_CONFLICTS,
)

_OUTCOMES = {
    OperationStatus.SUCCEEDED: "ok",
    OperationStatus.NO_CHANGES: "noop",
    OperationStatus.CANCELLED: "cancelled",
}

StashSelector = Union[int, StashEntry, None]


def _root_of(repo: Any) -> Path:
    if isinstance(repo, (str, Path)):
        return Path(repo)
    return Path(repo.root)


def _outcome_for(error: GitOperationError) -> str:
    if error.is_cancellation:
        return "cancelled"
    if error.code in _CONFLICT_CODES:
        return "conflicts"
    return "error"


def _resolve_stash(stashes: Sequence[StashEntry], selector: StashSelector) -> StashEntry:
    """Pick a stash from a freshly read list.

    An ``int`` is a position in that list. A ``StashEntry`` is matched by its
    (message, timestamp) identity since its index may have shifted.
    """
    if isinstance(selector, StashEntry):
        for entry in stashes:
            if entry.identity == selector.identity:
                return entry
        raise GitOperationError(
            ErrorCode.INVALID_STASH_INDEX,
            f"Stash '{selector.message}' no longer exists",
            context={"target": selector.message},
        )

    index = 0 if selector is None else selector
    if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(stashes):
        raise GitOperationError(
            ErrorCode.INVALID_STASH_INDEX,
            f"Invalid stash index {index!r} (found {len(stashes)} stash(es))",
            context={"target": index},
        )
    return stashes[index]


class GitOperations:
    """Branch, merge, rebase, stash and remote workflows for one git provider.

    Args:
        provider: Object with ``async list_repositories()``; None when the
            host has no git support
        notifier: Answers confirmation prompts (default dismisses every prompt)
        cache: Branch cache (default: the process-wide one)
        monitor: Performance monitor (default: the process-wide one)
        config: Engine configuration (default: the process-wide one)

    Operations take an optional ``repo`` (root path or adapter); the first
    repository reported by the provider is used when it is omitted.
    """

    def __init__(
        self,
        provider: Any,
        notifier: Optional[Notifier] = None,
        *,
        cache: Optional[BranchCache] = None,
        monitor: Optional[PerformanceMonitor] = None,
        config: Optional[GitdeckConfig] = None,
    ):
        if cache is None or monitor is None or config is None:
            services = get_services(config)
            cache = cache if cache is not None else services.cache
            monitor = monitor if monitor is not None else services.monitor
            config = config if config is not None else services.config
        self.provider = provider
        self.notifier = notifier or NullNotifier()
        self.cache = cache
        self.monitor = monitor
        self.config = config

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _repository(self, repo: Any = None) -> Any:
        if self.provider is None:
            raise GitOperationError(
                ErrorCode.GIT_EXTENSION_NOT_FOUND, "No git provider is available"
            )
        try:
            repositories = list(await self.provider.list_repositories())
        except Exception as e:
            error = classify_error(e, "list_repositories")
            if error is e:
                raise
            raise error from e

        if not repositories:
            raise GitOperationError(ErrorCode.REPOSITORY_NOT_FOUND, "No git repository is open")
        if repo is None:
            return repositories[0]

        root = _root_of(repo)
        for repository in repositories:
            if _root_of(repository) == root:
                return repository
        raise GitOperationError(
            ErrorCode.REPOSITORY_NOT_FOUND,
            f"No git repository at {root}",
            context={"target": str(root)},
        )

    async def _state(self, repository: Any, operation: str) -> RepositoryState:
        with self.monitor.track("repository-refresh", root=str(repository.root)):
            try:
                return await repository.get_state()
            except Exception as e:
                error = classify_error(e, operation)
                if error is e:
                    raise
                raise error from e

    async def _call(
        self,
        repository: Any,
        operation: str,
        target: Optional[str],
        method: Callable[..., Awaitable[Any]],
        *args: Any,
        invalidate: bool = True,
    ) -> Any:
        """Run one adapter call and invalidate the cache once it settles.

        Conflict failures also invalidate (refs moved and a merge or rebase is
        in progress) and carry a ``ConflictReport`` under ``context["conflicts"]``.
        """
        try:
            result = await method(*args)
        except Exception as e:
            error = classify_error(e, operation, target)
            if error.code in _CONFLICT_CODES:
                self.cache.invalidate(repository)
                error.context["conflicts"] = await self._conflict_report(repository)
            if error is e:
                raise
            raise error from e
        if invalidate:
            self.cache.invalidate(repository)
        return result

    async def _guarded(self, operation: str, target: Optional[str], action: Awaitable[OperationResult]) -> OperationResult:
        start = time.perf_counter()
        outcome = "error"
        fields: dict = {"target": target}
        try:
            with self.monitor.track(f"git.{operation}"):
                result = await action
            outcome = _OUTCOMES[result.status]
            if result.branch:
                fields["branch"] = result.branch
            return result
        except GitOperationError as e:
            outcome = _outcome_for(e)
            fields["code"] = e.code.value
            if outcome == "error":
                log_error(e.message, operation=operation, code=e.code.value)
            raise
        except Exception as e:
            error = classify_error(e, operation, target)
            outcome = _outcome_for(error)
            fields["code"] = error.code.value
            log_error(error.message, operation=operation, code=error.code.value)
            raise error from e
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            log_action(f"git.{operation}", outcome=outcome, duration_ms=duration_ms, **fields)

    async def _conflict_report(self, repository: Any) -> ConflictReport:
        try:
            state = await repository.get_state()
        except Exception as e:
            log_warning("Could not read conflicted files", root=str(repository.root), error=str(e))
            return ConflictReport()

        files: List[FileConflicts] = []
        unreadable: List[str] = []
        for change in state.merge_changes:
            try:
                text = await repository.read_text(change.path)
            except Exception as e:
                log_warning("Conflicted file unreadable", path=change.path, error=str(e))
                unreadable.append(change.path)
                continue
            files.append(classify_file(change.path, text))
        return ConflictReport(files=tuple(files), unreadable=tuple(unreadable))

    async def _best_effort(self, operation: str, action: Awaitable[Any], default: Any) -> Any:
        try:
            return await action
        except Exception as e:
            error = classify_error(e, operation)
            log_warning(
                f"{operation} unavailable",
                code=error.code.value,
                error=error.message,
            )
            return default

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    async def create_branch(self, name: str, start_point: Optional[str] = None, repo: Any = None) -> OperationResult:
        return await self._guarded("create_branch", name, self._create_branch(name, start_point, repo))

    async def _create_branch(self, name: str, start_point: Optional[str], repo: Any) -> OperationResult:
        name = require_branch_name(name)
        start_point = (start_point or "").strip() or None
        repository = await self._repository(repo)
        state = await self._state(repository, "create_branch")
        require_branch_absent(state, name)
        await self._call(repository, "create_branch", name, repository.create_branch, name, start_point)
        return OperationResult("create_branch", message=f"Created branch '{name}'", branch=name)

    async def checkout_branch(self, branch: str, repo: Any = None) -> OperationResult:
        return await self._guarded("checkout_branch", branch, self._checkout_branch(branch, repo))

    async def _checkout_branch(self, branch: str, repo: Any) -> OperationResult:
        name = require_branch_name(branch)
        repository = await self._repository(repo)
        state = await self._state(repository, "checkout_branch")
        ref = require_branch(state, name)

        if ref.kind is RefKind.REMOTE_HEAD:
            # a remote branch is checked out through its local counterpart
            local = find_local_branch(state, ref.name)
            if local is None:
                await self._call(
                    repository, "checkout_branch", name,
                    repository.create_branch, ref.name, ref_short_name(ref),
                )
                return OperationResult(
                    "checkout_branch",
                    message=f"Created '{ref.name}' tracking '{ref_short_name(ref)}'",
                    branch=ref.name,
                )
            ref = local

        if ref.name == state.current_branch:
            return OperationResult(
                "checkout_branch",
                OperationStatus.NO_CHANGES,
                f"Already on '{ref.name}'",
                branch=ref.name,
            )
        await self._call(repository, "checkout_branch", ref.name, repository.checkout, ref.name)
        return OperationResult("checkout_branch", message=f"Switched to '{ref.name}'", branch=ref.name)

    async def rename_branch(self, old: str, new: str, repo: Any = None) -> OperationResult:
        return await self._guarded("rename_branch", old, self._rename_branch(old, new, repo))

    async def _rename_branch(self, old: str, new: str, repo: Any) -> OperationResult:
        old = require_branch_name(old, label="Current branch")
        new = require_branch_name(new, label="New branch")
        repository = await self._repository(repo)
        state = await self._state(repository, "rename_branch")
        require_local_branch(state, old)
        require_branch_absent(state, new)
        await self._call(repository, "rename_branch", old, repository.rename_branch, old, new)
        return OperationResult("rename_branch", message=f"Renamed '{old}' to '{new}'", branch=new)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    async def commit(self, message: str, repo: Any = None) -> OperationResult:
        return await self._guarded("commit", None, self._commit(message, repo))

    async def _commit(self, message: str, repo: Any) -> OperationResult:
        message = require_commit_message(message)
        repository = await self._repository(repo)
        state = await self._state(repository, "commit")

        staged_all = False
        if not state.index_changes:
            paths = list(
                dict.fromkeys(c.path for c in state.working_tree_changes + state.untracked_changes)
            )
            if not paths:
                return OperationResult("commit", OperationStatus.NO_CHANGES, "Nothing to commit")
            choice = await self.notifier.ask_yes_no_cancel(
                f"There are no staged changes. Stage all {len(paths)} changed file(s) and commit?",
                [STAGE_ALL, CANCEL],
            )
            if choice != STAGE_ALL:
                return OperationResult("commit", OperationStatus.CANCELLED, "Commit cancelled")
            await self._call(repository, "commit", None, repository.add, paths, invalidate=False)
            staged_all = True

        await self._call(repository, "commit", None, repository.commit, message)
        return OperationResult(
            "commit",
            message=f"Created commit: {message}",
            branch=state.current_branch,
            details={"staged_all": staged_all},
        )

    # ------------------------------------------------------------------
    # Remote transfers
    # ------------------------------------------------------------------

    async def fetch(
        self,
        repo: Any = None,
        *,
        token: Optional[CancellationToken] = None,
        progress: Optional[Progress] = None,
    ) -> OperationResult:
        return await self._guarded("fetch", None, self._fetch(repo, token, progress))

    async def _fetch(self, repo: Any, token: Optional[CancellationToken], progress: Optional[Progress]) -> OperationResult:
        token = token or CancellationToken()
        progress = progress or NullProgress()
        token.raise_if_cancelled("fetch")
        repository = await self._repository(repo)
        progress.report("Connecting to remote repository...", 20)
        await self._call(repository, "fetch", None, repository.fetch)
        progress.report("Fetch completed successfully", 80)
        return OperationResult("fetch", message="Fetched from all remotes")

    async def pull(
        self,
        repo: Any = None,
        *,
        token: Optional[CancellationToken] = None,
        progress: Optional[Progress] = None,
    ) -> OperationResult:
        return await self._guarded("pull", None, self._pull(repo, token, progress))

    async def _pull(self, repo: Any, token: Optional[CancellationToken], progress: Optional[Progress]) -> OperationResult:
        token = token or CancellationToken()
        progress = progress or NullProgress()
        token.raise_if_cancelled("pull")
        repository = await self._repository(repo)
        state = await self._state(repository, "pull")

        if await dirty_gate(self.notifier, state, "pull") is GateDecision.CANCEL:
            return OperationResult("pull", OperationStatus.CANCELLED, "Pull cancelled", branch=state.current_branch)
        token.raise_if_cancelled("pull")

        progress.report("Fetching latest changes...", 30)
        await self._call(repository, "pull", state.current_branch, repository.pull)
        progress.report("Pull completed successfully", 70)
        return OperationResult("pull", message="Pulled latest changes", branch=state.current_branch)

    async def push(
        self,
        branch: Optional[str] = None,
        repo: Any = None,
        *,
        token: Optional[CancellationToken] = None,
        progress: Optional[Progress] = None,
    ) -> OperationResult:
        return await self._guarded("push", branch, self._push(branch, repo, token, progress))

    async def _push(
        self,
        branch: Optional[str],
        repo: Any,
        token: Optional[CancellationToken],
        progress: Optional[Progress],
    ) -> OperationResult:
        token = token or CancellationToken()
        progress = progress or NullProgress()
        token.raise_if_cancelled("push")
        if branch is not None:
            branch = require_branch_name(branch)
        repository = await self._repository(repo)
        state = await self._state(repository, "push")

        target = branch or state.current_branch
        if target is None:
            raise GitOperationError(
                ErrorCode.NO_BRANCH_SPECIFIED,
                "No branch specified and HEAD is detached",
            )
        ref = require_local_branch(state, target)
        ahead = ref.ahead
        if ahead is None and ref.name == state.current_branch:
            ahead = state.head.ahead
        if ahead == 0:
            return OperationResult(
                "push",
                OperationStatus.NO_CHANGES,
                f"'{ref.name}' is up to date with its upstream",
                branch=ref.name,
            )

        progress.report("Uploading changes...", 30)
        await self._call(repository, "push", ref.name, repository.push, ref.name)
        progress.report("Push completed successfully", 70)
        return OperationResult(
            "push",
            message=f"Pushed '{ref.name}'",
            branch=ref.name,
            details={"ahead": ahead},
        )

    # ------------------------------------------------------------------
    # Merge and rebase
    # ------------------------------------------------------------------

    async def merge(self, branch: str, repo: Any = None) -> OperationResult:
        return await self._guarded("merge", branch, self._integrate("merge", branch, repo))

    async def rebase(self, branch: str, repo: Any = None) -> OperationResult:
        return await self._guarded("rebase", branch, self._integrate("rebase", branch, repo))

    async def _integrate(self, operation: str, branch: str, repo: Any) -> OperationResult:
        name = require_branch_name(branch)
        repository = await self._repository(repo)
        state = await self._state(repository, operation)
        current = check_not_self(state, name, operation)
        target = ref_short_name(require_branch(state, name))

        decision = await dirty_gate(self.notifier, state, operation, target)
        if decision is GateDecision.CANCEL:
            return OperationResult(
                operation,
                OperationStatus.CANCELLED,
                f"{operation.capitalize()} cancelled",
                branch=current,
            )
        stashed = decision is GateDecision.STASH
        if stashed:
            await self._call(
                repository, "stash_changes", target,
                repository.create_stash,
                auto_stash_message(operation, target),
                self.config.git.include_untracked_in_stash,
            )

        if operation == "merge":
            await self._call(repository, "merge", target, repository.merge, target)
            message = f"Merged '{target}' into '{current}'"
        else:
            await self._call(repository, "rebase", target, repository.rebase, target)
            message = f"Rebased '{current}' onto '{target}'"
        return OperationResult(operation, message=message, branch=current, details={"stashed": stashed})

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    async def reset_head(self, mode: ResetMode | str, target: str = "HEAD", repo: Any = None) -> OperationResult:
        return await self._guarded("reset_head", target, self._reset_head(mode, target, repo))

    async def _reset_head(self, mode: ResetMode | str, target: str, repo: Any) -> OperationResult:
        mode = parse_reset_mode(mode)
        target = (target or "").strip() or "HEAD"
        repository = await self._repository(repo)
        if not await confirm_reset(self.notifier, mode, target):
            return OperationResult("reset_head", OperationStatus.CANCELLED, "Reset cancelled")
        await self._call(repository, "reset_head", target, repository.reset, target, mode)
        return OperationResult(
            "reset_head",
            message=f"{mode.value.capitalize()} reset to {target}",
            details={"mode": mode.value},
        )

    # ------------------------------------------------------------------
    # Stash
    # ------------------------------------------------------------------

    async def stash_changes(self, message: Optional[str] = None, repo: Any = None) -> OperationResult:
        return await self._guarded("stash_changes", None, self._stash_changes(message, repo))

    async def _stash_changes(self, message: Optional[str], repo: Any) -> OperationResult:
        repository = await self._repository(repo)
        state = await self._state(repository, "stash_changes")
        if not state.is_dirty:
            return OperationResult("stash_changes", OperationStatus.NO_CHANGES, "No changes to stash")

        message = (message or "").strip() or f"Stash created on {datetime.now():%Y-%m-%d %H:%M:%S}"
        await self._call(
            repository, "stash_changes", None,
            repository.create_stash, message, self.config.git.include_untracked_in_stash,
        )
        return OperationResult(
            "stash_changes",
            message=f"Stashed changes: {message}",
            branch=state.current_branch,
        )

    async def unstash_changes(self, stash: StashSelector = 0, repo: Any = None) -> OperationResult:
        """Pop a stash, chosen by position in the current list or by identity."""
        label = stash.message if isinstance(stash, StashEntry) else stash
        return await self._guarded(
            "unstash_changes",
            None if label is None else str(label),
            self._unstash_changes(stash, repo),
        )

    async def _list_stashes(self, repository: Any, operation: str) -> List[StashEntry]:
        try:
            return list(await repository.list_stashes())
        except Exception as e:
            error = classify_error(e, operation)
            if error is e:
                raise
            raise error from e

    async def _unstash_changes(self, stash: StashSelector, repo: Any) -> OperationResult:
        repository = await self._repository(repo)
        stashes = await self._list_stashes(repository, "unstash_changes")
        if not stashes:
            raise GitOperationError(ErrorCode.NO_STASHES_AVAILABLE, "There are no stashes to apply")
        entry = _resolve_stash(stashes, stash)

        state = await self._state(repository, "unstash_changes")
        if state.is_dirty:
            if await dirty_gate(self.notifier, state, "unstash_changes") is GateDecision.CANCEL:
                return OperationResult("unstash_changes", OperationStatus.CANCELLED, "Stash apply cancelled")
            # the list may have shifted while the prompt was open
            entry = _resolve_stash(await self._list_stashes(repository, "unstash_changes"), entry)

        await self._call(repository, "unstash_changes", entry.message, repository.pop_stash, entry.index)
        return OperationResult(
            "unstash_changes",
            message=f"Applied stash: {entry.message}",
            branch=state.current_branch,
            details={"index": entry.index},
        )

    # ------------------------------------------------------------------
    # Remotes
    # ------------------------------------------------------------------

    async def add_remote(self, name: str, url: str, repo: Any = None) -> OperationResult:
        return await self._guarded("add_remote", name, self._add_remote(name, url, repo))

    async def _add_remote(self, name: str, url: str, repo: Any) -> OperationResult:
        name = require_remote_name(name)
        url = require_remote_url(url)
        repository = await self._repository(repo)
        state = await self._state(repository, "add_remote")
        if find_remote(state, name) is not None:
            raise GitOperationError(
                ErrorCode.REMOTE_ALREADY_EXISTS,
                f"Remote '{name}' already exists",
                context={"target": name},
            )
        await self._call(repository, "add_remote", name, repository.add_remote, name, url)
        return OperationResult("add_remote", message=f"Added remote '{name}'", details={"url": url})

    async def remove_remote(self, name: str, repo: Any = None) -> OperationResult:
        return await self._guarded("remove_remote", name, self._remove_remote(name, repo))

    async def _remove_remote(self, name: str, repo: Any) -> OperationResult:
        name = require_remote_name(name)
        repository = await self._repository(repo)
        state = await self._state(repository, "remove_remote")
        if find_remote(state, name) is None:
            raise GitOperationError(
                ErrorCode.REMOTE_NOT_FOUND,
                f"Remote '{name}' does not exist",
                context={"target": name},
            )
        choice = await self.notifier.ask_yes_no_cancel(
            f"Remove remote '{name}'? Its remote-tracking branches will be deleted.",
            [REMOVE, CANCEL],
        )
        if choice != REMOVE:
            return OperationResult("remove_remote", OperationStatus.CANCELLED, "Remove cancelled")
        await self._call(repository, "remove_remote", name, repository.remove_remote, name)
        return OperationResult("remove_remote", message=f"Removed remote '{name}'")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _listing(self, repo: Any, kind: ListKind, force: bool = False) -> Tuple[Any, ...]:
        with self.monitor.track("branch-fetch", kind=kind.value):
            try:
                repository = await self._repository(repo)
            except GitOperationError as e:
                log_warning("Branch listing unavailable", code=e.code.value, error=e.message)
                return ()
            read = await self.cache.read(repository, kind, force=force)
            return read.items

    async def get_branches(self, repo: Any = None, *, force: bool = False) -> List[Branch]:
        """Local branches followed by remote branches; empty on failure."""
        local = await self._listing(repo, ListKind.LOCAL, force)
        remote = await self._listing(repo, ListKind.REMOTE, force)
        return [*local, *remote]

    async def get_local_branches(self, repo: Any = None, *, force: bool = False) -> List[LocalBranch]:
        return list(await self._listing(repo, ListKind.LOCAL, force))

    async def get_remote_branches(self, repo: Any = None, *, force: bool = False) -> List[RemoteBranch]:
        return list(await self._listing(repo, ListKind.REMOTE, force))

    async def get_remotes(self, repo: Any = None, *, force: bool = False) -> List[Remote]:
        return list(await self._listing(repo, ListKind.REMOTES, force))

    async def get_current_branch(self, repo: Any = None) -> Optional[LocalBranch]:
        for branch in await self.get_local_branches(repo):
            if branch.is_active:
                return branch
        return None

    async def get_status(self, repo: Any = None) -> WorkingTreeStatus:
        async def read() -> WorkingTreeStatus:
            repository = await self._repository(repo)
            return WorkingTreeStatus.from_state(await self._state(repository, "get_status"))

        return await self._best_effort("get_status", read(), WorkingTreeStatus())

    async def get_stashes(self, repo: Any = None) -> List[StashEntry]:
        async def read() -> List[StashEntry]:
            repository = await self._repository(repo)
            return await self._list_stashes(repository, "get_stashes")

        return await self._best_effort("get_stashes", read(), [])

    async def is_repository(self, repo: Any = None) -> bool:
        try:
            await self._repository(repo)
        except GitOperationError:
            return False
        return True

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def resolve_conflicts(self, regions: Sequence[ConflictRegion]) -> List[ConflictRegion]:
        """Auto-classify regions; resolved ones are left as they are."""
        return classify_regions(regions)

    async def get_conflicted_files(self, repo: Any = None) -> List[str]:
        async def read() -> List[str]:
            repository = await self._repository(repo)
            state = await self._state(repository, "get_conflicted_files")
            return [c.path for c in state.merge_changes]

        return await self._best_effort("get_conflicted_files", read(), [])

    async def get_file_conflicts(self, path: str, repo: Any = None) -> FileConflicts:
        """Parse and auto-classify the conflict blocks of one file."""
        repository = await self._repository(repo)
        try:
            text = await repository.read_text(path)
        except Exception as e:
            error = classify_error(e, "resolve_conflicts", path)
            if error is e:
                raise
            raise error from e
        return classify_file(path, text)

    async def get_conflict_report(self, repo: Any = None) -> ConflictReport:
        repository = await self._repository(repo)
        return await self._conflict_report(repository)

    async def apply_resolutions(self, path: str, regions: Sequence[ConflictRegion], repo: Any = None) -> OperationResult:
        """Write resolved regions into a file; stage it once no conflicts remain."""
        return await self._guarded("resolve_conflicts", path, self._apply_resolutions(path, regions, repo))

    async def _apply_resolutions(self, path: str, regions: Sequence[ConflictRegion], repo: Any) -> OperationResult:
        repository = await self._repository(repo)
        text = await self._call(repository, "resolve_conflicts", path, repository.read_text, path, invalidate=False)
        try:
            updated = apply_region_text(text, regions)
        except ValueError as e:
            raise GitOperationError(
                ErrorCode.RESOLVE_CONFLICTS_FAILED,
                f"Failed to resolve conflicts in '{path}': {e}",
                context={"operation": "resolve_conflicts", "target": path},
            ) from e
        await self._call(repository, "resolve_conflicts", path, repository.write_text, path, updated, invalidate=False)

        remaining = len(parse_conflicts(updated))
        staged = remaining == 0
        if staged:
            await self._call(repository, "resolve_conflicts", path, repository.add, [path])
        return OperationResult(
            "resolve_conflicts",
            message=f"Resolved all conflicts in '{path}'" if staged else f"{remaining} conflict(s) left in '{path}'",
            details={"remaining": remaining, "staged": staged},
        )

    async def continue_rebase(self, repo: Any = None) -> OperationResult:
        return await self._guarded("continue_rebase", None, self._simple("continue_rebase", "Rebase continued", repo))

    async def abort_merge(self, repo: Any = None) -> OperationResult:
        return await self._guarded("abort_merge", None, self._simple("abort_merge", "Merge aborted", repo))

    async def abort_rebase(self, repo: Any = None) -> OperationResult:
        return await self._guarded("abort_rebase", None, self._simple("abort_rebase", "Rebase aborted", repo))

    async def _simple(self, operation: str, message: str, repo: Any) -> OperationResult:
        repository = await self._repository(repo)
        await self._call(repository, operation, None, getattr(repository, operation))
        return OperationResult(operation, message=message)

    async def is_in_merge_state(self, repo: Any = None) -> bool:
        async def read() -> bool:
            repository = await self._repository(repo)
            return bool(await repository.is_in_merge_state())

        return await self._best_effort("is_in_merge_state", read(), False)

    async def is_in_rebase_state(self, repo: Any = None) -> bool:
        async def read() -> bool:
            repository = await self._repository(repo)
            return bool(await repository.is_in_rebase_state())

        return await self._best_effort("is_in_rebase_state", read(), False)

    # ------------------------------------------------------------------
    # Performance
    # ------------------------------------------------------------------

    def get_stats(self, name: str) -> Optional[OperationStats]:
        return self.monitor.get_stats(name)

    def get_recommendations(self) -> List[str]:
        return self.monitor.get_recommendations()

"""Pre-flight checks run before every mutating operation.

All checks work on a state snapshot read at invocation time and fail fast with
a ``GitOperationError`` before anything is touched. The dirty-tree gate and
the reset confirmations are the only checks that ask the user.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from gitdeck.branch_names import validate_branch_name, validate_remote_name, validate_remote_url
from gitdeck.errors import ErrorCode, GitOperationError
from gitdeck.models import (
    LOCAL_REF_PREFIX,
    REMOTE_REF_PREFIX,
    Ref,
    RefKind,
    RemoteInfo,
    RepositoryState,
    ResetMode,
    WorkingTreeStatus,
    qualify_local,
)

from .notifications import CANCEL, CONTINUE, RESET, STASH_CHANGES, Notifier


class GateDecision(str, Enum):
    PROCEED = "proceed"
    STASH = "stash"
    CANCEL = "cancel"


# Operations whose dirty-tree prompt offers an auto-stash
_STASHABLE = ("merge", "rebase")

_OPERATION_VERBS = {
    "merge": "merging",
    "rebase": "rebasing",
    "pull": "pulling",
    "unstash_changes": "applying the stash",
}


# ---------------------------------------------------------------------------
# Names and refs
# ---------------------------------------------------------------------------


def require_branch_name(name: Optional[str], *, label: str = "Branch") -> str:
    """Trim and validate a branch name, raising ``INVALID_BRANCH_NAME``."""
    try:
        return validate_branch_name(name or "")
    except ValueError as e:
        raise GitOperationError(
            ErrorCode.INVALID_BRANCH_NAME,
            f"{label} name is invalid: {e}",
            context={"target": name},
        ) from None


def require_remote_name(name: Optional[str]) -> str:
    try:
        return validate_remote_name(name or "")
    except ValueError as e:
        raise GitOperationError(
            ErrorCode.INVALID_REMOTE_NAME, str(e), context={"target": name}
        ) from None


def require_remote_url(url: Optional[str]) -> str:
    try:
        return validate_remote_url(url or "")
    except ValueError as e:
        raise GitOperationError(
            ErrorCode.INVALID_REMOTE_URL, str(e), context={"target": url}
        ) from None


def require_commit_message(message: Optional[str]) -> str:
    text = (message or "").strip()
    if not text:
        raise GitOperationError(ErrorCode.EMPTY_COMMIT_MESSAGE, "Commit message cannot be empty")
    return text


def require_current_branch(state: RepositoryState) -> str:
    if state.current_branch is None:
        raise GitOperationError(
            ErrorCode.NO_CURRENT_BRANCH, "Unable to determine current branch"
        )
    return state.current_branch


def ref_full_name(ref: Ref) -> str:
    if ref.kind is RefKind.REMOTE_HEAD:
        return f"{REMOTE_REF_PREFIX}{ref.remote}/{ref.name}"
    if ref.kind is RefKind.TAG:
        return f"refs/tags/{ref.name}"
    return f"{LOCAL_REF_PREFIX}{ref.name}"


def ref_short_name(ref: Ref) -> str:
    """Name accepted by git for this ref (``main``, ``origin/main``)."""
    if ref.kind is RefKind.REMOTE_HEAD:
        return f"{ref.remote}/{ref.name}"
    return ref.name


def find_local_branch(state: RepositoryState, name: str) -> Optional[Ref]:
    wanted = name[len(LOCAL_REF_PREFIX):] if name.startswith(LOCAL_REF_PREFIX) else name
    for ref in state.refs:
        if ref.kind is RefKind.HEAD and ref.name == wanted:
            return ref
    return None


def find_branch(state: RepositoryState, name: str) -> Optional[Ref]:
    """Look a branch up by short or fully-qualified name, local refs first."""
    local = find_local_branch(state, name)
    if local is not None:
        return local
    for ref in state.refs:
        if ref.kind is RefKind.REMOTE_HEAD and name in (ref_short_name(ref), ref_full_name(ref)):
            return ref
    return None


def require_branch(state: RepositoryState, name: str) -> Ref:
    ref = find_branch(state, name)
    if ref is None:
        raise GitOperationError(
            ErrorCode.BRANCH_NOT_FOUND,
            f"Branch '{name}' not found",
            context={"target": name},
        )
    return ref


def require_local_branch(state: RepositoryState, name: str) -> Ref:
    ref = find_local_branch(state, name)
    if ref is None:
        raise GitOperationError(
            ErrorCode.BRANCH_NOT_FOUND,
            f"Local branch '{name}' not found",
            context={"target": name},
        )
    return ref


def require_branch_absent(state: RepositoryState, name: str) -> None:
    if find_local_branch(state, name) is not None:
        raise GitOperationError(
            ErrorCode.BRANCH_ALREADY_EXISTS,
            f"Branch '{name}' already exists",
            context={"target": name},
        )


def check_not_self(state: RepositoryState, target: str, operation: str) -> str:
    """Reject merging or rebasing the current branch onto itself.

    Compares fully-qualified ref names. Returns the current branch name.
    """
    current = require_current_branch(state)
    ref = find_branch(state, target)
    target_full = ref_full_name(ref) if ref is not None else qualify_local(target)
    if target_full == qualify_local(current):
        code = ErrorCode.SELF_REBASE_ATTEMPT if operation == "rebase" else ErrorCode.SELF_MERGE_ATTEMPT
        verb = "rebase a branch onto" if operation == "rebase" else "merge a branch into"
        raise GitOperationError(
            code,
            f"Cannot {verb} itself ('{current}')",
            context={"operation": operation, "target": target},
        )
    return current


def find_remote(state: RepositoryState, name: str) -> Optional[RemoteInfo]:
    return next((r for r in state.remotes if r.name == name), None)


# ---------------------------------------------------------------------------
# Reset
# ---------------------------------------------------------------------------


def parse_reset_mode(mode: ResetMode | str) -> ResetMode:
    try:
        return ResetMode(mode)
    except ValueError:
        raise GitOperationError(
            ErrorCode.INVALID_RESET_MODE,
            f"Invalid reset mode '{mode}'. Must be 'soft', 'mixed', or 'hard'",
        ) from None


async def confirm_reset(notifier: Notifier, mode: ResetMode, target: str) -> bool:
    """Ask before a mixed or hard reset. Soft resets need no confirmation."""
    if mode is ResetMode.SOFT:
        return True
    if mode is ResetMode.HARD:
        choice = await notifier.ask_yes_no_cancel(
            f"Hard reset to {target} will permanently discard all uncommitted changes. "
            "This cannot be undone.",
            [RESET, CANCEL],
        )
        return choice == RESET
    choice = await notifier.ask_yes_no_cancel(
        f"Mixed reset to {target} will unstage your staged changes. "
        "Working tree files are kept.",
        [CONTINUE, CANCEL],
    )
    return choice == CONTINUE


# ---------------------------------------------------------------------------
# Dirty-tree gate
# ---------------------------------------------------------------------------


async def dirty_gate(
    notifier: Notifier,
    state: RepositoryState,
    operation: str,
    target: Optional[str] = None,
) -> GateDecision:
    """Ask what to do about uncommitted changes before an operation.

    Clean trees proceed without a prompt. Merge and rebase offer an auto-stash;
    every operation offers Continue and Cancel. A dismissed prompt cancels.
    """
    status = WorkingTreeStatus.from_state(state)
    if not status.has_changes:
        return GateDecision.PROCEED

    options = [STASH_CHANGES, CONTINUE, CANCEL] if operation in _STASHABLE else [CONTINUE, CANCEL]
    verb = _OPERATION_VERBS.get(operation, operation)
    subject = f" {target}" if target and operation in _STASHABLE else ""
    prompt = (
        f"You have uncommitted changes ({status.staged} staged, {status.unstaged} unstaged, "
        f"{status.untracked} untracked). What would you like to do before {verb}{subject}?"
    )

    choice = await notifier.ask_yes_no_cancel(prompt, options)
    if choice == STASH_CHANGES and operation in _STASHABLE:
        return GateDecision.STASH
    if choice == CONTINUE:
        return GateDecision.PROCEED
    return GateDecision.CANCEL


def auto_stash_message(operation: str, target: str) -> str:
    return f"Auto-stash before {operation} with {target}"

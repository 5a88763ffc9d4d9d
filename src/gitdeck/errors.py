"""Closed error taxonomy and failure classification.

Every failure that leaves the engine is a ``GitOperationError`` carrying a code
from ``ErrorCode``. Each code maps to exactly one ``ErrorSpec`` (category,
recoverability, user-facing message, ordered recovery actions) through the
``ERROR_SPECS`` lookup table.

Classification order for raw adapter failures:

1. Structured channel: an exception that already is a ``GitOperationError``,
   or that carries a ``code`` attribute naming an ``ErrorCode``.
2. Exception types with an unambiguous meaning (missing repository, missing
   git binary, filesystem permission).
3. Text patterns over the failure output, in fixed priority: conflict,
   authentication, network, repository-not-found, push rejection.
4. The generic per-operation failure code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from git.exc import (
    GitCommandError,
    GitCommandNotFound,
    InvalidGitRepositoryError,
    NoSuchPathError,
)


class ErrorCategory(str, Enum):
    GIT = "git"
    FILESYSTEM = "filesystem"
    HOST_API = "host-api"
    USER = "user"


class ErrorCode(str, Enum):
    # Repository / host
    REPOSITORY_NOT_FOUND = "REPOSITORY_NOT_FOUND"
    GIT_EXTENSION_NOT_FOUND = "GIT_EXTENSION_NOT_FOUND"

    # Branches
    BRANCH_NOT_FOUND = "BRANCH_NOT_FOUND"
    BRANCH_ALREADY_EXISTS = "BRANCH_ALREADY_EXISTS"
    INVALID_BRANCH_NAME = "INVALID_BRANCH_NAME"
    NO_BRANCH_SPECIFIED = "NO_BRANCH_SPECIFIED"
    NO_CURRENT_BRANCH = "NO_CURRENT_BRANCH"
    SELF_MERGE_ATTEMPT = "SELF_MERGE_ATTEMPT"
    SELF_REBASE_ATTEMPT = "SELF_REBASE_ATTEMPT"

    # Conflicts
    MERGE_CONFLICTS = "MERGE_CONFLICTS"
    REBASE_CONFLICTS = "REBASE_CONFLICTS"
    STASH_CONFLICTS = "STASH_CONFLICTS"

    # Remote / transport
    NETWORK_ERROR = "NETWORK_ERROR"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    PUSH_REJECTED = "PUSH_REJECTED"
    REMOTE_NOT_FOUND = "REMOTE_NOT_FOUND"
    REMOTE_ALREADY_EXISTS = "REMOTE_ALREADY_EXISTS"
    INVALID_REMOTE_URL = "INVALID_REMOTE_URL"
    INVALID_REMOTE_NAME = "INVALID_REMOTE_NAME"

    # Commits, reset, stash
    NO_CHANGES_TO_COMMIT = "NO_CHANGES_TO_COMMIT"
    EMPTY_COMMIT_MESSAGE = "EMPTY_COMMIT_MESSAGE"
    INVALID_RESET_MODE = "INVALID_RESET_MODE"
    INVALID_STASH_INDEX = "INVALID_STASH_INDEX"
    NO_STASHES_AVAILABLE = "NO_STASHES_AVAILABLE"

    # Filesystem / user
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    OPERATION_CANCELLED = "OPERATION_CANCELLED"

    # Generic per-operation failures
    CREATE_BRANCH_FAILED = "CREATE_BRANCH_FAILED"
    CHECKOUT_BRANCH_FAILED = "CHECKOUT_BRANCH_FAILED"
    RENAME_BRANCH_FAILED = "RENAME_BRANCH_FAILED"
    COMMIT_FAILED = "COMMIT_FAILED"
    FETCH_FAILED = "FETCH_FAILED"
    PULL_FAILED = "PULL_FAILED"
    PUSH_FAILED = "PUSH_FAILED"
    MERGE_FAILED = "MERGE_FAILED"
    REBASE_FAILED = "REBASE_FAILED"
    RESET_HEAD_FAILED = "RESET_HEAD_FAILED"
    STASH_CHANGES_FAILED = "STASH_CHANGES_FAILED"
    UNSTASH_CHANGES_FAILED = "UNSTASH_CHANGES_FAILED"
    ADD_REMOTE_FAILED = "ADD_REMOTE_FAILED"
    REMOVE_REMOTE_FAILED = "REMOVE_REMOTE_FAILED"
    GET_BRANCHES_FAILED = "GET_BRANCHES_FAILED"
    GET_REMOTES_FAILED = "GET_REMOTES_FAILED"
    RESOLVE_CONFLICTS_FAILED = "RESOLVE_CONFLICTS_FAILED"
    OPERATION_FAILED = "OPERATION_FAILED"


@dataclass(frozen=True)
class ErrorSpec:
    category: ErrorCategory
    recoverable: bool
    user_message: str
    recovery_actions: Tuple[str, ...] = ()


def _spec(
    category: ErrorCategory,
    recoverable: bool,
    user_message: str,
    actions: Optional[Tuple[str, ...]] = None,
) -> ErrorSpec:
    # Codes without dedicated actions get Retry when recoverable, nothing otherwise
    if actions is None:
        actions = ("Retry",) if recoverable else ()
    return ErrorSpec(category, recoverable, user_message, actions)


_GIT = ErrorCategory.GIT
_FS = ErrorCategory.FILESYSTEM

ERROR_SPECS: Dict[ErrorCode, ErrorSpec] = {
    ErrorCode.REPOSITORY_NOT_FOUND: _spec(
        _GIT, True,
        "No Git repository found in the current workspace. Please open a folder with a Git repository.",
        ("Open Folder", "Initialize Repository"),
    ),
    ErrorCode.GIT_EXTENSION_NOT_FOUND: _spec(
        ErrorCategory.HOST_API, True,
        "The Git provider is not available or not enabled. Please enable Git support.",
        ("Enable Git Extension",),
    ),
    ErrorCode.BRANCH_NOT_FOUND: _spec(
        _GIT, True,
        "The specified branch does not exist. Please check the branch name.",
        ("Create Branch", "Refresh"),
    ),
    ErrorCode.BRANCH_ALREADY_EXISTS: _spec(
        _GIT, True,
        "A branch with this name already exists. Please choose a different name.",
        ("Switch to Branch", "Choose Different Name"),
    ),
    ErrorCode.INVALID_BRANCH_NAME: _spec(
        _GIT, True,
        "The branch name is invalid. Please use a valid Git branch name.",
    ),
    ErrorCode.NO_BRANCH_SPECIFIED: _spec(
        _GIT, True,
        "No branch specified and unable to determine current branch.",
    ),
    ErrorCode.NO_CURRENT_BRANCH: _spec(
        _GIT, True,
        "Unable to determine current branch. Please check your repository state.",
    ),
    ErrorCode.SELF_MERGE_ATTEMPT: _spec(
        _GIT, False,
        "Cannot merge a branch into itself. Please select a different branch.",
    ),
    ErrorCode.SELF_REBASE_ATTEMPT: _spec(
        _GIT, False,
        "Cannot rebase a branch onto itself. Please select a different branch.",
    ),
    ErrorCode.MERGE_CONFLICTS: _spec(
        _GIT, True,
        "Merge conflicts detected. Please resolve conflicts and try again.",
        ("Open Diff Viewer", "Abort Operation"),
    ),
    ErrorCode.REBASE_CONFLICTS: _spec(
        _GIT, True,
        "Rebase conflicts detected. Please resolve conflicts and continue the rebase.",
        ("Open Diff Viewer", "Abort Operation"),
    ),
    ErrorCode.STASH_CONFLICTS: _spec(
        _GIT, True,
        "Applying the stash produced conflicts. Please resolve them; the stash was kept.",
        ("Open Diff Viewer",),
    ),
    ErrorCode.NETWORK_ERROR: _spec(
        _GIT, True,
        "Network error occurred. Please check your internet connection and try again.",
        ("Retry", "Work Offline"),
    ),
    ErrorCode.AUTHENTICATION_FAILED: _spec(
        _GIT, True,
        "Git authentication failed. Please check your credentials and try again.",
        ("Configure Credentials", "Retry"),
    ),
    ErrorCode.PUSH_REJECTED: _spec(
        _GIT, True,
        "Push was rejected by the remote. Please pull the latest changes first.",
        ("Pull Changes", "Retry"),
    ),
    ErrorCode.REMOTE_NOT_FOUND: _spec(
        _GIT, True,
        "The specified remote does not exist. Please check the remote name.",
        ("Add Remote", "Refresh"),
    ),
    ErrorCode.REMOTE_ALREADY_EXISTS: _spec(
        _GIT, True,
        "A remote with this name already exists. Please choose a different name.",
    ),
    ErrorCode.INVALID_REMOTE_URL: _spec(
        _GIT, True,
        "The remote URL is invalid. Please provide a valid Git URL.",
    ),
    ErrorCode.INVALID_REMOTE_NAME: _spec(
        _GIT, True,
        "The remote name is invalid. Use letters, numbers, dots, underscores, and hyphens.",
    ),
    ErrorCode.NO_CHANGES_TO_COMMIT: _spec(
        _GIT, True,
        "No changes to commit. Please make some changes first.",
        ("Stage All Changes", "Refresh"),
    ),
    ErrorCode.EMPTY_COMMIT_MESSAGE: _spec(
        _GIT, True,
        "Commit message cannot be empty. Please provide a commit message.",
    ),
    ErrorCode.INVALID_RESET_MODE: _spec(
        _GIT, False,
        "Invalid reset mode specified. Please use soft, mixed, or hard.",
    ),
    ErrorCode.INVALID_STASH_INDEX: _spec(
        _GIT, False,
        "Invalid stash index specified. Please select a valid stash.",
    ),
    ErrorCode.NO_STASHES_AVAILABLE: _spec(
        _GIT, False,
        "No stashes available. Please create a stash first.",
    ),
    ErrorCode.FILE_NOT_FOUND: _spec(
        _FS, False,
        "The specified file does not exist or is not tracked by Git.",
    ),
    ErrorCode.PERMISSION_DENIED: _spec(
        _FS, True,
        "Permission denied. Please check file permissions and try again.",
    ),
    ErrorCode.OPERATION_CANCELLED: _spec(
        ErrorCategory.USER, False,
        "Operation was cancelled by the user.",
    ),
    ErrorCode.CREATE_BRANCH_FAILED: _spec(_GIT, False, "Failed to create the branch."),
    ErrorCode.CHECKOUT_BRANCH_FAILED: _spec(_GIT, False, "Failed to check out the branch."),
    ErrorCode.RENAME_BRANCH_FAILED: _spec(_GIT, False, "Failed to rename the branch."),
    ErrorCode.COMMIT_FAILED: _spec(_GIT, False, "Failed to commit changes."),
    ErrorCode.FETCH_FAILED: _spec(_GIT, True, "Failed to fetch from the remote."),
    ErrorCode.PULL_FAILED: _spec(_GIT, True, "Failed to pull changes."),
    ErrorCode.PUSH_FAILED: _spec(_GIT, True, "Failed to push changes."),
    ErrorCode.MERGE_FAILED: _spec(_GIT, False, "Failed to merge the branch."),
    ErrorCode.REBASE_FAILED: _spec(_GIT, False, "Failed to rebase the branch."),
    ErrorCode.RESET_HEAD_FAILED: _spec(_GIT, False, "Failed to reset HEAD."),
    ErrorCode.STASH_CHANGES_FAILED: _spec(_GIT, False, "Failed to stash changes."),
    ErrorCode.UNSTASH_CHANGES_FAILED: _spec(_GIT, False, "Failed to apply the stash."),
    ErrorCode.ADD_REMOTE_FAILED: _spec(_GIT, False, "Failed to add the remote."),
    ErrorCode.REMOVE_REMOTE_FAILED: _spec(_GIT, False, "Failed to remove the remote."),
    ErrorCode.GET_BRANCHES_FAILED: _spec(_GIT, False, "Failed to list branches."),
    ErrorCode.GET_REMOTES_FAILED: _spec(_GIT, False, "Failed to list remotes."),
    ErrorCode.RESOLVE_CONFLICTS_FAILED: _spec(_GIT, False, "Failed to resolve conflicts."),
    ErrorCode.OPERATION_FAILED: _spec(_GIT, False, "The Git operation failed."),
}


class GitOperationError(Exception):
    """Structured failure raised by every engine operation.

    Attributes:
        code: Closed error code
        category: Error category derived from the code
        recoverable: Whether the user can fix the situation and retry
        message: Technical message (logged)
        context: Extra data such as operation, target, or a conflict report
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: Optional[str] = None,
        *,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.code = ErrorCode(code)
        spec = ERROR_SPECS[self.code]
        self.category = spec.category
        self.recoverable = spec.recoverable
        self.message = message or spec.user_message
        self.context: Dict[str, Any] = dict(context or {})
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        return ERROR_SPECS[self.code].user_message

    @property
    def recovery_actions(self) -> List[str]:
        return list(ERROR_SPECS[self.code].recovery_actions)

    @property
    def is_cancellation(self) -> bool:
        return self.code is ErrorCode.OPERATION_CANCELLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "category": self.category.value,
            "recoverable": self.recoverable,
            "message": self.message,
            "user_message": self.user_message,
            "recovery_actions": self.recovery_actions,
        }

    def __repr__(self) -> str:
        return f"GitOperationError({self.code.value!r}, {self.message!r})"


def user_message_for(code: ErrorCode | str) -> str:
    return ERROR_SPECS[ErrorCode(code)].user_message


def recovery_actions_for(code: ErrorCode | str) -> List[str]:
    return list(ERROR_SPECS[ErrorCode(code)].recovery_actions)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

_CONFLICT_RE = re.compile(r"conflict", re.IGNORECASE)

_AUTH_TOKENS = (
    "authentication failed",
    "permission denied",
    "could not read username",
    "invalid username or password",
)
_AUTH_STATUS_RE = re.compile(r"\b40[13]\b")

_NETWORK_TOKENS = (
    "network",
    "connection",
    "timeout",
    "timed out",
    "could not resolve host",
    "could not read from remote repository",
    "failed to connect to",
)

_REPO_NOT_FOUND_TOKENS = ("repository not found",)
_REPO_NOT_FOUND_STATUS_RE = re.compile(r"\b404\b")

_PUSH_REJECTED_TOKENS = ("non-fast-forward", "updates were rejected", "[rejected]")

# GitPython renders captured output as "\n  stderr: '...'"
_COMMAND_OUTPUT_RE = re.compile(r"^\s*std(?:err|out): '(.*)'\s*$", re.DOTALL)

# Operation name -> phrase used in technical failure messages
_OPERATION_PHRASES = {
    "create_branch": "create branch",
    "checkout_branch": "check out branch",
    "rename_branch": "rename branch",
    "commit": "commit",
    "fetch": "fetch",
    "pull": "pull",
    "push": "push",
    "merge": "merge branch",
    "rebase": "rebase onto",
    "reset_head": "reset HEAD to",
    "stash_changes": "stash changes",
    "unstash_changes": "apply stash",
    "add_remote": "add remote",
    "remove_remote": "remove remote",
    "get_branches": "list branches",
    "get_remotes": "list remotes",
    "resolve_conflicts": "resolve conflicts in",
    "continue_rebase": "continue rebase",
    "abort_merge": "abort merge",
    "abort_rebase": "abort rebase",
}


def conflict_code_for(operation: str) -> ErrorCode:
    """Conflict code reported for a failing operation."""
    if operation in ("rebase", "continue_rebase"):
        return ErrorCode.REBASE_CONFLICTS
    if operation == "unstash_changes":
        return ErrorCode.STASH_CONFLICTS
    return ErrorCode.MERGE_CONFLICTS


def failure_code_for(operation: str) -> ErrorCode:
    """Generic failure code for an operation name (``OPERATION_FAILED`` if none)."""
    try:
        return ErrorCode(f"{operation.upper()}_FAILED")
    except ValueError:
        return ErrorCode.OPERATION_FAILED


def _command_output(value: Any) -> str:
    text = str(value or "")
    match = _COMMAND_OUTPUT_RE.match(text)
    return (match.group(1) if match else text).strip()


def failure_text(exc: BaseException) -> str:
    """Extract the text to classify from an exception.

    For GitPython command errors only the process output is used; the command
    line is left out so branch names never influence classification.
    """
    if isinstance(exc, GitCommandError):
        parts = [_command_output(exc.stderr), _command_output(exc.stdout)]
        text = " ".join(p for p in parts if p)
        return text or f"git exited with status {exc.status}"
    return str(exc)


def classify_text(text: str, operation: str) -> ErrorCode:
    """Map failure text to an error code using fixed-priority patterns."""
    lowered = (text or "").lower()
    if _CONFLICT_RE.search(lowered):
        return conflict_code_for(operation)
    if any(token in lowered for token in _AUTH_TOKENS) or _AUTH_STATUS_RE.search(lowered):
        return ErrorCode.AUTHENTICATION_FAILED
    if any(token in lowered for token in _NETWORK_TOKENS):
        return ErrorCode.NETWORK_ERROR
    if any(token in lowered for token in _REPO_NOT_FOUND_TOKENS) or _REPO_NOT_FOUND_STATUS_RE.search(lowered):
        return ErrorCode.REPOSITORY_NOT_FOUND
    if any(token in lowered for token in _PUSH_REJECTED_TOKENS):
        return ErrorCode.PUSH_REJECTED
    return failure_code_for(operation)


def _structured_code(exc: BaseException) -> Optional[ErrorCode]:
    raw = getattr(exc, "code", None)
    if isinstance(raw, ErrorCode):
        return raw
    if isinstance(raw, str):
        try:
            return ErrorCode(raw)
        except ValueError:
            return None
    return None


def classify_error(
    exc: BaseException,
    operation: str,
    target: Optional[str] = None,
    *,
    context: Optional[Dict[str, Any]] = None,
) -> GitOperationError:
    """Turn any failure into a ``GitOperationError``.

    Args:
        exc: Raw failure from the adapter or the host
        operation: Engine operation name (``"merge"``, ``"push"``, ...)
        target: Branch, remote, ref or path the operation acted on
        context: Extra context merged into the error

    Returns:
        A structured error; ``exc`` itself when it already is one
    """
    if isinstance(exc, GitOperationError):
        return exc

    ctx: Dict[str, Any] = {"operation": operation}
    if target is not None:
        ctx["target"] = target
    ctx.update(context or {})

    text = failure_text(exc)

    code = _structured_code(exc)
    if code is None:
        if isinstance(exc, (InvalidGitRepositoryError, NoSuchPathError)):
            code = ErrorCode.REPOSITORY_NOT_FOUND
        elif isinstance(exc, GitCommandNotFound):
            code = ErrorCode.GIT_EXTENSION_NOT_FOUND
        elif isinstance(exc, PermissionError):
            code = ErrorCode.PERMISSION_DENIED
        elif isinstance(exc, FileNotFoundError):
            code = ErrorCode.FILE_NOT_FOUND
        else:
            code = classify_text(text, operation)

    phrase = _OPERATION_PHRASES.get(operation, operation.replace("_", " "))
    if target:
        phrase = f"{phrase} '{target}'"
    message = f"Failed to {phrase}: {text}" if text else f"Failed to {phrase}"
    return GitOperationError(code, message, context=ctx)


def cancelled(operation: str) -> GitOperationError:
    return GitOperationError(
        ErrorCode.OPERATION_CANCELLED,
        f"{operation} was cancelled",
        context={"operation": operation},
    )


__all__ = [
    "ErrorCategory",
    "ErrorCode",
    "ErrorSpec",
    "ERROR_SPECS",
    "GitOperationError",
    "user_message_for",
    "recovery_actions_for",
    "conflict_code_for",
    "failure_code_for",
    "failure_text",
    "classify_text",
    "classify_error",
    "cancelled",
]

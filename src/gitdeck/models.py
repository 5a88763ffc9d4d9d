"""Core data model for gitdeck.

Read snapshots of repository state as handed out by a Git provider, plus the
engine's own value types (branches, remotes, stashes, conflict regions).

Branches are a closed pair of variants, ``LocalBranch`` and ``RemoteBranch``.
Consumers dispatch on the concrete type (or on ``kind``) rather than probing
optional attributes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union


SHORT_HASH_LENGTH = 7

LOCAL_REF_PREFIX = "refs/heads/"
REMOTE_REF_PREFIX = "refs/remotes/"


class BranchKind(str, Enum):
    """Branch variants."""

    LOCAL = "local"
    REMOTE = "remote"


class RefKind(str, Enum):
    """Reference kinds reported by a provider."""

    HEAD = "head"  # local branch
    REMOTE_HEAD = "remote_head"  # remote-tracking branch
    TAG = "tag"


class ListKind(str, Enum):
    """Listings held by the branch cache."""

    LOCAL = "local"
    REMOTE = "remote"
    REMOTES = "remotes"


class ResetMode(str, Enum):
    SOFT = "soft"
    MIXED = "mixed"
    HARD = "hard"


class Resolution(str, Enum):
    """Side chosen for a resolved conflict region."""

    CURRENT = "current"
    INCOMING = "incoming"
    BOTH = "both"


class OperationStatus(str, Enum):
    """Outcome of a mutating operation that did not raise."""

    SUCCEEDED = "succeeded"
    NO_CHANGES = "no_changes"
    CANCELLED = "cancelled"


def qualify_local(name: str) -> str:
    """Return the fully-qualified ref for a local branch name.

    Names that are already fully qualified are returned unchanged.
    """
    if name.startswith("refs/"):
        return name
    return f"{LOCAL_REF_PREFIX}{name}"


# ---------------------------------------------------------------------------
# Provider snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Change:
    """A single changed path in the working tree or index."""

    path: str
    status: str = "M"

    @property
    def is_conflicted(self) -> bool:
        # porcelain XY codes: any U, or both-added / both-deleted
        return "U" in self.status or self.status in ("AA", "DD")


@dataclass(frozen=True)
class Ref:
    """A reference as reported by the provider.

    Remote-tracking refs carry the short branch name in ``name`` and the
    remote in ``remote``. ``summary`` is filled in by providers that can
    describe the tip commit cheaply.
    """

    name: str
    kind: RefKind
    commit: Optional[str] = None
    remote: Optional[str] = None
    upstream: Optional[str] = None
    ahead: Optional[int] = None
    behind: Optional[int] = None
    summary: Optional["CommitSummary"] = None


@dataclass(frozen=True)
class RemoteInfo:
    name: str
    fetch_url: Optional[str] = None
    push_url: Optional[str] = None


@dataclass(frozen=True)
class Head:
    """HEAD of a repository. ``name`` is None when detached."""

    name: Optional[str] = None
    commit: Optional[str] = None
    upstream: Optional[str] = None
    ahead: Optional[int] = None
    behind: Optional[int] = None

    @property
    def is_detached(self) -> bool:
        return self.name is None


@dataclass(frozen=True)
class RepositoryState:
    """Read snapshot of a repository. The engine never mutates it."""

    root: Path
    head: Head = field(default_factory=Head)
    refs: Tuple[Ref, ...] = ()
    remotes: Tuple[RemoteInfo, ...] = ()
    working_tree_changes: Tuple[Change, ...] = ()
    index_changes: Tuple[Change, ...] = ()
    untracked_changes: Tuple[Change, ...] = ()
    merge_changes: Tuple[Change, ...] = ()

    @property
    def current_branch(self) -> Optional[str]:
        return self.head.name

    @property
    def is_dirty(self) -> bool:
        return bool(
            self.working_tree_changes or self.index_changes or self.untracked_changes
        )


@dataclass(frozen=True)
class WorkingTreeStatus:
    """Change counts used by the dirty-tree gate and status displays."""

    staged: int = 0
    unstaged: int = 0
    untracked: int = 0
    conflicted: int = 0

    @property
    def has_changes(self) -> bool:
        return (self.staged + self.unstaged + self.untracked) > 0

    @classmethod
    def from_state(cls, state: RepositoryState) -> "WorkingTreeStatus":
        return cls(
            staged=len(state.index_changes),
            unstaged=len(state.working_tree_changes),
            untracked=len(state.untracked_changes),
            conflicted=len(state.merge_changes),
        )


# ---------------------------------------------------------------------------
# Engine value types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommitSummary:
    hash: str
    message: str = ""
    author: str = ""
    date: Optional[datetime] = None
    parents: Tuple[str, ...] = ()

    @property
    def short_hash(self) -> str:
        return self.hash[:SHORT_HASH_LENGTH]


@dataclass(frozen=True)
class LocalBranch:
    name: str
    is_active: bool = False
    upstream: Optional[str] = None
    ahead: Optional[int] = None
    behind: Optional[int] = None
    last_commit: Optional[CommitSummary] = None

    @property
    def kind(self) -> BranchKind:
        return BranchKind.LOCAL

    @property
    def full_name(self) -> str:
        return f"{LOCAL_REF_PREFIX}{self.name}"

    @property
    def ref(self) -> str:
        """Name to hand to the provider."""
        return self.name


@dataclass(frozen=True)
class RemoteBranch:
    remote: str
    name: str
    last_commit: Optional[CommitSummary] = None

    @property
    def kind(self) -> BranchKind:
        return BranchKind.REMOTE

    @property
    def is_active(self) -> bool:
        return False

    @property
    def full_name(self) -> str:
        return f"{REMOTE_REF_PREFIX}{self.remote}/{self.name}"

    @property
    def ref(self) -> str:
        return f"{self.remote}/{self.name}"


Branch = Union[LocalBranch, RemoteBranch]


@dataclass(frozen=True)
class Remote:
    name: str
    fetch_url: str
    push_url: str
    branches: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StashEntry:
    """One stash. ``index`` is positional and shifts when stashes are popped."""

    index: int
    message: str
    branch: str
    timestamp: datetime

    @property
    def identity(self) -> Tuple[str, datetime]:
        return (self.message, self.timestamp)


@dataclass(frozen=True)
class ConflictRegion:
    """A conflict block. Line numbers are 1-based and inclusive of markers."""

    start_line: int
    end_line: int
    current: str
    incoming: str
    base: Optional[str] = None
    resolution: Optional[Resolution] = None
    auto_resolved: bool = False
    reason: str = ""

    @property
    def is_resolved(self) -> bool:
        return self.resolution is not None


@dataclass(frozen=True)
class FileConflicts:
    path: str
    regions: Tuple[ConflictRegion, ...] = ()

    @property
    def is_resolved(self) -> bool:
        # no markers left means the file was resolved by hand
        return all(r.is_resolved for r in self.regions)

    @property
    def unresolved_count(self) -> int:
        return sum(1 for r in self.regions if not r.is_resolved)


@dataclass
class OperationResult:
    """Result of a mutating operation that completed without error."""

    operation: str
    status: OperationStatus = OperationStatus.SUCCEEDED
    message: str = ""
    branch: Optional[str] = None
    details: dict = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is OperationStatus.SUCCEEDED


__all__: List[str] = [
    "SHORT_HASH_LENGTH",
    "BranchKind",
    "RefKind",
    "ListKind",
    "ResetMode",
    "Resolution",
    "OperationStatus",
    "qualify_local",
    "Change",
    "Ref",
    "RemoteInfo",
    "Head",
    "RepositoryState",
    "WorkingTreeStatus",
    "CommitSummary",
    "LocalBranch",
    "RemoteBranch",
    "Branch",
    "Remote",
    "StashEntry",
    "ConflictRegion",
    "FileConflicts",
    "OperationResult",
]

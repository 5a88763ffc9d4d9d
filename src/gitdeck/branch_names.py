"""Reference-name rules, remote validation and branch grouping for menus."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

from .models import Branch, LocalBranch


# Branch name constraints (git refname rules)
MAX_BRANCH_LENGTH = 255
# Each tuple is (compiled_pattern, human_readable_message)
_BRANCH_VALIDATION_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\.\."), "contains consecutive dots (..)"),
    (re.compile(r"^-"), "starts with hyphen"),
    (re.compile(r"^\.|\.$"), "starts or ends with dot"),
    (re.compile(r"/\.|\./"), "has a path component starting or ending with dot"),
    (re.compile(r"\.lock$"), "ends with .lock (reserved suffix)"),
    (re.compile(r"@\{"), "contains reflog syntax (@{)"),
    (re.compile(r"[\x00-\x1f\x7f]"), "contains control characters"),
    (re.compile(r"[~^:?*\[\]\\]"), "contains invalid git characters (~^:?*[]\\)"),
    (re.compile(r"\s"), "contains whitespace"),
]

_REMOTE_NAME_RE = re.compile(r"^[a-zA-Z0-9._-]+$")

_REMOTE_URL_PATTERNS = [
    re.compile(r"^https?://.+$"),
    re.compile(r"^git@.+:.+$"),
    re.compile(r"^[\w.-]+@[\w.-]+:.+$"),  # scp-like user@host:path
    re.compile(r"^ssh://.+$"),
    re.compile(r"^git://.+$"),
    re.compile(r"^file://.+$"),
    re.compile(r"^/.*$"),
    re.compile(r"^\.\.?/.*"),
]

COMMON_PREFIXES = (
    "feature/",
    "feat/",
    "bugfix/",
    "fix/",
    "hotfix/",
    "release/",
    "develop/",
    "dev/",
    "chore/",
    "docs/",
    "test/",
    "refactor/",
    "style/",
    "perf/",
    "ci/",
    "build/",
)
_CUSTOM_PREFIX_RE = re.compile(r"^([a-zA-Z0-9_-]+)/")


def validate_branch_name(name: str) -> str:
    """Validate a branch name and return it trimmed.

    Enforces the subset of git-check-ref-format rules that matter for names
    typed by a user: no ``..``, no whitespace or control characters, no
    leading/trailing or doubled slash, no leading hyphen.

    Args:
        name: Raw branch name as entered

    Returns:
        The trimmed name

    Raises:
        ValueError: If the name is empty or breaks a rule
    """
    branch = (name or "").strip()
    if not branch:
        raise ValueError("Branch name cannot be empty")

    if len(branch) > MAX_BRANCH_LENGTH:
        raise ValueError(
            f"Branch name too long: {len(branch)} chars (max {MAX_BRANCH_LENGTH})"
        )

    for compiled_pattern, message in _BRANCH_VALIDATION_RULES:
        if compiled_pattern.search(branch):
            raise ValueError(f"Branch name '{branch}' {message}")

    if branch.startswith("/") or branch.endswith("/"):
        raise ValueError(f"Branch name '{branch}' cannot start or end with slash")

    if "//" in branch:
        raise ValueError(f"Branch name '{branch}' contains consecutive slashes")

    return branch


def is_valid_branch_name(name: str) -> bool:
    try:
        validate_branch_name(name)
    except ValueError:
        return False
    return True


def validate_remote_name(name: str) -> str:
    """Validate a remote name and return it trimmed. Raises ValueError."""
    remote = (name or "").strip()
    if not remote:
        raise ValueError("Remote name cannot be empty")
    if not _REMOTE_NAME_RE.match(remote):
        raise ValueError(
            "Remote name can only contain letters, numbers, dots, underscores, and hyphens"
        )
    return remote


def validate_remote_url(url: str) -> str:
    """Validate a remote URL and return it trimmed. Raises ValueError.

    Accepts HTTP(S), SSH (``ssh://`` and scp-like ``user@host:path``), the git
    protocol, ``file://`` URLs, and absolute or relative local paths.
    """
    value = (url or "").strip()
    if not value:
        raise ValueError("URL cannot be empty")

    if not any(pattern.match(value) for pattern in _REMOTE_URL_PATTERNS):
        raise ValueError(
            "Invalid URL format. Supported formats: HTTPS, SSH, Git protocol, or local path"
        )

    if value.startswith("http"):
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Invalid HTTPS URL format")

    return value


# ---------------------------------------------------------------------------
# Menu grouping
# ---------------------------------------------------------------------------


@dataclass
class BranchGroup:
    prefix: str
    branches: List[Branch] = field(default_factory=list)


@dataclass
class GroupedBranches:
    groups: List[BranchGroup] = field(default_factory=list)
    ungrouped: List[Branch] = field(default_factory=list)


def branch_prefix(name: str) -> Optional[str]:
    """Return the grouping prefix of a branch name (``"feature/"``) or None."""
    for prefix in COMMON_PREFIXES:
        if name.startswith(prefix):
            return prefix
    match = _CUSTOM_PREFIX_RE.match(name)
    if match:
        return match.group(1) + "/"
    return None


def group_branches(branches: Sequence[Branch]) -> GroupedBranches:
    """Group branches by prefix for hierarchical display.

    Groups are sorted by prefix and their members by name. Ungrouped branches
    are sorted by name with the active branch first.
    """
    by_prefix: Dict[str, List[Branch]] = {}
    ungrouped: List[Branch] = []

    for branch in branches:
        prefix = branch_prefix(branch.name)
        if prefix:
            by_prefix.setdefault(prefix, []).append(branch)
        else:
            ungrouped.append(branch)

    groups = [
        BranchGroup(prefix=prefix, branches=sorted(members, key=lambda b: b.name))
        for prefix, members in sorted(by_prefix.items())
    ]
    ungrouped.sort(key=lambda b: (not b.is_active, b.name))
    return GroupedBranches(groups=groups, ungrouped=ungrouped)


def display_name(branch: Branch, grouped: bool = False) -> str:
    """Branch name as shown in a menu; the prefix is dropped inside a group."""
    if not grouped:
        return branch.name
    prefix = branch_prefix(branch.name)
    if prefix:
        return branch.name[len(prefix):]
    return branch.name


def divergence_badge(branch: Branch) -> Optional[str]:
    """Return ``"↑2 ↓1"`` style badge, or None when in sync or not tracked."""
    if not isinstance(branch, LocalBranch):
        return None
    ahead = branch.ahead or 0
    behind = branch.behind or 0
    parts = []
    if ahead > 0:
        parts.append(f"↑{ahead}")
    if behind > 0:
        parts.append(f"↓{behind}")
    return " ".join(parts) or None

"""Tests for pre-flight checks and the dirty-tree gate."""

from __future__ import annotations

import pytest

from fakes import ScriptedNotifier, make_state
from gitdeck.errors import ErrorCode, GitOperationError
from gitdeck.models import RefKind, ResetMode
from gitdeck_ops.guard import (
    GateDecision,
    auto_stash_message,
    check_not_self,
    confirm_reset,
    dirty_gate,
    find_branch,
    parse_reset_mode,
    ref_full_name,
    ref_short_name,
    require_branch,
    require_branch_name,
    require_commit_message,
    require_remote_url,
)


def test_find_branch_prefers_local():
    state = make_state(branches=("main", "dev"), remote_branches=(("origin", "dev"),))
    assert find_branch(state, "dev").kind is RefKind.HEAD
    assert find_branch(state, "refs/heads/dev").kind is RefKind.HEAD

    remote = find_branch(state, "origin/dev")
    assert remote.kind is RefKind.REMOTE_HEAD
    assert find_branch(state, "refs/remotes/origin/dev") == remote
    assert ref_short_name(remote) == "origin/dev"
    assert ref_full_name(remote) == "refs/remotes/origin/dev"

    assert find_branch(state, "nope") is None


def test_require_branch_missing():
    with pytest.raises(GitOperationError) as exc:
        require_branch(make_state(), "ghost")
    assert exc.value.code is ErrorCode.BRANCH_NOT_FOUND
    assert exc.value.context == {"target": "ghost"}


def test_require_name_messages():
    with pytest.raises(GitOperationError) as exc:
        require_branch_name("a..b", label="New branch")
    assert exc.value.code is ErrorCode.INVALID_BRANCH_NAME
    assert exc.value.message.startswith("New branch name is invalid")

    with pytest.raises(GitOperationError) as exc:
        require_branch_name(None)
    assert exc.value.code is ErrorCode.INVALID_BRANCH_NAME

    with pytest.raises(GitOperationError) as exc:
        require_remote_url("nope")
    assert exc.value.code is ErrorCode.INVALID_REMOTE_URL

    assert require_commit_message("  fix  ") == "fix"


@pytest.mark.parametrize("target", ["main", "refs/heads/main"])
@pytest.mark.parametrize(
    "operation,code",
    [("merge", ErrorCode.SELF_MERGE_ATTEMPT), ("rebase", ErrorCode.SELF_REBASE_ATTEMPT)],
)
def test_check_not_self(target, operation, code):
    with pytest.raises(GitOperationError) as exc:
        check_not_self(make_state(), target, operation)
    assert exc.value.code is code


def test_check_not_self_allows_other_refs():
    state = make_state()
    assert check_not_self(state, "feature", "merge") == "main"
    assert check_not_self(state, "origin/main", "rebase") == "main"
    assert check_not_self(state, "unknown", "merge") == "main"


def test_check_not_self_needs_current_branch():
    with pytest.raises(GitOperationError) as exc:
        check_not_self(make_state(current=None), "main", "merge")
    assert exc.value.code is ErrorCode.NO_CURRENT_BRANCH


@pytest.mark.parametrize("mode", ["soft", "mixed", "hard", ResetMode.HARD])
def test_parse_reset_mode(mode):
    assert parse_reset_mode(mode) is ResetMode(mode)


@pytest.mark.parametrize("mode", ["HARD", "keep", ""])
def test_parse_reset_mode_rejects(mode):
    with pytest.raises(GitOperationError) as exc:
        parse_reset_mode(mode)
    assert exc.value.code is ErrorCode.INVALID_RESET_MODE


@pytest.mark.anyio
async def test_confirm_reset():
    notifier = ScriptedNotifier("Reset", "Continue", "Cancel")
    assert await confirm_reset(notifier, ResetMode.SOFT, "HEAD") is True
    assert notifier.prompts == []

    assert await confirm_reset(notifier, ResetMode.HARD, "HEAD~2") is True
    assert "permanently discard" in notifier.prompts[0][0]
    assert "HEAD~2" in notifier.prompts[0][0]
    assert await confirm_reset(notifier, ResetMode.MIXED, "HEAD") is True
    assert await confirm_reset(notifier, ResetMode.HARD, "HEAD") is False


@pytest.mark.anyio
async def test_dirty_gate_clean_tree_proceeds_silently():
    notifier = ScriptedNotifier()
    state = make_state(conflicted=["a.txt"])
    assert await dirty_gate(notifier, state, "merge", "feature") is GateDecision.PROCEED
    assert notifier.prompts == []


@pytest.mark.anyio
@pytest.mark.parametrize(
    "operation,answer,expected",
    [
        ("merge", "Stash Changes", GateDecision.STASH),
        ("rebase", "Continue", GateDecision.PROCEED),
        ("merge", "Cancel", GateDecision.CANCEL),
        ("merge", None, GateDecision.CANCEL),
        ("pull", "Continue", GateDecision.PROCEED),
        ("pull", "Stash Changes", GateDecision.CANCEL),
    ],
)
async def test_dirty_gate_answers(operation, answer, expected):
    notifier = ScriptedNotifier(answer)
    state = make_state(staged=["a"], unstaged=["b", "c"], untracked=["d"])
    assert await dirty_gate(notifier, state, operation, "feature") is expected

    prompt, options = notifier.prompts[0]
    assert "(1 staged, 2 unstaged, 1 untracked)" in prompt
    if operation in ("merge", "rebase"):
        assert options == ["Stash Changes", "Continue", "Cancel"]
        assert prompt.endswith("feature?")
    else:
        assert options == ["Continue", "Cancel"]
        assert prompt.endswith("before pulling?")


def test_auto_stash_message():
    assert auto_stash_message("rebase", "origin/main") == "Auto-stash before rebase with origin/main"

"""User-facing collaborators: confirmation prompts, progress and cancellation."""

from __future__ import annotations

from typing import Callable, List, Optional, Protocol, Sequence, runtime_checkable

from gitdeck.errors import cancelled

from .observability import log_debug


# Prompt options
STASH_CHANGES = "Stash Changes"
CONTINUE = "Continue"
CANCEL = "Cancel"
RESET = "Reset"
REMOVE = "Remove"
STAGE_ALL = "Stage All Changes"


@runtime_checkable
class Notifier(Protocol):
    """Asks the user to pick one of a few options."""

    async def ask_yes_no_cancel(self, prompt: str, options: Sequence[str]) -> Optional[str]:
        """Return the chosen option, or None when the prompt was dismissed."""


@runtime_checkable
class Progress(Protocol):
    def report(self, message: str, increment: Optional[float] = None) -> None: ...


class NullNotifier:
    """Dismisses every prompt, so guarded operations cancel instead of guessing."""

    async def ask_yes_no_cancel(self, prompt: str, options: Sequence[str]) -> Optional[str]:
        log_debug("Prompt dismissed (no notifier)", prompt=prompt, options=list(options))
        return None


class NullProgress:
    def report(self, message: str, increment: Optional[float] = None) -> None:
        log_debug("progress", message=message, increment=increment)


class CancellationToken:
    """Cooperative cancellation flag for long-running operations.

    Cancelling never interrupts a git command already running; the operation
    stops at its next check.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_cancelled(self, operation: str) -> None:
        """Raise ``OPERATION_CANCELLED`` if cancellation was requested."""
        if self._cancelled:
            raise cancelled(operation)

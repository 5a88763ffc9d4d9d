"""gitdeck: branch, merge, rebase and stash workflows for editor hosts."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("gitdeck")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for editable installs without metadata

from .errors import ErrorCode, GitOperationError, classify_error  # noqa: F401
from .models import (  # noqa: F401
    Branch,
    LocalBranch,
    RemoteBranch,
    Remote,
    StashEntry,
    ConflictRegion,
    ResetMode,
    Resolution,
)
from .conflicts import resolve_conflicts  # noqa: F401

__all__ = [
    "ErrorCode",
    "GitOperationError",
    "classify_error",
    "Branch",
    "LocalBranch",
    "RemoteBranch",
    "Remote",
    "StashEntry",
    "ConflictRegion",
    "ResetMode",
    "Resolution",
    "resolve_conflicts",
    "__version__",
]

"""Conflict marker parsing and the auto-resolution policy.

A region is resolved automatically only when a base text is available and at
most one side changed it:

- current equals base, incoming differs -> incoming
- incoming equals base, current differs -> current
- both sides identical (same change, or no change) -> current

Anything else, and every two-way region, stays unresolved for the user.
Resolved regions are never touched again, so ``resolve_conflicts`` is
idempotent.

Region text holds whole lines, each ending with ``\\n``; an empty string is a
side with no lines.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import ConflictRegion, FileConflicts, Resolution


CURRENT_MARKER = "<<<<<<<"
BASE_MARKER = "|||||||"
SEPARATOR_MARKER = "======="
INCOMING_MARKER = ">>>>>>>"


def _join(lines: Sequence[str]) -> str:
    return "".join(f"{line}\n" for line in lines)


def _content_lines(content: str) -> List[str]:
    if not content:
        return []
    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def parse_conflicts(text: str) -> List[ConflictRegion]:
    """Parse git conflict markers (two-way and diff3 style) out of file text.

    Blocks with a missing separator or end marker are skipped.

    Returns:
        Regions in file order, line numbers 1-based and covering the markers
    """
    lines = text.split("\n")
    regions: List[ConflictRegion] = []

    i = 0
    while i < len(lines):
        if not lines[i].startswith(CURRENT_MARKER):
            i += 1
            continue

        start = i
        base_at: Optional[int] = None
        separator_at: Optional[int] = None
        end_at: Optional[int] = None

        j = i + 1
        while j < len(lines):
            line = lines[j]
            if separator_at is None:
                if line.startswith(CURRENT_MARKER):
                    break  # nested start before separator: malformed
                if line.startswith(BASE_MARKER) and base_at is None:
                    base_at = j
                elif line.startswith(SEPARATOR_MARKER):
                    separator_at = j
            elif line.startswith(INCOMING_MARKER):
                end_at = j
                break
            j += 1

        if separator_at is None or end_at is None:
            i += 1
            continue

        current_end = base_at if base_at is not None else separator_at
        regions.append(
            ConflictRegion(
                start_line=start + 1,
                end_line=end_at + 1,
                current=_join(lines[start + 1:current_end]),
                incoming=_join(lines[separator_at + 1:end_at]),
                base=_join(lines[base_at + 1:separator_at]) if base_at is not None else None,
            )
        )
        i = end_at + 1

    return regions


def classify_region(region: ConflictRegion) -> ConflictRegion:
    """Apply the auto-resolution policy to a single region."""
    if region.is_resolved or region.base is None:
        return region

    current, incoming, base = region.current, region.incoming, region.base

    if current == incoming:
        reason = (
            "No changes from base on either side"
            if current == base
            else "Both sides made identical changes from base"
        )
        resolution = Resolution.CURRENT
    elif current == base:
        reason = "Current side unchanged from base, incoming side has modifications"
        resolution = Resolution.INCOMING
    elif incoming == base:
        reason = "Incoming side unchanged from base, current side has modifications"
        resolution = Resolution.CURRENT
    else:
        return region

    return replace(region, resolution=resolution, auto_resolved=True, reason=reason)


def resolve_conflicts(regions: Sequence[ConflictRegion]) -> List[ConflictRegion]:
    """Classify every region, proposing a side where that is safe."""
    return [classify_region(region) for region in regions]


def resolve_region(region: ConflictRegion, resolution: Resolution | str) -> ConflictRegion:
    """Record a user's choice for a region."""
    return replace(
        region,
        resolution=Resolution(resolution),
        auto_resolved=False,
        reason="Resolved manually",
    )


def classify_file(path: str, text: str) -> FileConflicts:
    return FileConflicts(path=path, regions=tuple(resolve_conflicts(parse_conflicts(text))))


def apply_resolutions(text: str, regions: Sequence[ConflictRegion]) -> str:
    """Rewrite file text with the chosen side of each resolved region.

    Unresolved regions keep their marker block verbatim.

    Raises:
        ValueError: If regions overlap or fall outside the text
    """
    if not regions:
        return text

    lines = text.split("\n")
    result: List[str] = []
    last = 0  # 0-based index of the next unconsumed line

    for region in sorted(regions, key=lambda r: r.start_line):
        start = region.start_line - 1
        if start < last or region.end_line > len(lines) or region.end_line < region.start_line:
            raise ValueError(
                f"Conflict region {region.start_line}-{region.end_line} does not fit the file"
            )
        result.extend(lines[last:start])

        if region.resolution is Resolution.CURRENT:
            result.extend(_content_lines(region.current))
        elif region.resolution is Resolution.INCOMING:
            result.extend(_content_lines(region.incoming))
        elif region.resolution is Resolution.BOTH:
            result.extend(_content_lines(region.current))
            result.extend(_content_lines(region.incoming))
        else:
            result.extend(lines[start:region.end_line])

        last = region.end_line

    result.extend(lines[last:])
    return "\n".join(result)


# ---------------------------------------------------------------------------
# Resolution state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConflictStats:
    total: int
    resolved: int
    auto_resolved: int
    manually_resolved: int
    unresolved: int

    def as_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "resolved": self.resolved,
            "auto_resolved": self.auto_resolved,
            "manually_resolved": self.manually_resolved,
            "unresolved": self.unresolved,
        }


def conflict_stats(regions: Sequence[ConflictRegion]) -> ConflictStats:
    total = len(regions)
    resolved = sum(1 for r in regions if r.is_resolved)
    auto = sum(1 for r in regions if r.is_resolved and r.auto_resolved)
    return ConflictStats(
        total=total,
        resolved=resolved,
        auto_resolved=auto,
        manually_resolved=resolved - auto,
        unresolved=total - resolved,
    )


def all_resolved(regions: Sequence[ConflictRegion]) -> bool:
    return bool(regions) and all(r.is_resolved for r in regions)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def can_complete(regions: Sequence[ConflictRegion]) -> Tuple[bool, str]:
    """Whether the merge or rebase can be completed, with a reason."""
    unresolved = sum(1 for r in regions if not r.is_resolved)
    if unresolved == 0:
        return True, "All conflicts have been resolved"
    verb = "needs" if unresolved == 1 else "need"
    return False, f"{_plural(unresolved, 'conflict')} still {verb} to be resolved"


@dataclass(frozen=True)
class ConflictReport:
    """Per-file and per-region resolution state for a repository."""

    files: Tuple[FileConflicts, ...] = ()
    unreadable: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def paths(self) -> List[str]:
        return [f.path for f in self.files] + list(self.unreadable)

    @property
    def regions(self) -> List[ConflictRegion]:
        return [region for f in self.files for region in f.regions]

    @property
    def stats(self) -> ConflictStats:
        return conflict_stats(self.regions)

    @property
    def is_resolved(self) -> bool:
        # unreadable files (binary, deleted on one side) always need the user
        return not self.unreadable and all(f.is_resolved for f in self.files)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": [
                {
                    "path": f.path,
                    "resolved": f.is_resolved,
                    "regions": [
                        {
                            "start_line": r.start_line,
                            "end_line": r.end_line,
                            "resolution": r.resolution.value if r.resolution else None,
                            "auto_resolved": r.auto_resolved,
                            "reason": r.reason,
                        }
                        for r in f.regions
                    ],
                }
                for f in self.files
            ],
            "unreadable": list(self.unreadable),
            "stats": self.stats.as_dict(),
            "resolved": self.is_resolved,
        }


__all__ = [
    "parse_conflicts",
    "classify_region",
    "resolve_conflicts",
    "resolve_region",
    "classify_file",
    "apply_resolutions",
    "ConflictStats",
    "conflict_stats",
    "all_resolved",
    "can_complete",
    "ConflictReport",
]

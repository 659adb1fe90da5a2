"""Line diff used to preview file edits and to find the edited region afterwards.

The default strategy is a greedy re-synchronizing scan: walk both texts while
lines agree, and on a mismatch search a bounded lookahead window for the first
point where the two sides agree again for a few consecutive lines.  It is fast
and good enough for a review UI, but not a minimal edit script: an insertion
longer than the lookahead bound is reported as one "rest of file changed"
block.  Callers only depend on ``DiffStrategy``, so a classical O(ND)
implementation can be dropped in later.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from ..models import ChangeLocation

MAX_LOOKAHEAD = 50
CONFIRM_WINDOW = 3
CONTEXT_LINES = 3

_RULE = "─" * 80


@dataclass(frozen=True)
class DiffChange:
    """One changed region. Starts are 0-based line indexes into old/new text."""

    old_start: int
    new_start: int
    removed: tuple[str, ...]
    added: tuple[str, ...]

    @property
    def old_count(self) -> int:
        return len(self.removed)

    @property
    def new_count(self) -> int:
        return len(self.added)


class DiffStrategy(Protocol):
    def compute(self, old_lines: Sequence[str], new_lines: Sequence[str]) -> list[DiffChange]: ...


class GreedyResyncStrategy:
    def __init__(self, max_lookahead: int = MAX_LOOKAHEAD, confirm_window: int = CONFIRM_WINDOW) -> None:
        self.max_lookahead = max_lookahead
        self.confirm_window = confirm_window

    def compute(self, old_lines: Sequence[str], new_lines: Sequence[str]) -> list[DiffChange]:
        changes: list[DiffChange] = []
        i = j = 0
        while i < len(old_lines) or j < len(new_lines):
            if i < len(old_lines) and j < len(new_lines) and old_lines[i] == new_lines[j]:
                i += 1
                j += 1
                continue

            sync = self._resync(old_lines, new_lines, i, j)
            if sync is None:
                changes.append(DiffChange(i, j, tuple(old_lines[i:]), tuple(new_lines[j:])))
                break

            oi, ni = sync
            changes.append(DiffChange(i, j, tuple(old_lines[i : i + oi]), tuple(new_lines[j : j + ni])))
            i += oi
            j += ni
        return changes

    def _resync(self, old: Sequence[str], new: Sequence[str], i: int, j: int) -> tuple[int, int] | None:
        """Return (old lines consumed, new lines consumed) at the first agreement point."""
        for lookahead in range(1, self.max_lookahead):
            for oi in range(lookahead + 1):
                ni = lookahead - oi
                if i + oi >= len(old) or j + ni >= len(new):
                    continue
                if old[i + oi] == new[j + ni] and self._confirmed(old, new, i + oi, j + ni):
                    return oi, ni
        return None

    def _confirmed(self, old: Sequence[str], new: Sequence[str], a: int, b: int) -> bool:
        # Lines past either end do not count against the match.
        for k in range(1, self.confirm_window):
            if a + k < len(old) and b + k < len(new) and old[a + k] != new[b + k]:
                return False
        return True


_default_strategy: DiffStrategy = GreedyResyncStrategy()


def compute_changes(old_text: str, new_text: str, strategy: DiffStrategy | None = None) -> list[DiffChange]:
    return (strategy or _default_strategy).compute(old_text.split("\n"), new_text.split("\n"))


def apply_changes(old_text: str, changes: Sequence[DiffChange]) -> str:
    """Rebuild the new text from the old text and an ordered change list."""
    old_lines = old_text.split("\n")
    out: list[str] = []
    cursor = 0
    for change in changes:
        out.extend(old_lines[cursor : change.old_start])
        out.extend(change.added)
        cursor = change.old_start + change.old_count
    out.extend(old_lines[cursor:])
    return "\n".join(out)


def _gutter(number: int) -> str:
    return f"{number:>4} │"


def render_changes(
    changes: Sequence[DiffChange],
    label: str,
    old_text: str,
    new_text: str,
    context_lines: int = CONTEXT_LINES,
) -> str:
    """Render changes as an annotated, line-numbered patch for a terminal.

    Removed lines are marked `` - `` and numbered by their position in the old
    text; added lines are marked `` + `` and numbered by their position in the
    new text; context lines are indented by three spaces.
    """
    if not changes:
        return "(no changes)"

    old_lines = old_text.split("\n")
    new_lines = new_text.split("\n")
    out = [_RULE, f" {label}", _RULE, ""]

    for change in changes:
        ctx_before = min(context_lines, change.old_start)
        ctx_after_old = min(context_lines, len(old_lines) - (change.old_start + change.old_count))
        ctx_after_new = min(context_lines, len(new_lines) - (change.new_start + change.new_count))

        old_from = change.old_start - ctx_before + 1
        old_len = ctx_before + change.old_count + ctx_after_old
        new_from = change.new_start - ctx_before + 1
        new_len = ctx_before + change.new_count + min(ctx_after_old, ctx_after_new)
        out.append(
            f"@@ Lines before & after: {old_from}-{old_from + old_len - 1} → {new_from}-{new_from + new_len - 1} @@"
        )

        for k in range(change.old_start - ctx_before, change.old_start):
            out.append(f"{_gutter(k + 1)}   {old_lines[k]}")
        for offset, line in enumerate(change.removed):
            out.append(f"{_gutter(change.old_start + offset + 1)} - {line}")
        for offset, line in enumerate(change.added):
            out.append(f"{_gutter(change.new_start + offset + 1)} + {line}")
        for k in range(ctx_after_old):
            idx = change.old_start + change.old_count + k
            out.append(f"{_gutter(idx + 1)}   {old_lines[idx]}")
        out.append("")

    out.append(_RULE)
    return "\n".join(out)


def format_line_numbers(lines: Sequence[str], start_line: int) -> str:
    width = len(str(start_line + len(lines) - 1))
    return "\n".join(f"{start_line + i:>{width}} | {line}" for i, line in enumerate(lines))


def locate_change(final_text: str, marker: str, context_lines: int = CONTEXT_LINES) -> ChangeLocation:
    """Find the 1-based line range of ``marker`` in ``final_text``.

    The snippet carries ``context_lines`` lines of numbered context on each
    side. A missing marker yields line 1 and an empty snippet.
    """
    pos = final_text.find(marker)
    if pos == -1:
        return ChangeLocation(start_line=1, end_line=1, snippet="")

    lines = final_text.split("\n")
    start_line = final_text.count("\n", 0, pos) + 1
    end_line = start_line + marker.count("\n")
    snippet_start = max(0, start_line - 1 - context_lines)
    snippet_end = min(len(lines), end_line + context_lines)
    return ChangeLocation(
        start_line=start_line,
        end_line=end_line,
        snippet=format_line_numbers(lines[snippet_start:snippet_end], snippet_start + 1),
    )

"""Frame diffing: minimal line operations plus viewport anchoring.

The engine owns one ``RenderFrame`` per pane. ``update()`` trims the common
prefix and suffix of the old and candidate line lists, runs
``difflib.SequenceMatcher`` on the window in between and applies the
resulting operations, so after every update the frame equals the
candidate exactly.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .lines import StyledLine


class OpKind(str, Enum):
    REPLACE = "replace"
    INSERT = "insert"
    DELETE = "delete"


@dataclass(frozen=True)
class DiffOp:
    """One line operation.

    Ops of an update are applied in order; ``index`` is the position in the
    frame as it stands when the op is applied. ``count`` old lines starting
    at ``index`` are replaced by ``lines``.
    """

    kind: OpKind
    index: int
    count: int
    lines: Tuple[StyledLine, ...] = ()


@dataclass
class Viewport:
    height: int
    top: int = 0
    # True while the user has scrolled away from the newest content
    scroll_locked: bool = False


@dataclass(frozen=True)
class FrameUpdate:
    ops: Tuple[DiffOp, ...]
    top: int
    total: int
    full: bool = False
    settled: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.ops) or self.full


@dataclass
class RenderFrame:
    lines: List[StyledLine] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.lines)

    def apply(self, ops: Sequence[DiffOp]) -> None:
        apply_ops(self.lines, ops)


def apply_ops(lines: List[StyledLine], ops: Sequence[DiffOp]) -> List[StyledLine]:
    """Apply ``ops`` to ``lines`` in place and return it."""
    for op in ops:
        lines[op.index:op.index + op.count] = op.lines
    return lines


def _same(a: StyledLine, b: StyledLine) -> bool:
    return a is b or a == b


def diff_lines(old: Sequence[StyledLine], new: Sequence[StyledLine],
               stable: int = 0) -> Tuple[DiffOp, ...]:
    """Line operations turning ``old`` into ``new``.

    ``stable`` leading lines are known to be equal and are not compared.
    """
    n_old, n_new = len(old), len(new)
    start = max(0, min(stable, n_old, n_new))
    while start < n_old and start < n_new and _same(old[start], new[start]):
        start += 1
    end_old, end_new = n_old, n_new
    while end_old > start and end_new > start and _same(old[end_old - 1], new[end_new - 1]):
        end_old -= 1
        end_new -= 1

    if start == end_old and start == end_new:
        return ()
    if start == end_old:
        return (DiffOp(OpKind.INSERT, start, 0, tuple(new[start:end_new])),)
    if start == end_new:
        return (DiffOp(OpKind.DELETE, start, end_old - start),)

    matcher = difflib.SequenceMatcher(None, old[start:end_old], new[start:end_new],
                                      autojunk=False)
    ops = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        index = start + j1
        if tag == "insert":
            ops.append(DiffOp(OpKind.INSERT, index, 0, tuple(new[start + j1:start + j2])))
        elif tag == "delete":
            ops.append(DiffOp(OpKind.DELETE, index, i2 - i1))
        else:
            ops.append(DiffOp(OpKind.REPLACE, index, i2 - i1, tuple(new[start + j1:start + j2])))
    return tuple(ops)


class RenderDiffEngine:
    """Keeps one pane's frame equal to the latest candidate rendering."""

    def __init__(self, height: int = 24, width: int = 80):
        self.frame = RenderFrame()
        self.viewport = Viewport(height=max(height, 1))
        self.width = width
        self._full = True
        # number of updates that changed the frame; a cheap flicker metric
        self.updates = 0

    @property
    def lines(self) -> List[StyledLine]:
        return self.frame.lines

    @property
    def max_top(self) -> int:
        return max(0, len(self.frame) - self.viewport.height)

    def update(self, candidate: Sequence[StyledLine], stable: int = 0,
               settled: int = 0) -> FrameUpdate:
        old_total = len(self.frame)
        if self._full:
            ops: Tuple[DiffOp, ...] = ()
            if old_total or candidate:
                ops = (DiffOp(OpKind.REPLACE, 0, old_total, tuple(candidate)),)
            self.frame.lines = list(candidate)
            full = True
            self._full = False
        else:
            ops = diff_lines(self.frame.lines, candidate, stable)
            self.frame.apply(ops)
            full = False
        if ops or full:
            self.updates += 1
        self._anchor()
        return FrameUpdate(ops, self.viewport.top, len(self.frame), full, min(settled, len(self.frame)))

    def _anchor(self) -> None:
        viewport = self.viewport
        if viewport.scroll_locked:
            viewport.top = min(viewport.top, self.max_top)
        else:
            viewport.top = self.max_top

    # ── Viewport ───────────────────────────────────────

    def resize(self, width: int, height: int) -> None:
        """Cached wraps are invalid after a resize; the next update redraws everything."""
        self.width = width
        self.viewport.height = max(height, 1)
        self._full = True
        self._anchor()

    def invalidate(self) -> None:
        self._full = True

    def scroll(self, delta: int) -> int:
        return self.scroll_to(self.viewport.top + delta)

    def scroll_to(self, top: int) -> int:
        viewport = self.viewport
        viewport.top = max(0, min(top, self.max_top))
        viewport.scroll_locked = viewport.top < self.max_top
        return viewport.top

    def scroll_to_end(self) -> int:
        return self.scroll_to(self.max_top)

    def page(self, pages: int) -> int:
        return self.scroll(pages * max(self.viewport.height - 1, 1))

    def visible(self, top: Optional[int] = None) -> List[StyledLine]:
        top = self.viewport.top if top is None else top
        return self.frame.lines[top:top + self.viewport.height]

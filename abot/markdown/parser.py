"""Incremental markdown parser for streaming assistant messages.

The parser is fed the *full* accumulated text of a message on every delta.
Complete lines are run through a line state machine exactly once; the list
of finalized blocks only ever grows, so each call costs the new text plus
the still-open tail block.

A partial last line is shown as part of the provisional tail block unless
its meaning is still undecided (``#``, ``-``, ``12``, a lone backtick, a
fence opener whose info string has not ended, a possible closing fence
inside code). Those are withheld until more text arrives.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from .blocks import Block, BlockKind, BlockSequence, Span
from .inline import parse_inline

_FENCE_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})(.*)$")
_FENCE_PENDING_RE = re.compile(r"^ {0,3}(?:`{1,2}|~{1,2})$")
_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})[ \t]+(\S.*?)(?:[ \t]+#+)?[ \t]*$")
_HEADING_PENDING_RE = re.compile(r"^ {0,3}#{1,6}[ \t]*$")
_RULE_RE = re.compile(r"^ {0,3}([-*_])(?:[ \t]*\1){2,}[ \t]*$")
_LIST_RE = re.compile(r"^([ \t]*)([-+*]|\d{1,9}[.)])([ \t]+)(\S.*)$")
_LIST_PENDING_RE = re.compile(r"^[ \t]*(?:[-+*]|\d{1,9}[.)]?)[ \t]*$")
_MARKS_PENDING_RE = re.compile(r"^ {0,3}[-*_+][-*_+ \t]*$")
_QUOTE_RE = re.compile(r"^ {0,3}>[ \t]?(.*)$")


def _indent(line: str) -> int:
    stripped = line.lstrip(" \t")
    return len(line[:len(line) - len(stripped)].expandtabs(4))


def _fence_opener(line: str) -> Optional[re.Match]:
    m = _FENCE_RE.match(line)
    if m is None:
        return None
    # backtick fences may not carry backticks in their info string
    if m.group(2)[0] == "`" and "`" in m.group(3):
        return None
    return m


def _closing_fence(line: str, fence: str) -> bool:
    stripped = line.lstrip(" ")
    if len(line) - len(stripped) > 3:
        return False
    run = len(stripped) - len(stripped.lstrip(fence[0]))
    return run >= len(fence) and not stripped[run:].strip()


def _maybe_closing_fence(line: str, fence: str) -> bool:
    """True if ``line`` is, or could still grow into, the closing fence."""
    stripped = line.lstrip(" ")
    if len(line) - len(stripped) > 3:
        return False
    run = len(stripped) - len(stripped.lstrip(fence[0]))
    rest = stripped[run:]
    if not rest:
        return True
    return run >= len(fence) and not rest.strip()


def _is_pending(line: str) -> bool:
    return bool(
        _FENCE_PENDING_RE.match(line)
        or _fence_opener(line)
        or _HEADING_PENDING_RE.match(line)
        or _LIST_PENDING_RE.match(line)
        or _MARKS_PENDING_RE.match(line)
    )


def _starts_block(line: str) -> bool:
    """Lines that interrupt a paragraph."""
    return bool(
        _fence_opener(line)
        or _HEADING_RE.match(line)
        or _RULE_RE.match(line)
        or _LIST_RE.match(line)
        or _QUOTE_RE.match(line)
    )


@dataclass
class _OpenBlock:
    kind: BlockKind
    start: int
    lines: List[str] = field(default_factory=list)
    level: int = 0
    marker: str = ""
    content_indent: int = 0
    language: str = ""
    fence: str = ""
    fence_indent: int = 0
    closed: bool = False
    blank_after: bool = False


class IncrementalParser:
    """Turns the accumulated text of one message into a BlockSequence."""

    def __init__(self) -> None:
        self.generation = 0
        self._reset_state()

    def _reset_state(self) -> None:
        self._text = ""
        self._pos = 0
        self._finalized: List[Block] = []
        self._open: Optional[_OpenBlock] = None
        self._lead: Optional[int] = None
        self._done = False
        self._result: Optional[BlockSequence] = None

    def reset(self) -> None:
        self.generation += 1
        self._reset_state()

    def feed(self, text: str, final: bool = False) -> BlockSequence:
        """Parse ``text``, which normally extends the previously fed text."""
        if self._done:
            if text == self._text and final and self._result is not None:
                return self._result
            self.reset()
        elif (len(text) < len(self._text)
              or text[self._pos:len(self._text)] != self._text[self._pos:]):
            self.reset()

        self._text = text
        pos = self._pos
        while True:
            newline = text.find("\n", pos)
            if newline < 0:
                break
            self._consume(text[pos:newline], pos)
            pos = newline + 1
        self._pos = pos
        tail = text[pos:]

        if not final:
            return self._provisional(tail, pos)

        if tail:
            self._consume(tail, pos)
            self._pos = len(text)
        self._close_open(len(text))
        if not self._finalized and text:
            # whitespace only
            self._finalized.append(
                Block(BlockKind.RAW, 0, len(text), True, spans=(Span(text),)))
        self._done = True
        self._result = BlockSequence(self._finalized, len(self._finalized))
        return self._result

    # ── Line state machine ─────────────────────────────

    def _consume(self, line: str, offset: int) -> None:
        block = self._open
        if block is not None and block.kind is BlockKind.CODE and not block.closed:
            if _closing_fence(line, block.fence):
                block.closed = True
            else:
                block.lines.append(self._code_line(block, line))
            return

        if not line.strip():
            if block is None:
                if self._lead is None:
                    self._lead = offset
            else:
                block.blank_after = True
            return

        if block is not None and self._continues(block, line):
            if block.blank_after:
                block.lines.append("")
                block.blank_after = False
            block.lines.append(self._continuation(block, line))
            return

        self._close_open(offset)
        start = self._lead if self._lead is not None else offset
        self._lead = None
        self._open = self._start(line, start)

    def _continues(self, block: _OpenBlock, line: str) -> bool:
        if block.kind in (BlockKind.HEADING, BlockKind.RULE, BlockKind.CODE):
            return False
        if block.kind is BlockKind.LIST_ITEM:
            if _starts_block(line):
                return False
            if block.blank_after:
                return _indent(line) >= block.content_indent
            return True
        if block.blank_after:
            return False
        if block.kind is BlockKind.QUOTE and _QUOTE_RE.match(line):
            return True
        return not _starts_block(line)

    @staticmethod
    def _continuation(block: _OpenBlock, line: str) -> str:
        if block.kind is BlockKind.QUOTE:
            m = _QUOTE_RE.match(line)
            if m:
                return m.group(1)
        return line.lstrip(" \t")

    @staticmethod
    def _code_line(block: _OpenBlock, line: str) -> str:
        strip = min(block.fence_indent, _indent(line))
        return line[strip:] if strip else line

    @staticmethod
    def _start(line: str, start: int) -> _OpenBlock:
        m = _fence_opener(line)
        if m:
            info = m.group(3).strip()
            return _OpenBlock(BlockKind.CODE, start, fence=m.group(2),
                              fence_indent=len(m.group(1)),
                              language=info.split()[0] if info else "")
        m = _HEADING_RE.match(line)
        if m:
            return _OpenBlock(BlockKind.HEADING, start, [m.group(2)], level=len(m.group(1)))
        if _RULE_RE.match(line):
            return _OpenBlock(BlockKind.RULE, start)
        m = _LIST_RE.match(line)
        if m:
            indent = _indent(m.group(1))
            return _OpenBlock(BlockKind.LIST_ITEM, start, [m.group(4)],
                              level=indent // 2, marker=m.group(2),
                              content_indent=indent + len(m.group(2)) + len(m.group(3)))
        m = _QUOTE_RE.match(line)
        if m:
            return _OpenBlock(BlockKind.QUOTE, start, [m.group(1)])
        return _OpenBlock(BlockKind.PARAGRAPH, start, [line.lstrip(" \t")])

    def _close_open(self, end: int) -> None:
        if self._open is not None:
            self._finalized.append(self._build(self._open, end, final=True))
            self._open = None

    # ── Provisional tail ───────────────────────────────

    def _provisional(self, tail: str, pos: int) -> BlockSequence:
        block = self._open
        end = len(self._text)
        count = len(self._finalized)

        if block is not None and block.kind is BlockKind.CODE and not block.closed:
            extra = None
            if tail and not _maybe_closing_fence(tail, block.fence):
                extra = self._code_line(block, tail)
            return BlockSequence(self._finalized, count, self._build(block, end, False, extra))

        if not tail.strip() or _is_pending(tail):
            if block is None:
                return BlockSequence(self._finalized, count)
            return BlockSequence(self._finalized, count, self._build(block, end, False))

        if block is not None and self._continues(block, tail):
            extra = self._continuation(block, tail)
            lines_before = [""] if block.blank_after else []
            return BlockSequence(self._finalized, count,
                                 self._build(block, end, False, extra, lines_before))

        # The partial line opens a new block, so the open one is already complete.
        settled = self._build(block, pos, True) if block is not None else None
        start = self._lead if self._lead is not None else pos
        provisional = self._build(self._start(tail, start), end, False)
        return BlockSequence(self._finalized, count, provisional, settled=settled)

    @staticmethod
    def _build(block: _OpenBlock, end: int, final: bool, extra: Optional[str] = None,
               lines_before: Optional[List[str]] = None) -> Block:
        lines = block.lines
        if extra is not None:
            lines = lines + (lines_before or []) + [extra]

        if block.kind is BlockKind.CODE:
            return Block(BlockKind.CODE, block.start, end, final, language=block.language,
                         lines=tuple(lines), closed=block.closed)
        if block.kind is BlockKind.RULE:
            return Block(BlockKind.RULE, block.start, end, final)
        if block.kind is BlockKind.HEADING:
            return Block(BlockKind.HEADING, block.start, end, final,
                         spans=parse_inline(lines[0], final=final), level=block.level)
        return Block(block.kind, block.start, end, final,
                     spans=parse_inline("\n".join(lines), final=final),
                     level=block.level, marker=block.marker)

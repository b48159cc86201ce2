"""Inline markdown: code spans, emphasis, strikethrough, links and escapes.

``parse_inline(text, final=False)`` is used for the provisional tail of a
streaming message. Everything from the first opener whose closer has not
arrived yet is withheld, so a half-typed ``**bold`` never flashes literal
asterisks. With ``final=True`` unmatched openers are plain text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from .blocks import Span

_ESCAPABLE = frozenset("!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~")
_SCAN = {char: re.compile("[\\\\`" + re.escape(char) + "]") for char in "*_~"}


@dataclass(frozen=True)
class _Style:
    bold: bool = False
    italic: bool = False
    strike: bool = False
    link: Optional[str] = None

    def emphasis(self, char: str, length: int) -> "_Style":
        if char == "~":
            return replace(self, strike=True)
        if length >= 3:
            return replace(self, bold=True, italic=True)
        if length == 2:
            return replace(self, bold=True)
        return replace(self, italic=True)

    def span(self, text: str, code: bool = False) -> Span:
        return Span(text, bold=self.bold, italic=self.italic, strike=self.strike,
                    code=code, link=self.link)


def parse_inline(text: str, final: bool = True) -> Tuple[Span, ...]:
    """Split ``text`` into styled spans."""
    if not text:
        return ()
    spans, _ = _InlineParser(text).run(0, len(text), _Style(), provisional=not final)
    return tuple(_merge(spans))


def _merge(spans: List[Span]) -> List[Span]:
    merged: List[Span] = []
    for span in spans:
        if not span.text:
            continue
        if merged and merged[-1].same_style(span):
            merged[-1] = replace(merged[-1], text=merged[-1].text + span.text)
        else:
            merged.append(span)
    return merged


def _run_length(text: str, pos: int, end: int, char: str) -> int:
    stop = pos
    while stop < end and text[stop] == char:
        stop += 1
    return stop - pos


def _delimiter_length(char: str, run: int) -> int:
    return 2 if char == "~" else min(run, 3)


class _InlineParser:

    def __init__(self, text: str):
        self.text = text
        self._closers: Dict[Tuple[int, int, str, int], int] = {}

    def run(self, pos: int, end: int, style: _Style,
            provisional: bool) -> Tuple[List[Span], bool]:
        """Parse ``text[pos:end]``. Returns the spans and whether output was cut short."""
        text = self.text
        out: List[Span] = []
        buf: List[str] = []

        def flush() -> None:
            if buf:
                out.append(style.span("".join(buf)))
                buf.clear()

        i = pos
        while i < end:
            ch = text[i]

            if ch == "\\":
                if i + 1 < end:
                    nxt = text[i + 1]
                    if nxt in _ESCAPABLE:
                        buf.append(nxt)
                        i += 2
                        continue
                elif provisional:
                    flush()
                    return out, True
                buf.append(ch)
                i += 1
                continue

            if ch == "`":
                run = _run_length(text, i, end, "`")
                close = self._code_close(i + run, end, run)
                if close >= 0 and not (provisional and close + run == end):
                    flush()
                    out.append(style.span(_code_content(text[i + run:close]), code=True))
                    i = close + run
                    continue
                if provisional:
                    flush()
                    return out, True
                buf.append(text[i:i + run])
                i += run
                continue

            if ch in "*_~":
                run = _run_length(text, i, end, ch)
                length = _delimiter_length(ch, run)
                after = i + run
                if after >= end or (ch == "~" and run < 2):
                    if provisional and after >= end:
                        flush()
                        return out, True
                    buf.append(text[i:after])
                    i = after
                    continue
                prev = text[i - 1] if i > pos else " "
                opens = not text[after].isspace() and not (ch == "_" and prev.isalnum())
                close = self._emphasis_close(after, end, ch, length) if opens else -1
                if close >= 0 and provisional and ch == "_":
                    # the closer is only valid if no word character follows it
                    if close + _run_length(text, close, end, ch) >= end:
                        close = -1
                if close < 0:
                    if opens and provisional:
                        flush()
                        return out, True
                    buf.append(text[i:after])
                    i = after
                    continue
                if run > length:
                    buf.append(text[i:after - length])
                flush()
                inner, _ = self.run(after, close, style.emphasis(ch, length), provisional=False)
                out.extend(inner)
                i = close + length
                continue

            if ch == "[":
                link = self._link(i, end)
                if link is None:
                    if provisional and self._link_pending(i, end):
                        flush()
                        return out, True
                    buf.append(ch)
                    i += 1
                    continue
                label_end, url, resume = link
                flush()
                inner, _ = self.run(i + 1, label_end, replace(style, link=url or None),
                                    provisional=False)
                out.extend(inner)
                i = resume
                continue

            buf.append(ch)
            i += 1

        flush()
        return out, False

    def _code_close(self, pos: int, end: int, run: int) -> int:
        text = self.text
        while pos < end:
            found = text.find("`", pos, end)
            if found < 0:
                return -1
            length = _run_length(text, found, end, "`")
            if length == run:
                return found
            pos = found + length
        return -1

    def _emphasis_close(self, pos: int, end: int, char: str, length: int) -> int:
        """Find the closing delimiter run for an opener of ``length`` chars."""
        key = (pos, end, char, length)
        if key not in self._closers:
            # resolve later openers right to left so nested lookups are cache hits
            for after, run in reversed(self._runs(pos, end, char)):
                inner = (after, end, char, _delimiter_length(char, run))
                if inner not in self._closers:
                    self._closers[inner] = self._scan_close(*inner)
            if key not in self._closers:
                self._closers[key] = self._scan_close(pos, end, char, length)
        return self._closers[key]

    def _runs(self, pos: int, end: int, char: str) -> List[Tuple[int, int]]:
        """(end offset, length) of every ``char`` run in ``text[pos:end]``."""
        text = self.text
        runs = []
        found = text.find(char, pos, end)
        while found >= 0:
            run = _run_length(text, found, end, char)
            runs.append((found + run, run))
            found = text.find(char, found + run, end)
        return runs

    def _scan_close(self, pos: int, end: int, char: str, length: int) -> int:
        text = self.text
        special = _SCAN[char]
        start = pos
        while pos < end:
            match = special.search(text, pos, end)
            if match is None:
                return -1
            pos = match.start()
            c = text[pos]
            if c == "\\":
                pos += 2
                continue
            if c == "`":
                run = _run_length(text, pos, end, "`")
                close = self._code_close(pos + run, end, run)
                pos = close + run if close >= 0 else pos + run
                continue
            run = _run_length(text, pos, end, char)
            before = text[pos - 1]
            after = text[pos + run] if pos + run < end else " "
            if pos > start and not before.isspace():
                if run >= length and (char != "_" or not after.isalnum()):
                    return pos
            elif not after.isspace():
                # a nested opener of the same character: skip over its span
                inner_length = _delimiter_length(char, run)
                inner = self._closers.get((pos + run, end, char, inner_length))
                if inner is None:
                    inner = self._emphasis_close(pos + run, end, char, inner_length)
                if inner >= 0:
                    pos = inner + inner_length
                    continue
            pos += run
        return -1

    def _bracket_close(self, pos: int, end: int) -> int:
        text = self.text
        depth = 0
        while pos < end:
            c = text[pos]
            if c == "\\":
                pos += 2
                continue
            if c == "`":
                run = _run_length(text, pos, end, "`")
                close = self._code_close(pos + run, end, run)
                pos = close + run if close >= 0 else pos + run
                continue
            if c == "[":
                depth += 1
            elif c == "]":
                if depth == 0:
                    return pos
                depth -= 1
            pos += 1
        return -1

    def _link(self, pos: int, end: int) -> Optional[Tuple[int, str, int]]:
        """Match ``[label](url)`` at ``pos``: (label end, url, resume offset)."""
        label_end = self._bracket_close(pos + 1, end)
        if label_end < 0 or label_end + 1 >= end or self.text[label_end + 1] != "(":
            return None
        close = self.text.find(")", label_end + 2, end)
        if close < 0:
            return None
        target = self.text[label_end + 2:close].strip()
        url = target.split()[0] if target else ""
        return label_end, url, close + 1

    def _link_pending(self, pos: int, end: int) -> bool:
        """True while later text could still turn ``[`` into a link."""
        label_end = self._bracket_close(pos + 1, end)
        if label_end < 0 or label_end + 1 >= end:
            return True
        return self.text[label_end + 1] == "("


def _code_content(raw: str) -> str:
    content = raw.replace("\n", " ")
    if len(content) >= 2 and content[0] == " " and content[-1] == " " and content.strip():
        content = content[1:-1]
    return content

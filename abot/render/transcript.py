"""Pane contents: the chat transcript and the log pane."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, NamedTuple, Optional, Tuple

from ..models import Message, MessageStatus, Role
from .lines import BLANK, StyledLine
from .renderer import MarkdownRenderer, MessageView


class PaneFrame(NamedTuple):
    lines: List[StyledLine]
    # leading lines identical to the previous render of this pane
    stable: int
    # leading lines that will never change again at this width
    settled: int


class _Entry:
    """One transcript item: a conversation message or a UI-only notice."""

    def __init__(self, renderer: MarkdownRenderer, message: Optional[Message] = None,
                 notice: str = "", level: str = "info"):
        self.renderer = renderer
        self.message = message
        self.notice = notice
        self.level = level
        self.view = MessageView(renderer) if self.is_markdown else None
        self._key: Optional[tuple] = None
        self._lines: List[StyledLine] = []
        self._settled = 0

    @property
    def is_markdown(self) -> bool:
        return (self.message is not None and self.message.role is Role.ASSISTANT
                and not self.message.notice)

    @property
    def streaming(self) -> bool:
        return self.message is not None and self.message.is_streaming

    def _cache_key(self, raw: bool) -> tuple:
        if self.message is None:
            return (self.renderer.version,)
        return (self.renderer.version, raw, self.message.status, len(self.message.text))

    def render(self, first: bool, raw: bool) -> Tuple[List[StyledLine], int, bool]:
        """Return ``(lines, stable, changed)`` for this entry."""
        key = self._cache_key(raw)
        if key == self._key:
            return self._lines, len(self._lines), False

        separator = [] if first else [BLANK]
        stable = 0
        if self.message is None:
            lines = separator + self._notice_lines(self.notice, self.level)
            self._settled = len(lines)
        elif self.message.notice:
            lines = separator + self._notice_lines(self.message.text, "error")
            self._settled = len(lines)
        elif self.message.role is Role.USER:
            theme = self.renderer.theme
            lines = separator + [self._label("You", theme.USER_LABEL)]
            lines += self.renderer.plain_lines(self.message.text)
            self._settled = len(lines)
        else:
            head = separator + [self._label("abot", self.renderer.theme.ASSISTANT_LABEL)]
            body, body_stable = self.view.render(
                self.message.text, final=not self.message.is_streaming, raw=raw)
            lines = head + body
            if self.message.status is MessageStatus.CANCELLED:
                lines += self.renderer.plain_lines(
                    "(cancelled)", self.renderer.style(self.renderer.theme.MUTED))
            # settled lines only matter while streaming
            self._settled = len(head) + (self.view.settled if not raw else 0)
            if self._key is not None and self._key[:2] == key[:2]:
                stable = len(head) + body_stable

        self._key = key
        self._lines = lines
        return lines, min(stable, len(lines)), True

    @property
    def settled(self) -> int:
        return self._settled if self.streaming else len(self._lines)

    def _label(self, text: str, style: str) -> StyledLine:
        glyph = self.renderer.glyph("›")
        return self.renderer.capabilities.adapt_line(
            ((f"{glyph} {text}", self.renderer.style(style)),))

    def _notice_lines(self, text: str, level: str) -> List[StyledLine]:
        theme = self.renderer.theme
        style = theme.ERROR if level == "error" else theme.NOTICE
        return self.renderer.plain_lines(text, self.renderer.style(style))


class Transcript:
    """Ordered transcript entries rendered into one pane."""

    def __init__(self, renderer: MarkdownRenderer):
        self.renderer = renderer
        self.raw = False
        self._entries: List[_Entry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def add_message(self, message: Message) -> None:
        if message.role is Role.SYSTEM:
            return
        self._entries.append(_Entry(self.renderer, message=message))

    def add_notice(self, text: str, level: str = "info") -> None:
        self._entries.append(_Entry(self.renderer, notice=text, level=level))

    def render(self) -> PaneFrame:
        lines: List[StyledLine] = []
        stable: Optional[int] = None
        settled: Optional[int] = None
        for index, entry in enumerate(self._entries):
            entry_lines, entry_stable, changed = entry.render(index == 0, self.raw)
            if changed and stable is None:
                stable = len(lines) + entry_stable
            if settled is None and entry.streaming:
                settled = len(lines) + entry.settled
            lines.extend(entry_lines)
        return PaneFrame(lines,
                         len(lines) if stable is None else stable,
                         len(lines) if settled is None else settled)


_LEVEL_STYLES = {
    logging.DEBUG: "DIM",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}


class LogPane:
    """Bounded list of formatted log records."""

    def __init__(self, renderer: MarkdownRenderer, limit: int = 2000):
        self.renderer = renderer
        self._records: Deque[Tuple[int, str]] = deque(maxlen=limit)
        self._lines: List[StyledLine] = []
        self._version = -1
        self._dropped = False
        self._rendered = 0

    def add(self, level: int, text: str) -> None:
        if len(self._records) == self._records.maxlen:
            self._dropped = True
        self._records.append((level, text))
        if self._version == self.renderer.version and not self._dropped:
            self._lines.extend(self._record_lines(level, text))

    def _record_lines(self, level: int, text: str) -> List[StyledLine]:
        attr = _LEVEL_STYLES.get(level, "TEXT")
        return self.renderer.plain_lines(text, self.renderer.style(getattr(self.renderer.theme, attr)))

    def render(self) -> PaneFrame:
        if self._version != self.renderer.version or self._dropped:
            self._version = self.renderer.version
            self._dropped = False
            self._lines = []
            for level, text in self._records:
                self._lines.extend(self._record_lines(level, text))
            stable = 0
        else:
            stable = self._rendered
        self._rendered = len(self._lines)
        return PaneFrame(list(self._lines), stable, len(self._lines))

"""Block sequence → styled terminal lines."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from rich.cells import cell_len
from rich.console import Console
from rich.style import Style
from rich.text import Text

from ..markdown import Block, BlockKind, IncrementalParser, Span
from ..themes import Theme, get_theme
from .highlight import SyntaxHighlighter
from .lines import BLANK, StyledLine, TerminalCapabilities, from_text

MIN_WIDTH = 20

# Unicode glyph → ASCII fallback
_GLYPHS = {
    "•": "*",
    "▌": "|",
    "─": "-",
    "›": ">",
}


class MarkdownRenderer:
    """Renders blocks at the current width.

    ``version`` changes whenever previously rendered lines become invalid
    (resize, theme or capability change); caches compare against it.
    """

    def __init__(self, console: Console, highlighter: Optional[SyntaxHighlighter] = None,
                 theme: Optional[Theme] = None,
                 capabilities: Optional[TerminalCapabilities] = None,
                 width: Optional[int] = None):
        self.console = console
        self.highlighter = highlighter or SyntaxHighlighter()
        self.theme = theme or get_theme()
        self.capabilities = capabilities or TerminalCapabilities.from_console(console)
        self.width = max(width or console.width, MIN_WIDTH)
        self.version = 0
        self._span_styles: Dict[tuple, Style] = {}

    # ── Layout state ───────────────────────────────────

    def resize(self, width: int) -> bool:
        width = max(width, MIN_WIDTH)
        if width == self.width:
            return False
        self.width = width
        self.invalidate()
        return True

    def set_theme(self, theme: Theme) -> None:
        self.theme = theme
        self.invalidate()

    def invalidate(self) -> None:
        self.version += 1
        self._span_styles.clear()

    def glyph(self, char: str) -> str:
        if self.capabilities.unicode:
            return char
        return _GLYPHS.get(char, char)

    def style(self, spec: str) -> Style:
        return Style.parse(spec) if spec else Style.null()

    # ── Text helpers ───────────────────────────────────

    def wrap(self, text: Text, width: Optional[int] = None) -> List[StyledLine]:
        width = max(width if width is not None else self.width, 1)
        lines = text.wrap(self.console, width, justify="default", overflow="fold", no_wrap=False)
        return [from_text(line, self.console) for line in lines]

    def plain_lines(self, text: str, style: Optional[Style] = None,
                    width: Optional[int] = None) -> List[StyledLine]:
        return self.capabilities.adapt_lines(
            self.wrap(Text(text, style=style or "", end=""), width))

    def _span_style(self, span: Span, base: Optional[Style]) -> Optional[Style]:
        key = (span.bold, span.italic, span.strike, span.code, span.link is not None, base)
        style = self._span_styles.get(key)
        if style is None:
            parts = [base] if base is not None else []
            if span.bold:
                parts.append(self.style(self.theme.BOLD))
            if span.italic:
                parts.append(self.style(self.theme.ITALIC))
            if span.strike:
                parts.append(Style(strike=True))
            if span.code:
                parts.append(self.style(self.theme.INLINE_CODE))
            if span.link is not None:
                parts.append(self.style(self.theme.LINK))
            style = Style.combine(parts) if parts else Style.null()
            self._span_styles[key] = style
        return style

    def inline(self, spans, base: Optional[Style] = None) -> Text:
        text = Text(end="")
        for span in spans:
            text.append(span.text, self._span_style(span, base))
        return text

    @staticmethod
    def _prefixed(lines: List[StyledLine], first: StyledLine, rest: StyledLine) -> List[StyledLine]:
        return [(first if index == 0 else rest) + line for index, line in enumerate(lines)]

    # ── Blocks ─────────────────────────────────────────

    def render_block(self, block: Block, previous: Optional[BlockKind] = None,
                     rows: Optional["CodeRows"] = None) -> List[StyledLine]:
        """Lines for one block, led by a blank separator unless it starts the message.

        ``rows`` carries the rendered lines of a code block that is still
        growing, so earlier code lines are not rendered again.
        """
        lines: List[StyledLine] = []
        if previous is not None and not (previous is BlockKind.LIST_ITEM
                                         and block.kind is BlockKind.LIST_ITEM):
            lines.append(BLANK)

        kind = block.kind
        if kind is BlockKind.CODE:
            # code rows are adapted as they are built
            lines.extend(self._code(block, rows))
            return lines
        if kind is BlockKind.HEADING:
            lines.extend(self.wrap(self.inline(block.spans, self.style(self.theme.heading(block.level)))))
        elif kind is BlockKind.LIST_ITEM:
            lines.extend(self._list_item(block))
        elif kind is BlockKind.QUOTE:
            mark = ((self.glyph("▌") + " ", self.style(self.theme.QUOTE_MARK)),)
            body = self.wrap(self.inline(block.spans, Style(italic=True)), self.width - 2)
            lines.extend(self._prefixed(body, mark, mark))
        elif kind is BlockKind.RULE:
            lines.append(((self.glyph("─") * self.width, self.style(self.theme.RULE)),))
        else:
            lines.extend(self.wrap(self.inline(block.spans)))
        return self.capabilities.adapt_lines(lines)

    def _list_item(self, block: Block) -> List[StyledLine]:
        indent = "  " * block.level
        if block.ordered:
            marker = block.marker + " "
        else:
            marker = self.glyph("•") + " "
        first: StyledLine = ((indent, None), (marker, self.style(self.theme.BULLET)))
        rest: StyledLine = ((" " * (len(indent) + cell_len(marker)), None),)
        body = self.wrap(self.inline(block.spans), self.width - len(indent) - cell_len(marker))
        return self._prefixed(body, first, rest)

    def _code(self, block: Block, rows: Optional["CodeRows"] = None) -> List[StyledLine]:
        lines: List[StyledLine] = []
        if block.language:
            lines.append(self.capabilities.adapt_line(
                ((block.language, self.style(self.theme.CODE_LABEL)),)))
        if rows is None or not rows.extend(self, block):
            for text in self.highlighter.highlight(block.lines, block.language):
                lines.extend(self.code_rows(text))
            return lines

        lines.extend(rows.rows)
        texts, _ = self.highlighter.highlight_from(
            block.lines[rows.lines:], block.language, rows.state)
        for text in texts:
            lines.extend(self.code_rows(text))
        return lines

    def code_rows(self, text: Text) -> List[StyledLine]:
        """One highlighted code line, wrapped and padded to the width."""
        background = self.style(self.theme.CODE_BLOCK)
        out = []
        for row in self.wrap(text):
            pad = self.width - cell_len("".join(value for value, _ in row))
            cells = tuple((value, background + style) for value, style in row)
            if pad > 0:
                cells += ((" " * pad, background),)
            out.append(self.capabilities.adapt_line(cells))
        return out


class CodeRows:
    """Rendered rows of the complete lines of a code block that is still streaming."""

    def __init__(self, block: Block, version: int):
        self.key = (block.start, block.language, version)
        self.rows: List[StyledLine] = []
        self.lines = 0
        self.state: Optional[tuple] = None
        self.incremental = True

    def matches(self, block: Block, version: int) -> bool:
        return self.key == (block.start, block.language, version)

    def extend(self, renderer: MarkdownRenderer, block: Block) -> bool:
        """Render lines that completed since the last call. False if not incremental."""
        if not self.incremental:
            return False
        # the last line can still grow unless the fence has closed
        complete = len(block.lines) if block.closed else max(len(block.lines) - 1, 0)
        if complete <= self.lines:
            return True
        texts, state = renderer.highlighter.highlight_from(
            block.lines[self.lines:complete], block.language, self.state)
        if state is None:
            self.incremental = False
            return False
        for text in texts:
            self.rows.extend(renderer.code_rows(text))
        self.lines = complete
        self.state = state
        return True


class MessageView:
    """Rendered lines of one message.

    Finalized blocks are rendered once and kept; each call re-renders only
    the provisional tail. A streaming code block keeps the rows of its
    complete lines, so only its last line is rendered per call.
    """

    def __init__(self, renderer: MarkdownRenderer):
        self.renderer = renderer
        self.parser = IncrementalParser()
        self._reset_cache()

    def _reset_cache(self) -> None:
        self._version = self.renderer.version
        self._generation = self.parser.generation
        self._done: List[StyledLine] = []
        self._done_blocks = 0
        self._last_kind: Optional[BlockKind] = None
        self._code_rows: Optional[CodeRows] = None

    @property
    def settled(self) -> int:
        """Number of leading lines that can no longer change at this width."""
        return len(self._done)

    def _rows_for(self, block: Block) -> Optional[CodeRows]:
        if block.kind is not BlockKind.CODE:
            return None
        if self._code_rows is None or not self._code_rows.matches(block, self._version):
            self._code_rows = CodeRows(block, self._version)
        return self._code_rows

    def render(self, text: str, final: bool = False, raw: bool = False) -> Tuple[List[StyledLine], int]:
        """Return ``(lines, stable)``; the first ``stable`` lines match the previous call."""
        if raw:
            return self.render_raw(text), 0

        blocks = self.parser.feed(text, final=final)
        if self._version != self.renderer.version or self._generation != self.parser.generation:
            self._reset_cache()
        stable = len(self._done)

        while self._done_blocks < blocks.boundary:
            block = blocks[self._done_blocks]
            rows = self._code_rows if (self._code_rows is not None
                                       and self._code_rows.matches(block, self._version)) else None
            self._done.extend(self.renderer.render_block(block, self._last_kind, rows))
            self._last_kind = block.kind
            self._done_blocks += 1

        block = blocks.provisional
        if block is None:
            return list(self._done), stable

        previous_rows = self._code_rows
        rows = self._rows_for(block)
        if rows is not None and rows is previous_rows and stable == len(self._done):
            # separator, language label, then rows of lines that were already complete
            head = int(self._last_kind is not None) + int(bool(block.language))
            stable += head + len(rows.rows)
        return self._done + self.renderer.render_block(block, self._last_kind, rows), stable

    def render_raw(self, text: str) -> List[StyledLine]:
        """Source lines verbatim, folded at the width."""
        lines: List[StyledLine] = []
        for source in text.split("\n"):
            lines.extend(self.renderer.wrap(Text(source, end="")))
        return lines

"""Styled terminal lines and terminal capability degradation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from rich.cells import cell_len
from rich.console import Console
from rich.style import Style
from rich.text import Text

Segment = Tuple[str, Optional[Style]]
# Hashable so frames can be diffed with difflib.
StyledLine = Tuple[Segment, ...]

BLANK: StyledLine = ()


def plain(line: StyledLine) -> str:
    return "".join(text for text, _ in line)


def width(line: StyledLine) -> int:
    return cell_len(plain(line))


def from_text(text: Text, console: Console) -> StyledLine:
    """Flatten one already-wrapped rich Text into a StyledLine."""
    return tuple((seg.text, seg.style) for seg in text.render(console) if seg.text)


def to_text(line: StyledLine) -> Text:
    text = Text(no_wrap=True, end="")
    for value, style in line:
        text.append(value, style)
    return text


def styled(value: str, style: Optional[Style] = None) -> StyledLine:
    return ((value, style),) if value else BLANK


@dataclass(frozen=True)
class TerminalCapabilities:
    """What the terminal can show. Missing capabilities are dropped per style."""

    color: bool = True
    bold: bool = True
    italic: bool = True
    underline: bool = True
    strike: bool = True
    unicode: bool = True
    _cache: Dict[Style, Style] = field(default_factory=dict, compare=False, repr=False, hash=False)

    @classmethod
    def from_console(cls, console: Console) -> "TerminalCapabilities":
        if console.is_dumb_terminal:
            return cls(color=False, bold=False, italic=False, underline=False, strike=False,
                       unicode=False)
        return cls(color=console.color_system is not None and not console.no_color,
                   unicode=console.encoding.lower().startswith("utf"))

    @property
    def full(self) -> bool:
        return self.color and self.bold and self.italic and self.underline and self.strike

    def adapt(self, style: Optional[Style]) -> Optional[Style]:
        if style is None or self.full:
            return style
        cached = self._cache.get(style)
        if cached is None:
            cached = Style(
                color=style.color if self.color else None,
                bgcolor=style.bgcolor if self.color else None,
                bold=style.bold if self.bold else None,
                dim=style.dim if self.color else None,
                italic=style.italic if self.italic else None,
                underline=style.underline if self.underline else None,
                strike=style.strike if self.strike else None,
                reverse=style.reverse,
            )
            self._cache[style] = cached
        return cached

    def adapt_line(self, line: StyledLine) -> StyledLine:
        if self.full:
            return line
        return tuple((value, self.adapt(style)) for value, style in line)

    def adapt_lines(self, lines: Iterable[StyledLine]):
        if self.full:
            return list(lines)
        return [self.adapt_line(line) for line in lines]

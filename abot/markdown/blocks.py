"""Structural markdown units produced by the incremental parser."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Sequence, Tuple


class BlockKind(str, Enum):
    PARAGRAPH = "paragraph"
    HEADING = "heading"
    LIST_ITEM = "list_item"
    CODE = "code"
    QUOTE = "quote"
    RULE = "rule"
    RAW = "raw"


@dataclass(frozen=True)
class Span:
    """A run of inline text sharing one set of inline styles."""

    text: str
    bold: bool = False
    italic: bool = False
    strike: bool = False
    code: bool = False
    link: Optional[str] = None

    def same_style(self, other: "Span") -> bool:
        return (self.bold, self.italic, self.strike, self.code, self.link) == (
            other.bold, other.italic, other.strike, other.code, other.link)


@dataclass(frozen=True)
class Block:
    """One block of a message.

    ``start``/``end`` are offsets into the message source; finalized blocks
    plus the provisional tail partition the text. ``final`` is False only for
    the last block of a still-streaming message.
    """

    kind: BlockKind
    start: int
    end: int
    final: bool
    spans: Tuple[Span, ...] = ()
    level: int = 0          # heading level, or list nesting depth
    marker: str = ""        # list marker ("-", "1.", ...)
    language: str = ""      # fenced code info string, first word
    lines: Tuple[str, ...] = ()  # code lines
    closed: bool = False    # fenced code saw its closing fence

    @property
    def plain(self) -> str:
        if self.kind is BlockKind.CODE:
            return "\n".join(self.lines)
        return "".join(span.text for span in self.spans)

    @property
    def ordered(self) -> bool:
        return self.kind is BlockKind.LIST_ITEM and self.marker[:1].isdigit()


class BlockSequence:
    """Parser output: all finalized blocks, then at most one provisional block.

    ``boundary`` is the number of leading finalized blocks. The finalized part
    is a view over the parser's append-only list, so building a sequence does
    not copy earlier blocks. ``settled`` is a block the parser already knows
    is complete but has not committed to its list yet.
    """

    __slots__ = ("_finalized", "_count", "_settled", "provisional")

    def __init__(self, finalized: Sequence[Block], count: int,
                 provisional: Optional[Block] = None, settled: Optional[Block] = None):
        self._finalized = finalized
        self._count = count
        self._settled = settled
        self.provisional = provisional

    @property
    def boundary(self) -> int:
        return self._count + (1 if self._settled is not None else 0)

    @property
    def finalized(self) -> Tuple[Block, ...]:
        blocks = tuple(self._finalized[:self._count])
        if self._settled is not None:
            blocks += (self._settled,)
        return blocks

    @property
    def blocks(self) -> Tuple[Block, ...]:
        if self.provisional is None:
            return self.finalized
        return self.finalized + (self.provisional,)

    def __len__(self) -> int:
        return self.boundary + (1 if self.provisional is not None else 0)

    def __getitem__(self, index: int) -> Block:
        if index < 0:
            index += len(self)
        if 0 <= index < self._count:
            return self._finalized[index]
        if index == self._count and self._settled is not None:
            return self._settled
        if index == self.boundary and self.provisional is not None:
            return self.provisional
        raise IndexError(index)

    def __iter__(self) -> Iterator[Block]:
        for index in range(len(self)):
            yield self[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlockSequence):
            return NotImplemented
        return self.blocks == other.blocks

    def __repr__(self) -> str:
        return f"BlockSequence(boundary={self.boundary}, blocks={self.blocks!r})"

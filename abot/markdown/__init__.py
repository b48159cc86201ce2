"""Streaming-friendly markdown: block parser plus inline spans."""

from .blocks import Block, BlockKind, BlockSequence, Span
from .inline import parse_inline
from .parser import IncrementalParser

__all__ = ["Block", "BlockKind", "BlockSequence", "IncrementalParser", "Span", "parse_inline"]

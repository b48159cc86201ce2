"""Rendering pipeline: highlight, lay out and diff terminal lines."""

from .diff import DiffOp, FrameUpdate, OpKind, RenderDiffEngine, RenderFrame, Viewport, apply_ops
from .highlight import SyntaxHighlighter
from .lines import StyledLine, TerminalCapabilities
from .renderer import MarkdownRenderer, MessageView
from .transcript import LogPane, PaneFrame, Transcript

__all__ = [
    "DiffOp", "FrameUpdate", "OpKind", "RenderDiffEngine", "RenderFrame", "Viewport",
    "apply_ops", "SyntaxHighlighter", "StyledLine", "TerminalCapabilities",
    "MarkdownRenderer", "MessageView", "LogPane", "PaneFrame", "Transcript",
]

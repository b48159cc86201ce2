"""Custom Textual widgets for the abot TUI."""

from __future__ import annotations

from typing import List, Sequence

from rich.segment import Segment
from rich.text import Text
from textual.geometry import Size
from textual.message import Message
from textual.reactive import reactive
from textual.scroll_view import ScrollView
from textual.strip import Strip
from textual.widgets import Input, Static

from ..render import FrameUpdate, OpKind, StyledLine, apply_ops
from ..themes import get_theme


class PaneView(ScrollView):
    """Draws one pane's frame through the Line API.

    The view keeps its own copy of the frame and applies each update's
    line operations to it, so only rows touched by an operation are
    refreshed. The viewport position comes from the controller.
    """

    can_focus = False

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.lines: List[StyledLine] = []
        self.pane = ""
        self.top = 0

    def apply_update(self, pane: str, update: FrameUpdate) -> None:
        if update.full or pane != self.pane:
            self.pane = pane
            self.lines = []
            apply_ops(self.lines, update.ops)
            self.virtual_size = Size(self.size.width, len(self.lines))
            self.refresh()
        else:
            for op in update.ops:
                apply_ops(self.lines, (op,))
                if op.kind is OpKind.REPLACE and op.count == len(op.lines):
                    self.refresh_lines(op.index, op.count)
                else:
                    # rows below shift; redraw from here down
                    self.refresh_lines(op.index, max(len(self.lines) - op.index, 1))
            self.virtual_size = Size(self.size.width, len(self.lines))
        if update.top != self.top:
            self.top = update.top
            self.refresh()
        self.scroll_to(y=update.top, animate=False)

    def render_line(self, y: int) -> Strip:
        scroll_x, scroll_y = self.scroll_offset
        index = scroll_y + y
        width = self.size.width
        if index >= len(self.lines):
            return Strip.blank(width, self.rich_style)
        segments = [Segment(text, style) for text, style in self.lines[index]]
        strip = Strip(segments).adjust_cell_length(max(width + scroll_x, 1), self.rich_style)
        return strip.crop(scroll_x, scroll_x + width)


class StatusBar(Static):
    """Single-line bar: model, controller state, pane and view flags."""

    model_name = reactive("")
    state = reactive("idle")
    pane = reactive("transcript")
    raw = reactive(False)
    locked = reactive(False)
    elapsed = reactive(0.0)
    chars = reactive(0)
    tokens = reactive(0)
    hint = reactive("")

    def render(self) -> Text:
        theme = get_theme()
        parts = Text()
        parts.append(" model:", style=theme.MUTED)
        parts.append(f"{self.model_name} ", style=f"{theme.ACCENT} bold".strip())
        parts.append(" ", style=theme.MUTED)
        if self.state == "idle":
            parts.append("idle ", style=theme.SUCCESS)
            if self.tokens:
                parts.append(f"{self.tokens} tokens ", style=theme.MUTED)
        else:
            parts.append(f"{self.state} ", style=theme.WARN)
            if self.elapsed:
                parts.append(f"{self.elapsed:.1f}s ", style=theme.TEXT)
            if self.chars:
                parts.append(f"{self.chars} chars ", style=theme.TEXT)
        parts.append(f" [{self.pane}]", style=theme.INFO)
        if self.raw:
            parts.append(" raw", style=theme.WARN)
        if self.locked:
            parts.append(" scroll-lock (End to follow)", style=theme.WARN)
        if self.hint:
            parts.append(f"  {self.hint}", style=theme.MUTED)
        return parts


# ---------------------------------------------------------------------------
# CommandPalette: slash command autocomplete overlay
# ---------------------------------------------------------------------------

class CommandPalette(Static):
    """Slash-command matches shown above the input while typing ``/...``."""

    DEFAULT_CSS = """
    CommandPalette {
        dock: bottom;
        height: auto;
        max-height: 10;
        padding: 0 1;
        display: none;
    }
    """

    def __init__(self, specs: Sequence = (), **kwargs):
        super().__init__(**kwargs)
        self._specs = list(specs)
        self._visible_specs: list = []
        self._cursor = 0

    def update_filter(self, text: str) -> None:
        if not text.startswith("/") or " " in text.strip():
            self._visible_specs = []
            self._cursor = 0
            self.display = False
            return

        query_body = text.lower().lstrip("/")
        matched = []
        for spec in self._specs:
            cmd_body = spec.command.lstrip("/")
            if not query_body or cmd_body.startswith(query_body):
                matched.append(spec)
            elif query_body in spec.description.lower():
                matched.append(spec)
            elif any(query_body in kw for kw in spec.keywords):
                matched.append(spec)

        self._visible_specs = matched
        self._cursor = min(self._cursor, max(0, len(matched) - 1))
        self.display = bool(matched)
        self.refresh()

    def render(self) -> Text:
        theme = get_theme()
        text = Text()
        for i, spec in enumerate(self._visible_specs):
            pointer = "› " if i == self._cursor else "  "
            style = f"{theme.TEXT} bold".strip() if i == self._cursor else theme.MUTED
            text.append(f"{pointer}{spec.usage:<16} {spec.description}\n", style=style)
        return text

    def move_up(self) -> None:
        if self._visible_specs:
            self._cursor = max(0, self._cursor - 1)
            self.refresh()

    def move_down(self) -> None:
        if self._visible_specs:
            self._cursor = min(len(self._visible_specs) - 1, self._cursor + 1)
            self.refresh()

    def get_selected_command(self) -> str:
        if self._visible_specs and 0 <= self._cursor < len(self._visible_specs):
            return self._visible_specs[self._cursor].command
        return ""

    @property
    def is_active(self) -> bool:
        return self.display and bool(self._visible_specs)


class ChatInput(Input):
    """Chat input with history navigation.

    Enter submits, Up/Down walk the history (or the command palette while
    it is showing), Tab completes a palette entry or switches panes.
    """

    class Submitted(Message):
        """Posted when the user presses Enter."""
        def __init__(self, value: str) -> None:
            super().__init__()
            self.value = value

    class PaneToggle(Message):
        pass

    def __init__(self, history: Sequence[str] = (), **kwargs):
        super().__init__(placeholder="Type a message... (/ for commands, @web to search)", **kwargs)
        self._history: list[str] = list(history)
        self._history_idx = -1
        self._draft = ""

    def _get_palette(self) -> CommandPalette | None:
        try:
            return self.app.query_one("#command_palette", CommandPalette)
        except Exception:
            return None

    def on_key(self, event) -> None:
        palette = self._get_palette()

        if palette and palette.is_active:
            if event.key == "up":
                event.prevent_default()
                event.stop()
                palette.move_up()
                return
            elif event.key == "down":
                event.prevent_default()
                event.stop()
                palette.move_down()
                return
            elif event.key == "tab":
                event.prevent_default()
                event.stop()
                cmd = palette.get_selected_command()
                if cmd:
                    self.value = cmd + " "
                    self.cursor_position = len(self.value)
                return

        if event.key == "tab":
            event.prevent_default()
            event.stop()
            self.post_message(self.PaneToggle())
        elif event.key == "up" and self._history:
            event.prevent_default()
            event.stop()
            if self._history_idx == -1:
                self._draft = self.value
            self._history_idx = min(self._history_idx + 1, len(self._history) - 1)
            self.value = self._history[self._history_idx]
            self.cursor_position = len(self.value)
        elif event.key == "down":
            event.prevent_default()
            event.stop()
            if self._history_idx > 0:
                self._history_idx -= 1
                self.value = self._history[self._history_idx]
            elif self._history_idx == 0:
                self._history_idx = -1
                self.value = self._draft
            self.cursor_position = len(self.value)

    def watch_value(self, value: str) -> None:
        palette = self._get_palette()
        if palette:
            palette.update_filter(value)

    def action_submit(self) -> None:
        palette = self._get_palette()
        if palette and palette.is_active:
            cmd = palette.get_selected_command()
            if cmd and self.value.strip() != cmd:
                self.value = cmd
            palette.update_filter("")

        value = self.value.strip()
        if value:
            self._history.insert(0, value)
            if len(self._history) > 200:
                self._history = self._history[:200]
        self._history_idx = -1
        self._draft = ""
        self.post_message(self.Submitted(value))
        self.value = ""

"""AbotApp: Textual fullscreen TUI for abot."""

from __future__ import annotations

import sys
from typing import Any, Optional, Sequence

from textual.app import App, ComposeResult
from textual.binding import Binding

from ..commands import SLASH_COMMAND_SPECS
from ..controller import ControllerState, SessionController, StatusInfo
from ..events import (
    CancelRequested, EventQueue, ExitRequested, InputSubmitted, PaneSwitched, Resized,
    Scrolled, TerminalLost, Tick,
)
from ..render import FrameUpdate
from .widgets import ChatInput, CommandPalette, PaneView, StatusBar


class AbotApp(App):
    """Fullscreen TUI.

    Layout:
        PaneView        transcript or log pane, drawn line by line
        CommandPalette  slash-command autocomplete (hidden by default)
        StatusBar       model/state/pane flags
        ChatInput       input with history

    The app is the controller's render surface. Every thread posts to the
    event queue; its wakeup schedules one drain on the app's loop.
    """

    TITLE = "abot"
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    PaneView {
        height: 1fr;
        scrollbar-size-vertical: 1;
    }
    StatusBar {
        height: 1;
    }
    ChatInput {
        border: none;
        border-top: solid $primary-darken-2;
        height: 2;
        padding: 0 1;
    }
    """

    BINDINGS = [
        # priority: the input widget binds these keys itself
        Binding("ctrl+c", "interrupt", "Cancel", priority=True),
        Binding("ctrl+d", "quit_app", "Quit", priority=True),
        Binding("end", "scroll_end", "Follow", show=False, priority=True),
        ("f2", "switch_pane", "Switch pane"),
        ("pageup", "page(-1)", "Page up"),
        ("pagedown", "page(1)", "Page down"),
        ("shift+up", "scroll_lines(-1)", "Scroll up"),
        ("shift+down", "scroll_lines(1)", "Scroll down"),
    ]

    def __init__(
        self,
        controller_factory: Any,
        events: EventQueue,
        tick_interval: float = 0.25,
        history: Sequence[str] = (),
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.events = events
        self.tick_interval = tick_interval
        self._history = list(history)
        # built on mount, once the terminal size is known
        self._controller_factory = controller_factory
        self.controller: Optional[SessionController] = None
        self._pending_ctrl_d = False

    def compose(self) -> ComposeResult:
        yield PaneView(id="pane")
        yield CommandPalette(specs=SLASH_COMMAND_SPECS, id="command_palette")
        yield StatusBar(id="statusbar")
        yield ChatInput(history=self._history, id="input")

    def on_mount(self) -> None:
        # Disable mouse tracking so terminal-native text selection works.
        sys.stdout.write("\x1b[?1000l\x1b[?1002l\x1b[?1003l\x1b[?1006l")
        sys.stdout.flush()

        view = self.query_one("#pane", PaneView)
        self.controller = self._controller_factory(self, view.size.width or self.size.width,
                                                   view.size.height or self.size.height)
        self.events.wakeup = self._wakeup
        self.set_interval(self.tick_interval, lambda: self.events.put(Tick()))
        self.controller.refresh()
        self._drain()
        self.query_one("#input", ChatInput).focus()

    def on_resize(self, event) -> None:
        if self.controller is None:
            return
        view = self.query_one("#pane", PaneView)
        self.call_after_refresh(
            lambda: self.events.put(Resized(view.size.width, view.size.height)))

    # ── Event queue ────────────────────────────────────

    def _wakeup(self) -> None:
        """Called from any thread when events arrive."""
        try:
            self._loop.call_soon_threadsafe(self._drain)
        except (RuntimeError, AttributeError):
            pass

    def _drain(self) -> None:
        if self.controller is None:
            return
        try:
            self.controller.process_pending()
        except OSError as exc:
            self.controller.dispatch(TerminalLost(str(exc)))

    # ── RenderSurface ──────────────────────────────────

    def apply(self, pane: str, update: FrameUpdate) -> None:
        self.query_one("#pane", PaneView).apply_update(pane, update)

    def set_status(self, status: StatusInfo) -> None:
        bar = self.query_one("#statusbar", StatusBar)
        bar.model_name = status.model
        bar.state = status.state.value
        bar.pane = status.pane
        bar.raw = status.raw
        bar.locked = status.scroll_locked
        bar.elapsed = round(status.elapsed, 1)
        bar.chars = status.chars
        bar.tokens = status.tokens
        if status.state is not ControllerState.IDLE:
            bar.hint = "Ctrl+C to stop"
        elif not self._pending_ctrl_d:
            bar.hint = ""

    def request_exit(self) -> None:
        self.exit()

    # ── Input ──────────────────────────────────────────

    def on_chat_input_submitted(self, event: ChatInput.Submitted) -> None:
        self._pending_ctrl_d = False
        if event.value:
            self.events.put(InputSubmitted(event.value))

    def on_chat_input_pane_toggle(self, event: ChatInput.PaneToggle) -> None:
        self.events.put(PaneSwitched())

    # ── Key bindings ───────────────────────────────────

    def action_interrupt(self) -> None:
        """Ctrl+C: cancel the stream in flight, if any."""
        self._pending_ctrl_d = False
        if self.controller is not None and self.controller.busy:
            self.events.put(CancelRequested())

    def action_quit_app(self) -> None:
        """Ctrl+D: quit (double-tap required)."""
        if self._pending_ctrl_d:
            self.events.put(ExitRequested())
            return
        self._pending_ctrl_d = True
        self.query_one("#statusbar", StatusBar).hint = "Press Ctrl-D again to exit."

    def action_switch_pane(self) -> None:
        self.events.put(PaneSwitched())

    def action_page(self, pages: int) -> None:
        self.events.put(Scrolled(pages=pages))

    def action_scroll_lines(self, delta: int) -> None:
        self.events.put(Scrolled(delta=delta))

    def action_scroll_end(self) -> None:
        self.events.put(Scrolled(to_end=True))

"""Line-mode rendering surface for the plain REPL and one-shot answers.

Settled lines are printed permanently; the provisional tail of a
streaming message lives in a rich ``Live`` region and is redrawn in
place until it settles.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from .controller import ControllerState, SessionController, StatusInfo
from .events import CancelRequested, EventQueue, Tick
from .render import FrameUpdate, StyledLine, apply_ops
from .render.lines import to_text
from .themes import get_theme

__all__ = ["ConsoleSurface", "drive"]

log = logging.getLogger(__name__)


class ConsoleSurface:
    """RenderSurface that appends to the terminal's scrollback.

    Lines already printed cannot be taken back: a full redraw (raw toggle,
    theme change) only affects lines that were not committed yet.
    """

    def __init__(self, console: Console, pane: str = "transcript"):
        self.console = console
        self.pane = pane
        self.lines: List[StyledLine] = []
        self.committed = 0
        self.exited = False
        self._status: Optional[StatusInfo] = None
        self._live: Optional[Live] = None
        self._tail: List[StyledLine] = []

    def apply(self, pane: str, update: FrameUpdate) -> None:
        if pane != self.pane:
            return
        if update.full:
            self.lines = []
        apply_ops(self.lines, update.ops)

        settled = min(update.settled, len(self.lines))
        for line in self.lines[self.committed:settled]:
            self._print(line)
        self.committed = max(self.committed, settled)
        self._tail = self.lines[self.committed:]
        self._refresh_live()

    def set_status(self, status: StatusInfo) -> None:
        self._status = status
        self._refresh_live()

    def request_exit(self) -> None:
        self.exited = True
        self.close()

    def close(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    # ── Internals ──────────────────────────────────────

    def _print(self, line: StyledLine) -> None:
        target = self._live.console if self._live is not None else self.console
        target.print(to_text(line), soft_wrap=True, highlight=False)

    def _waiting_line(self) -> Optional[Text]:
        status = self._status
        if status is None or status.state is not ControllerState.AWAITING_RESPONSE:
            return None
        return Text(f"… waiting for {status.model} ({status.elapsed:.1f}s)", style=get_theme().DIM)

    def _refresh_live(self) -> None:
        renderables = [to_text(line) for line in self._tail]
        waiting = self._waiting_line()
        if waiting is not None:
            renderables.append(waiting)

        if not renderables:
            self.close()
            return
        if self._live is None:
            self._live = Live(console=self.console, auto_refresh=False, transient=True)
            self._live.start()
        self._live.update(Group(*renderables), refresh=True)


def drive(controller: SessionController, events: EventQueue, tick_interval: float = 0.25) -> None:
    """Process events on this thread until the controller is idle again.

    Ctrl+C while a stream is in flight becomes a cancel request.
    """
    deadline = time.monotonic() + tick_interval
    while not controller.exited:
        try:
            batch = events.wait(timeout=tick_interval)
            if time.monotonic() >= deadline:
                batch.append(Tick())
                deadline = time.monotonic() + tick_interval
            controller.process(batch)
            if not controller.busy and not controller.pending_saves and events.empty():
                return
        except KeyboardInterrupt:
            log.debug("Interrupted by user")
            events.put(CancelRequested())

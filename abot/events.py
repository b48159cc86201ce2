"""Events consumed by the session controller, and the queue that carries them.

Every producer (input handler, stream and save workers, timers, the log
handler) posts events here; only the controller's thread drains the queue.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass(frozen=True)
class InputSubmitted:
    line: str


@dataclass(frozen=True)
class DeltaArrived:
    stream_id: int
    text: str


@dataclass(frozen=True)
class StreamCompleted:
    stream_id: int
    usage: Optional[Dict[str, int]] = None


@dataclass(frozen=True)
class StreamFailed:
    stream_id: int
    kind: str
    message: str


@dataclass(frozen=True)
class CancelRequested:
    pass


@dataclass(frozen=True)
class CancelAcknowledged:
    stream_id: int


@dataclass(frozen=True)
class PromptAugmented:
    stream_id: int
    text: str


@dataclass(frozen=True)
class AugmentFailed:
    stream_id: int
    message: str


@dataclass(frozen=True)
class Resized:
    width: int
    height: int


@dataclass(frozen=True)
class Scrolled:
    # lines; positive scrolls towards newer content
    delta: int = 0
    # jump to the newest line and unlock
    to_end: bool = False
    pages: int = 0


@dataclass(frozen=True)
class PaneSwitched:
    pane: Optional[str] = None  # None cycles


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class SaveCompleted:
    result: Any   # session.SaveResult
    scope: str
    revision: int


@dataclass(frozen=True)
class ModelPersisted:
    name: str
    path: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class LogRecorded:
    level: int
    text: str


@dataclass(frozen=True)
class ExitRequested:
    pass


@dataclass(frozen=True)
class TerminalLost:
    reason: str = ""


class EventQueue:
    """Thread-safe FIFO with an optional wakeup hook.

    ``wakeup`` is called from the posting thread when the queue goes from
    "nothing scheduled" to "events pending"; front-ends use it to schedule
    one drain on their UI loop instead of one per event.
    """

    def __init__(self, wakeup: Optional[Callable[[], None]] = None):
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._lock = threading.Lock()
        self._scheduled = False
        self.wakeup = wakeup

    def put(self, event: Any) -> None:
        self._queue.put(event)
        if self.wakeup is None:
            return
        with self._lock:
            if self._scheduled:
                return
            self._scheduled = True
        self.wakeup()

    def drain(self) -> List[Any]:
        """Take every pending event, in arrival order."""
        with self._lock:
            self._scheduled = False
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def wait(self, timeout: Optional[float] = None) -> List[Any]:
        """Block for the first event, then take everything else pending."""
        try:
            first = self._queue.get(timeout=timeout)
        except queue.Empty:
            return []
        return [first] + self.drain()

    def empty(self) -> bool:
        return self._queue.empty()

"""Session controller: the single owner of conversation, panes and stream state.

All mutation happens in ``dispatch`` on the controller's thread. Workers
(streams, web search, saves) only ever post events to the queue. After each
drain of the queue the active pane is rendered once, so a burst of deltas
costs one parse/diff/draw pass.
"""

from __future__ import annotations

import itertools
import logging
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from rich.console import Console

from . import commands
from .commands import (
    CommandNotice, Exit, ListModels, Save, SendMessage, SetLogLevel, ShowHelp,
    SwitchModel, ToggleRaw, interpret,
)
from .config import Config
from .errors import ConfigError, MessageFinalizedError, PersistenceError, StreamError, WebSearchError
from .events import (
    AugmentFailed, CancelAcknowledged, CancelRequested, DeltaArrived, EventQueue,
    ExitRequested, InputSubmitted, LogRecorded, ModelPersisted, PaneSwitched, PromptAugmented,
    Resized, SaveCompleted, Scrolled, StreamCompleted, StreamFailed, TerminalLost, Tick,
)
from .llm import ChatRequest, DeltaStreamSource, StreamComplete, StreamHandle, TextDelta, build_request
from .logger import set_level
from .models import Conversation, Message, MessageStatus, Role
from .render import FrameUpdate, LogPane, MarkdownRenderer, RenderDiffEngine, SyntaxHighlighter, Transcript
from .session import SessionStore
from .web_search import WebAugmenter

log = logging.getLogger(__name__)

TRANSCRIPT = "transcript"
LOG = "log"
PANES = (TRANSCRIPT, LOG)


class ControllerState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting"
    STREAMING = "streaming"
    CANCELLING = "cancelling"


@dataclass(frozen=True)
class StatusInfo:
    model: str
    state: ControllerState
    pane: str
    raw: bool
    scroll_locked: bool
    elapsed: float = 0.0
    chars: int = 0
    tokens: int = 0


class RenderSurface(Protocol):
    """What the controller needs from a front-end."""

    def apply(self, pane: str, update: FrameUpdate) -> None: ...

    def set_status(self, status: StatusInfo) -> None: ...

    def request_exit(self) -> None: ...


def _usage_text(usage: Optional[Dict[str, int]]) -> str:
    if not usage:
        return "usage not reported"
    prompt, completion = usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0)
    return f"{prompt} prompt + {completion} completion tokens"


class _StreamTicket:
    """One in-flight request. Events carrying another id are stale."""

    def __init__(self, stream_id: int, user: Message, assistant: Message):
        self.id = stream_id
        self.user = user
        self.assistant = assistant
        self.handle: Optional[StreamHandle] = None
        self.cancelled = False
        self.started_at = time.monotonic()


class SessionController:

    def __init__(
        self,
        config: Config,
        source: DeltaStreamSource,
        surface: RenderSurface,
        *,
        events: Optional[EventQueue] = None,
        store: Optional[SessionStore] = None,
        augmenter: Optional[WebAugmenter] = None,
        runner: Optional[Executor] = None,
        renderer: Optional[MarkdownRenderer] = None,
        conversation: Optional[Conversation] = None,
        width: int = 80,
        height: int = 24,
    ):
        self.config = config
        self.source = source
        self.surface = surface
        self.events = events or EventQueue()
        self.store = store or SessionStore()
        self.augmenter = augmenter or WebAugmenter(max_results=config.web_result_limit)
        self.runner = runner or ThreadPoolExecutor(max_workers=4, thread_name_prefix="abot")
        self.renderer = renderer or MarkdownRenderer(
            Console(width=width, color_system="truecolor"),
            SyntaxHighlighter(config.syntax_theme), width=width)
        self.conversation = conversation or Conversation.start(config.initial_prompt)

        self.state = ControllerState.IDLE
        self.transcript = Transcript(self.renderer)
        self.log_pane = LogPane(self.renderer)
        self.engines: Dict[str, RenderDiffEngine] = {
            pane: RenderDiffEngine(height=height, width=width) for pane in PANES
        }
        self.active_pane = TRANSCRIPT
        self.exited = False

        self._ticket: Optional[_StreamTicket] = None
        # token counts of the last completed answer, when the provider reports them
        self.last_usage: Optional[Dict[str, int]] = None
        self._stream_ids = itertools.count(1)
        self._needs_render = True
        self.pending_saves = 0
        self._handlers: Dict[type, Callable[[Any], None]] = {
            InputSubmitted: self._on_input,
            DeltaArrived: self._on_delta,
            StreamCompleted: self._on_complete,
            StreamFailed: self._on_failed,
            CancelRequested: self._on_cancel,
            CancelAcknowledged: self._on_cancel_ack,
            PromptAugmented: self._on_augmented,
            AugmentFailed: self._on_augment_failed,
            Resized: self._on_resize,
            Scrolled: self._on_scroll,
            PaneSwitched: self._on_pane_switch,
            Tick: self._on_tick,
            SaveCompleted: self._on_saved,
            LogRecorded: self._on_log,
            ModelPersisted: self._on_model_persisted,
            ExitRequested: self._on_exit,
            TerminalLost: self._on_terminal_lost,
        }

        for message in self.conversation.messages:
            self.transcript.add_message(message)

    # ── Event loop ─────────────────────────────────────

    @property
    def busy(self) -> bool:
        return self.state is not ControllerState.IDLE

    @property
    def stream_id(self) -> Optional[int]:
        return self._ticket.id if self._ticket is not None else None

    def submit(self, line: str) -> None:
        self.events.put(InputSubmitted(line))

    def dispatch(self, event: Any) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            log.debug("Ignoring unknown event %r", event)
            return
        handler(event)

    def process_pending(self) -> bool:
        """Dispatch everything queued, then render once. Returns False if the queue was empty."""
        return self.process(self.events.drain())

    def process(self, events: List[Any]) -> bool:
        for event in events:
            self.dispatch(event)
        if events and not self.exited:
            self.refresh()
        return bool(events)

    def process_all(self, max_rounds: int = 10000) -> None:
        """Process until the queue stays empty (events may queue more events)."""
        for _ in range(max_rounds):
            if not self.process_pending():
                return

    def refresh(self) -> None:
        if self._needs_render:
            self.render()
        self.surface.set_status(self.status())

    def render(self) -> FrameUpdate:
        pane = self.active_pane
        frame = (self.transcript if pane == TRANSCRIPT else self.log_pane).render()
        update = self.engines[pane].update(frame.lines, frame.stable, frame.settled)
        self._needs_render = False
        self.surface.apply(pane, update)
        return update

    def status(self) -> StatusInfo:
        ticket = self._ticket
        elapsed = time.monotonic() - ticket.started_at if ticket and self.busy else 0.0
        return StatusInfo(
            model=self.config.active_model,
            state=self.state,
            pane=self.active_pane,
            raw=self.transcript.raw,
            scroll_locked=self.engines[self.active_pane].viewport.scroll_locked,
            elapsed=elapsed,
            chars=len(ticket.assistant.text) if ticket else 0,
            tokens=(self.last_usage or {}).get("total_tokens", 0),
        )

    # ── Notices ────────────────────────────────────────

    def notice(self, text: str, level: str = "info") -> None:
        """Transcript-only line; the conversation is left untouched."""
        self.transcript.add_notice(text, level)
        self._needs_render = True

    # ── Input ──────────────────────────────────────────

    def _on_input(self, event: InputSubmitted) -> None:
        action = interpret(event.line)
        if action is None:
            return
        log.debug("Input → %s", type(action).__name__)

        if isinstance(action, SendMessage):
            self._send(action)
        elif isinstance(action, SwitchModel):
            self._switch_model(action.name)
        elif isinstance(action, ListModels):
            self.notice(self._models_text())
        elif isinstance(action, SetLogLevel):
            set_level(action.level)
            self.config.log_level = action.level
            self.notice(f"Log level set to {action.level}.")
        elif isinstance(action, Save):
            self._save(action.scope)
        elif isinstance(action, ToggleRaw):
            self.transcript.raw = not self.transcript.raw
            self.notice(f"Raw view {'on' if self.transcript.raw else 'off'}.")
        elif isinstance(action, Exit):
            self._exit()
        elif isinstance(action, ShowHelp):
            self.notice(commands.HELP_TEXT)
        elif isinstance(action, CommandNotice):
            self.notice(action.text, "warning" if action.unknown else "info")

    def _models_text(self) -> str:
        lines = ["Models:"]
        for info in self.config.list_models():
            marker = "*" if info["active"] else " "
            lines.append(f" {marker} {info['name']:<12} {info['model']}")
        return "\n".join(lines)

    def _switch_model(self, name: str) -> None:
        if not self.config.set_active_model(name):
            available = ", ".join(self.config.models) or "(none)"
            self.notice(f"Unknown model: {name}. Available: {available}", "warning")
            return
        preset = self.config.get_active_preset()
        log.info("Switched model to %s (%s)", name, preset.model)
        self.notice(f"Switched → {name} ({preset.model})")
        self.runner.submit(self._persist_model_job, name)

    def _persist_model_job(self, name: str) -> None:
        try:
            path = self.config.persist_active_model(name)
        except ConfigError as exc:
            self.events.put(ModelPersisted(name, error=str(exc)))
            return
        self.events.put(ModelPersisted(name, path=str(path) if path else None))

    def _on_model_persisted(self, event: ModelPersisted) -> None:
        if event.error:
            log.warning("Model switched but not persisted: %s", event.error)
            self.notice(f"Could not save the model choice: {event.error}", "warning")
        elif event.path:
            log.debug("Active model %s written to %s", event.name, event.path)

    # ── Streaming ──────────────────────────────────────

    def _send(self, action: SendMessage) -> None:
        if self.busy:
            self.notice("Still responding. Press Ctrl+C to stop the current answer.", "warning")
            return

        user = self.conversation.add(Message.of(Role.USER, action.text))
        request = build_request(self.conversation, self.config)
        assistant = self.conversation.add(Message.streaming())
        self.transcript.add_message(user)
        self.transcript.add_message(assistant)

        ticket = _StreamTicket(next(self._stream_ids), user, assistant)
        self._ticket = ticket
        self.state = ControllerState.AWAITING_RESPONSE
        self._needs_render = True
        log.info("Request %d → %s", ticket.id, request.model)
        self.runner.submit(self._stream_worker, ticket, request, action.text if action.web else None)

    def _stream_worker(self, ticket: _StreamTicket, request: ChatRequest,
                       web_text: Optional[str]) -> None:
        """Runs on a worker thread; talks to the controller only through events."""
        post = self.events.put
        try:
            if web_text is not None:
                try:
                    augmented = self.augmenter.augment(web_text, self.conversation.id)
                except WebSearchError as exc:
                    post(AugmentFailed(ticket.id, str(exc)))
                else:
                    request.messages[-1] = {"role": Role.USER.value, "content": augmented}
                    post(PromptAugmented(ticket.id, augmented))
            if ticket.cancelled:
                return

            handle = self.source.open(request)
            ticket.handle = handle
            while not ticket.cancelled:
                delta = self.source.next(handle)
                if ticket.cancelled:
                    break
                if isinstance(delta, TextDelta):
                    post(DeltaArrived(ticket.id, delta.text))
                elif isinstance(delta, StreamComplete):
                    post(StreamCompleted(ticket.id, handle.usage))
                    return
                else:
                    if delta.kind != "cancelled":
                        post(StreamFailed(ticket.id, delta.kind, delta.message))
                    return
            self.source.cancel(handle)
        except StreamError as exc:
            post(StreamFailed(ticket.id, exc.kind, exc.message))
        except Exception as exc:
            log.exception("Stream worker crashed")
            post(StreamFailed(ticket.id, "api", f"{type(exc).__name__}: {exc}"))

    def _current(self, stream_id: int) -> Optional[_StreamTicket]:
        ticket = self._ticket
        if ticket is None or ticket.id != stream_id or ticket.cancelled:
            return None
        return ticket

    def _on_delta(self, event: DeltaArrived) -> None:
        ticket = self._current(event.stream_id)
        if ticket is None:
            return
        ticket.assistant.append(event.text)
        self.conversation.touch()
        self.state = ControllerState.STREAMING
        self._needs_render = True

    def _on_complete(self, event: StreamCompleted) -> None:
        ticket = self._current(event.stream_id)
        if ticket is None:
            return
        if event.usage:
            self.last_usage = event.usage
        self._finish(ticket, MessageStatus.COMPLETE)
        log.info("Request %d complete (%d chars, %s)", ticket.id, len(ticket.assistant.text),
                 _usage_text(event.usage))

    def _on_failed(self, event: StreamFailed) -> None:
        ticket = self._current(event.stream_id)
        if ticket is None:
            return
        log.error("Request %d failed: %s", ticket.id, event.message)
        self._finish(ticket, MessageStatus.ERRORED, error=event.message)
        notice = Message.of(Role.ASSISTANT, f"Error ({event.kind}): {event.message}", notice=True)
        self.conversation.add(notice)
        self.transcript.add_message(notice)

    def _on_cancel(self, event: CancelRequested) -> None:
        ticket = self._ticket
        if ticket is None or self.state not in (ControllerState.AWAITING_RESPONSE,
                                                ControllerState.STREAMING):
            return
        self.state = ControllerState.CANCELLING
        self._abandon(ticket)
        self.events.put(CancelAcknowledged(ticket.id))

    def _on_cancel_ack(self, event: CancelAcknowledged) -> None:
        ticket = self._ticket
        if ticket is None or ticket.id != event.stream_id or self.state is not ControllerState.CANCELLING:
            return
        self._finish(ticket, MessageStatus.CANCELLED)
        log.info("Request %d cancelled after %d chars", ticket.id, len(ticket.assistant.text))

    def _abandon(self, ticket: _StreamTicket) -> None:
        ticket.cancelled = True
        if ticket.handle is not None:
            self.source.cancel(ticket.handle)

    def _finish(self, ticket: _StreamTicket, status: MessageStatus, error: Optional[str] = None) -> None:
        try:
            ticket.assistant.finalize(status, error)
        except MessageFinalizedError:
            log.debug("Request %d already finalized", ticket.id)
        self.conversation.touch()
        ticket.cancelled = True
        self._ticket = None
        self.state = ControllerState.IDLE
        self._needs_render = True

    def _on_augmented(self, event: PromptAugmented) -> None:
        ticket = self._current(event.stream_id)
        if ticket is None:
            return
        ticket.user.augmented = event.text
        self.conversation.touch()
        self.notice("Web search results added to the prompt.")

    def _on_augment_failed(self, event: AugmentFailed) -> None:
        if self._current(event.stream_id) is None:
            return
        log.warning("Web search failed: %s", event.message)
        self.notice(f"Web search failed ({event.message}); sending without results.", "warning")

    # ── Persistence ────────────────────────────────────

    def _save(self, scope: str) -> None:
        snapshot = self.conversation.snapshot()
        revision = self.conversation.revision
        self.pending_saves += 1
        self.runner.submit(self._save_job, snapshot, scope, revision)

    def _save_job(self, snapshot: Conversation, scope: str, revision: int) -> None:
        result = self.store.save(snapshot, scope)
        if result.ok and scope == "all":
            # the full transcript on disk supersedes any recovery snapshot
            self.store.discard_recovery(snapshot.id)
        self.events.put(SaveCompleted(result, scope, revision))

    def _on_saved(self, event: SaveCompleted) -> None:
        result = event.result
        self.pending_saves = max(0, self.pending_saves - 1)
        if not result.ok:
            self.notice(f"Save failed: {result.error}", "error")
            return
        # Only a full save that is still current makes the conversation clean.
        if event.scope == "all" and event.revision == self.conversation.revision:
            self.conversation.dirty = False
        self.notice(f"Saved → {result.path}")

    # ── View ───────────────────────────────────────────

    def _on_resize(self, event: Resized) -> None:
        self.renderer.resize(event.width)
        for engine in self.engines.values():
            engine.resize(event.width, event.height)
        self._needs_render = True

    def _on_scroll(self, event: Scrolled) -> None:
        engine = self.engines[self.active_pane]
        if event.to_end:
            engine.scroll_to_end()
        elif event.pages:
            engine.page(event.pages)
        else:
            engine.scroll(event.delta)
        self._needs_render = True

    def _on_pane_switch(self, event: PaneSwitched) -> None:
        pane = event.pane
        if pane is None:
            pane = PANES[(PANES.index(self.active_pane) + 1) % len(PANES)]
        if pane not in PANES or pane == self.active_pane:
            return
        self.active_pane = pane
        self.engines[pane].invalidate()
        self._needs_render = True

    def _on_tick(self, event: Tick) -> None:
        # status (elapsed time) is refreshed after every drain
        pass

    def _on_log(self, event: LogRecorded) -> None:
        self.log_pane.add(event.level, event.text)
        if self.active_pane == LOG:
            self._needs_render = True

    # ── Exit ───────────────────────────────────────────

    def _on_exit(self, event: ExitRequested) -> None:
        self._exit()

    def _on_terminal_lost(self, event: TerminalLost) -> None:
        log.error("Terminal lost%s", f": {event.reason}" if event.reason else "")
        self._exit()

    def _exit(self) -> None:
        if self.exited:
            return
        ticket = self._ticket
        if ticket is not None:
            self._abandon(ticket)
            self._finish(ticket, MessageStatus.CANCELLED)
        if self.conversation.dirty:
            try:
                self.store.write_recovery(self.conversation)
            except PersistenceError as exc:
                log.error("Recovery snapshot failed: %s", exc)
        self.exited = True
        self.surface.request_exit()
        self.runner.shutdown(wait=False)

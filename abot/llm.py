"""Delta stream sources: the model API seen as a lazy sequence of text deltas."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterator, List, Optional, Union

import litellm

from .errors import StreamError
from .models import Conversation

litellm.suppress_debug_info = True

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class StreamComplete:
    pass


@dataclass(frozen=True)
class StreamFailure:
    kind: str      # auth | connection | rate_limit | timeout | api | cancelled
    message: str


StreamDelta = Union[TextDelta, StreamComplete, StreamFailure]


@dataclass
class ChatRequest:
    messages: List[Dict[str, str]]
    # litellm.completion keyword arguments (model, temperature, api_base, ...)
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def model(self) -> str:
        return str(self.options.get("model", ""))


@dataclass
class StreamHandle:
    request: ChatRequest
    iterator: Optional[Iterator[Any]] = None
    pending: Deque[str] = field(default_factory=deque)
    cancelled: threading.Event = field(default_factory=threading.Event)
    finished: bool = False
    usage: Optional[Dict[str, int]] = None


def build_context(conversation: Conversation) -> List[Dict[str, str]]:
    """Messages sent to the model: system prompt first, notices and empty turns left out.

    A user turn that went through web augmentation is sent as its augmented text.
    """
    context = []
    for message in conversation.messages:
        if message.notice or message.is_streaming:
            continue
        content = message.augmented if message.augmented else message.text
        if not content:
            continue
        context.append({"role": message.role.value, "content": content})
    return context


class DeltaStreamSource(ABC):
    """``open`` starts a request, ``next`` pulls one delta, ``cancel`` abandons it."""

    @abstractmethod
    def open(self, request: ChatRequest) -> StreamHandle:
        """Start the request. Raises StreamError if it cannot be started."""

    @abstractmethod
    def next(self, handle: StreamHandle) -> StreamDelta:
        """Block until the next delta, completion or failure."""

    def cancel(self, handle: StreamHandle) -> None:
        handle.cancelled.set()
        close = getattr(handle.iterator, "close", None)
        if close is not None:
            try:
                close()
            except Exception as exc:
                log.debug("Closing stream failed: %s", exc)


def classify_error(exc: BaseException) -> StreamError:
    """Map a litellm/openai exception onto a StreamError kind."""
    exceptions = litellm.exceptions
    if isinstance(exc, exceptions.AuthenticationError):
        kind, message = "auth", "Auth failed. Check API key."
    elif isinstance(exc, exceptions.RateLimitError):
        kind, message = "rate_limit", "Rate limited by the provider."
    elif isinstance(exc, exceptions.Timeout):
        kind, message = "timeout", "Request timed out."
    elif isinstance(exc, exceptions.APIConnectionError):
        kind, message = "connection", "Cannot connect to the model API."
    else:
        kind, message = "api", "LLM error."
    return StreamError(kind, f"{message} {type(exc).__name__}: {exc}")


class LiteLLMStreamSource(DeltaStreamSource):
    """Streams ``litellm.completion`` output chunk by chunk."""

    def open(self, request: ChatRequest) -> StreamHandle:
        kwargs: Dict[str, Any] = {"messages": request.messages}
        kwargs.update({k: v for k, v in request.options.items() if v is not None})
        stream = bool(kwargs.get("stream", True))
        handle = StreamHandle(request=request)
        log.debug("Opening %s stream=%s with %d messages",
                  request.model, stream, len(request.messages))
        try:
            response = litellm.completion(**kwargs)
        except Exception as exc:
            raise classify_error(exc) from exc

        if stream:
            handle.iterator = iter(response)
        else:
            content = response.choices[0].message.content or ""
            if content:
                handle.pending.append(content)
            handle.usage = _usage(getattr(response, "usage", None))
        return handle

    def next(self, handle: StreamHandle) -> StreamDelta:
        if handle.cancelled.is_set():
            return StreamFailure("cancelled", "Stream cancelled.")
        if handle.pending:
            return TextDelta(handle.pending.popleft())
        if handle.iterator is None or handle.finished:
            handle.finished = True
            return StreamComplete()

        while True:
            try:
                chunk = next(handle.iterator)
            except StopIteration:
                handle.finished = True
                return StreamComplete()
            except Exception as exc:
                handle.finished = True
                if handle.cancelled.is_set():
                    return StreamFailure("cancelled", "Stream cancelled.")
                error = classify_error(exc)
                log.warning("Stream interrupted: %s", error)
                return StreamFailure(error.kind, error.message)

            # usage-only final chunk (some providers)
            usage = _usage(getattr(chunk, "usage", None))
            if usage:
                handle.usage = usage
            if not getattr(chunk, "choices", None):
                continue
            content = getattr(chunk.choices[0].delta, "content", None)
            if content:
                return TextDelta(content)


def _usage(usage: Any) -> Optional[Dict[str, int]]:
    if not usage:
        return None
    return {
        "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
        "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
        "total_tokens": getattr(usage, "total_tokens", 0) or 0,
    }


def build_request(conversation: Conversation, config) -> ChatRequest:
    """Context plus the active profile's completion options."""
    preset = config.get_active_preset()
    return ChatRequest(messages=build_context(conversation),
                       options=preset.get_llm_kwargs(config))


__all__ = [
    "TextDelta", "StreamComplete", "StreamFailure", "StreamDelta", "ChatRequest",
    "StreamHandle", "DeltaStreamSource", "LiteLLMStreamSource", "build_context",
    "build_request", "classify_error",
]

"""Conversation data model: messages and their streaming lifecycle."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import MessageFinalizedError


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERRORED = "errored"
    CANCELLED = "cancelled"


@dataclass
class Message:
    """One chat turn.

    Text is kept as the ordered list of received segments. While the message
    is ``STREAMING`` segments may only be appended; any other status freezes it.
    """

    role: Role
    segments: List[str] = field(default_factory=list)
    status: MessageStatus = MessageStatus.COMPLETE
    created_at: float = field(default_factory=time.time)
    error: Optional[str] = None
    # Prompt actually sent to the model when @web augmentation rewrote it.
    augmented: Optional[str] = None
    # Inline notices (errors) are shown in the transcript but never sent to the model.
    notice: bool = False
    _text_cache: Optional[str] = field(default=None, repr=False, compare=False)

    @classmethod
    def streaming(cls, role: Role = Role.ASSISTANT) -> "Message":
        return cls(role=role, status=MessageStatus.STREAMING)

    @classmethod
    def of(cls, role: Role, text: str, notice: bool = False) -> "Message":
        return cls(role=role, segments=[text] if text else [], notice=notice)

    @property
    def text(self) -> str:
        if self._text_cache is None:
            self._text_cache = "".join(self.segments)
        return self._text_cache

    @property
    def is_streaming(self) -> bool:
        return self.status is MessageStatus.STREAMING

    def append(self, text: str) -> None:
        if not self.is_streaming:
            raise MessageFinalizedError(self.status.value)
        if not text:
            return
        self.segments.append(text)
        if self._text_cache is not None:
            self._text_cache += text

    def finalize(self, status: MessageStatus = MessageStatus.COMPLETE,
                 error: Optional[str] = None) -> None:
        if not self.is_streaming:
            raise MessageFinalizedError(self.status.value)
        if status is MessageStatus.STREAMING:
            raise ValueError("finalize() needs a terminal status")
        self.status = status
        self.error = error

    def copy(self) -> "Message":
        return Message(role=self.role, segments=list(self.segments), status=self.status,
                       created_at=self.created_at, error=self.error,
                       augmented=self.augmented, notice=self.notice)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role.value,
            "content": self.text,
            "status": self.status.value,
            "created_at": self.created_at,
        }
        if self.error:
            data["error"] = self.error
        if self.augmented:
            data["augmented"] = self.augmented
        if self.notice:
            data["notice"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        status = MessageStatus(data.get("status", "complete"))
        if status is MessageStatus.STREAMING:
            # A snapshot taken mid-stream is restored as an interrupted turn.
            status = MessageStatus.CANCELLED
        content = str(data.get("content", ""))
        return cls(
            role=Role(data["role"]),
            segments=[content] if content else [],
            status=status,
            created_at=float(data.get("created_at", time.time())),
            error=data.get("error"),
            augmented=data.get("augmented"),
            notice=bool(data.get("notice", False)),
        )


@dataclass
class Conversation:
    """Chronological list of messages. Only the session controller mutates it."""

    name: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    messages: List[Message] = field(default_factory=list)
    dirty: bool = False
    revision: int = 0

    @classmethod
    def start(cls, system_prompt: str = "", name: str = "") -> "Conversation":
        conversation = cls(name=name)
        if system_prompt:
            conversation.messages.append(Message.of(Role.SYSTEM, system_prompt))
        return conversation

    def add(self, message: Message) -> Message:
        self.messages.append(message)
        self.touch()
        return message

    def touch(self) -> None:
        self.dirty = True
        self.revision += 1

    def last(self, role: Optional[Role] = None) -> Optional[Message]:
        for message in reversed(self.messages):
            if role is None or message.role is role:
                return message
        return None

    @property
    def chat_messages(self) -> List[Message]:
        """Messages worth saving: everything but the system prompt and notices."""
        return [m for m in self.messages if m.role is not Role.SYSTEM and not m.notice]

    def snapshot(self) -> "Conversation":
        return Conversation(name=self.name, id=self.id,
                            messages=[m.copy() for m in self.messages],
                            dirty=self.dirty, revision=self.revision)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            name=str(data.get("name", "")),
            id=str(data.get("id") or uuid.uuid4().hex[:12]),
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
        )

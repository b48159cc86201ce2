"""Session persistence: markdown exports and crash recovery snapshots."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import CONFIG_DIR
from .errors import PersistenceError
from .models import Conversation, Role

SESSIONS_DIR = CONFIG_DIR / "sessions"
RECOVERY_DIR = CONFIG_DIR / "recovery"

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveResult:
    ok: bool
    path: Optional[str] = None
    error: Optional[str] = None


def _safe_name(name: str) -> str:
    return "".join(c if c.isalnum() or c in "-_" else "_" for c in name) or "session"


def _atomic_write(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` so readers never see a partial file."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
    except OSError as exc:
        raise PersistenceError(str(path), str(exc)) from exc


def format_last_exchange(conversation: Conversation) -> Optional[str]:
    """``User:...`` / ``Assistant:...`` for the latest exchange, or None."""
    messages = conversation.chat_messages
    assistant_index = None
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].role is Role.ASSISTANT and messages[index].text:
            assistant_index = index
            break
    if assistant_index is None:
        return None
    user = next((m for m in reversed(messages[:assistant_index]) if m.role is Role.USER), None)
    user_text = user.text if user is not None else ""
    return f"User:{user_text}\nAssistant:{messages[assistant_index].text}\n"


def format_transcript(conversation: Conversation) -> Optional[str]:
    """Every saved message as ``role:content`` blocks, or None when empty."""
    messages = conversation.chat_messages
    if not messages:
        return None
    return "\n\n".join(f"{m.role.value}:{m.text}" for m in messages) + "\n"


class SessionStore:
    """Writes conversations under ``~/.abot/sessions/<conversation-id>/``."""

    def __init__(self, sessions_dir: Optional[Path] = None, recovery_dir: Optional[Path] = None):
        self.sessions_dir = Path(sessions_dir or SESSIONS_DIR)
        self.recovery_dir = Path(recovery_dir or RECOVERY_DIR)

    def conversation_dir(self, conversation: Conversation) -> Path:
        return self.sessions_dir / _safe_name(conversation.id)

    def save(self, conversation: Conversation, scope: str = "last") -> SaveResult:
        """Persist ``conversation``; failures come back as a result, never raised."""
        if scope == "all":
            text = format_transcript(conversation)
            filename = "saveall.md"
        else:
            text = format_last_exchange(conversation)
            filename = f"interaction_{time.strftime('%Y%m%d_%H%M%S')}.md"
        if text is None:
            return SaveResult(False, error="Nothing to save yet.")

        path = self.conversation_dir(conversation) / filename
        try:
            _atomic_write(path, text)
        except PersistenceError as exc:
            log.error("%s", exc)
            return SaveResult(False, str(path), str(exc))
        log.info("Saved %s", path)
        return SaveResult(True, str(path))

    # ── Recovery ───────────────────────────────────────

    def recovery_path(self, conversation_id: str) -> Path:
        return self.recovery_dir / f"{_safe_name(conversation_id)}.json"

    def write_recovery(self, conversation: Conversation) -> Path:
        """Flush the whole conversation as JSON. Raises PersistenceError."""
        path = self.recovery_path(conversation.id)
        data = conversation.to_dict()
        data["saved_at"] = time.strftime("%Y-%m-%d %H:%M:%S")
        _atomic_write(path, json.dumps(data, ensure_ascii=False, indent=2))
        log.info("Recovery snapshot written to %s", path)
        return path

    def list_recoveries(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Recent recovery snapshots, newest first."""
        if not self.recovery_dir.exists():
            return []
        found = []
        for filepath in sorted(self.recovery_dir.glob("*.json"),
                               key=lambda p: p.stat().st_mtime,
                               reverse=True)[:limit]:
            try:
                with open(filepath, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, OSError):
                continue
            found.append({
                "id": data.get("id", filepath.stem),
                "name": data.get("name", ""),
                "saved_at": data.get("saved_at", "unknown"),
                "messages": len(data.get("messages", [])),
            })
        return found

    def load_recovery(self, conversation_id: str) -> Optional[Conversation]:
        path = self.recovery_path(conversation_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                conversation = Conversation.from_dict(json.load(f))
        except (json.JSONDecodeError, OSError, KeyError, ValueError) as exc:
            log.warning("Cannot read recovery snapshot %s: %s", path, exc)
            return None
        # nothing in a snapshot has been saved yet
        conversation.touch()
        return conversation

    def discard_recovery(self, conversation_id: str) -> bool:
        path = self.recovery_path(conversation_id)
        if path.exists():
            path.unlink()
            return True
        return False

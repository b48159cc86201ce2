"""Slash-command interpretation.

``interpret(line)`` classifies one input line into a ``CommandAction``.
It never raises: malformed or unknown commands become ``CommandNotice``
actions that the controller shows in the transcript.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

from .config import LOG_LEVEL_NAMES

COMMAND_SIGIL = "/"
WEB_MARKER = "@web"

_WEB_RE = re.compile(r"(?<!\S)@web\b", re.IGNORECASE)


@dataclass(frozen=True)
class SlashCommandSpec:
    command: str
    usage: str
    description: str
    keywords: tuple[str, ...] = ()


SLASH_COMMAND_SPECS: tuple[SlashCommandSpec, ...] = (
    SlashCommandSpec("/help", "/help", "Show help", ("docs", "usage", "commands")),
    SlashCommandSpec("/model", "/model [name]", "List or switch model profiles", ("llm", "provider", "preset")),
    SlashCommandSpec("/log", "/log <level>", "Set log level", ("debug", "info", "warning", "error")),
    SlashCommandSpec("/save", "/save", "Save the last exchange", ("session", "history")),
    SlashCommandSpec("/saveall", "/saveall", "Save the whole conversation", ("session", "history")),
    SlashCommandSpec("/raw", "/raw", "Toggle raw markdown view", ("source", "plain")),
    SlashCommandSpec("/exit", "/exit", "Quit", ("quit", "bye")),
)

SLASH_COMMANDS = [spec.command for spec in SLASH_COMMAND_SPECS]
_SLASH_ALIASES = {"/quit": "/exit", "/q": "/exit", "/h": "/help", "/?": "/help"}


# ── Actions ──────────────────────────────────────────

@dataclass(frozen=True)
class SwitchModel:
    name: str


@dataclass(frozen=True)
class SetLogLevel:
    level: str


@dataclass(frozen=True)
class Save:
    scope: str  # "last" | "all"


@dataclass(frozen=True)
class ToggleRaw:
    pass


@dataclass(frozen=True)
class Exit:
    pass


@dataclass(frozen=True)
class SendMessage:
    text: str
    web: bool = False


@dataclass(frozen=True)
class ShowHelp:
    pass


@dataclass(frozen=True)
class ListModels:
    pass


@dataclass(frozen=True)
class CommandNotice:
    text: str
    unknown: bool = False


CommandAction = Union[SwitchModel, SetLogLevel, Save, ToggleRaw, Exit, SendMessage,
                      ShowHelp, ListModels, CommandNotice]


def _resolve_command(raw_cmd: str) -> Optional[str]:
    """Exact name, alias, then unambiguous prefix."""
    cmd = raw_cmd.lower()
    if cmd in SLASH_COMMANDS:
        return cmd
    if cmd in _SLASH_ALIASES:
        return _SLASH_ALIASES[cmd]
    matches = [candidate for candidate in SLASH_COMMANDS if candidate.startswith(cmd)]
    if len(matches) == 1:
        return matches[0]
    return None


def _usage(command: str) -> CommandNotice:
    spec = next(s for s in SLASH_COMMAND_SPECS if s.command == command)
    return CommandNotice(f"Usage: {spec.usage}")


def interpret(line: str) -> Optional[CommandAction]:
    """Classify one line of user input. Blank input yields ``None``."""
    stripped = line.strip()
    if not stripped:
        return None

    if not stripped.startswith(COMMAND_SIGIL):
        return SendMessage(line, web=bool(_WEB_RE.search(line)))

    # The command sigil wins: @web inside a command line is just an argument.
    parts = stripped.split()
    raw_cmd, args = parts[0], parts[1:]
    if raw_cmd == COMMAND_SIGIL:
        return ShowHelp()

    cmd = _resolve_command(raw_cmd)
    if cmd is None:
        return CommandNotice(f"Unknown command: {raw_cmd}. Try /help", unknown=True)

    if cmd == "/model":
        if not args:
            return ListModels()
        if len(args) > 1:
            return _usage(cmd)
        return SwitchModel(args[0])

    if cmd == "/log":
        if len(args) != 1 or args[0].lower() not in LOG_LEVEL_NAMES:
            return CommandNotice(f"Usage: /log <{'|'.join(LOG_LEVEL_NAMES)}>")
        return SetLogLevel(args[0].lower())

    if args:
        return _usage(cmd)
    if cmd == "/save":
        return Save("last")
    if cmd == "/saveall":
        return Save("all")
    if cmd == "/raw":
        return ToggleRaw()
    if cmd == "/exit":
        return Exit()
    return ShowHelp()


def build_help_text() -> str:
    usage_width = max(len(spec.usage) for spec in SLASH_COMMAND_SPECS)
    lines = ["Commands:"]
    for spec in SLASH_COMMAND_SPECS:
        lines.append(f"  {spec.usage:<{usage_width}}  {spec.description}")
    lines.extend([
        "",
        "Tips:",
        f"  {WEB_MARKER:<{usage_width}}  Anywhere in a message: search the web first",
        f"  {'Ctrl+C':<{usage_width}}  Stop the current response",
        f"  {'Ctrl+D ×2':<{usage_width}}  Exit safely",
    ])
    return "\n".join(lines)


HELP_TEXT = build_help_text()

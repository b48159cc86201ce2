"""Shared fixtures for abot tests."""

import io
import os
from concurrent.futures import Future
from typing import Callable, List, Optional, Sequence

import pytest
import yaml
from rich.console import Console

from abot import config as config_module
from abot import logger as logger_module
from abot import main as main_module
from abot import repl as repl_module
from abot import session as session_module
from abot import web_search as web_search_module
from abot.config import Config
from abot.controller import SessionController
from abot.events import EventQueue
from abot.llm import (
    ChatRequest, DeltaStreamSource, StreamComplete, StreamFailure, StreamHandle, TextDelta,
)
from abot.render import MarkdownRenderer, SyntaxHighlighter, TerminalCapabilities, apply_ops
from abot.session import SessionStore
from abot.themes import set_theme


@pytest.fixture(autouse=True)
def abot_home(tmp_path, monkeypatch):
    """Point every ~/.abot path at a temporary directory."""
    home = tmp_path / "abot_home"
    monkeypatch.setattr(config_module, "CONFIG_DIR", home)
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / "config.yml")
    monkeypatch.setattr(config_module, "HISTORY_FILE", home / "history.txt")
    monkeypatch.setattr(main_module, "CONFIG_FILE", home / "config.yml")
    monkeypatch.setattr(main_module, "HISTORY_FILE", home / "history.txt")
    monkeypatch.setattr(repl_module, "HISTORY_FILE", home / "history.txt")
    monkeypatch.setattr(session_module, "SESSIONS_DIR", home / "sessions")
    monkeypatch.setattr(session_module, "RECOVERY_DIR", home / "recovery")
    monkeypatch.setattr(logger_module, "DEFAULT_LOG_FILE", home / "logs" / "abot.log")
    monkeypatch.setattr(web_search_module, "CACHE_DIR", home / "cache")
    for var in ("ABOT_MODEL", "ABOT_LOG_LEVEL", "ABOT_THEME", "NO_COLOR"):
        monkeypatch.delenv(var, raising=False)
    set_theme("github_dark")
    return home


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    project = tmp_path / "project"
    project.mkdir()
    os.chdir(project)
    yield project
    os.chdir(orig)


@pytest.fixture
def sample_config_data():
    """Minimal .abot.yml data dict."""
    return {
        "active-model": "local",
        "temperature": 0.2,
        "max-tokens": 512,
        "stream": True,
        "initial-prompt": "You are a test assistant.",
        "theme": "github_dark",
        "log-level": "info",
        "web-result-limit": 5,
        "models": {
            "local": {
                "provider": "local",
                "model": "openai/model",
                "description": "Local test model",
                "api-base": "http://localhost:8080/v1",
                "api-key": "not-needed",
            },
            "gpt-4o": {
                "provider": "openai",
                "model": "openai/gpt-4o",
                "api-key": "sk-test",
            },
        },
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a project config to tmp_dir and return its Path."""
    path = tmp_dir / ".abot.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def config(config_yaml_file, tmp_dir):
    return Config.load(str(tmp_dir))


# ── Rendering ──────────────────────────────────────────

@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=80, color_system="truecolor",
                   force_terminal=True, legacy_windows=False)


@pytest.fixture
def renderer(console):
    return MarkdownRenderer(console, SyntaxHighlighter("monokai"),
                            capabilities=TerminalCapabilities(), width=80)


class RecordingSurface:
    """RenderSurface that mirrors the frames it is sent."""

    def __init__(self):
        self.frames = {}
        self.updates = []
        self.statuses = []
        self.exit_requested = False

    def apply(self, pane, update):
        lines = [] if update.full else self.frames.setdefault(pane, [])
        self.frames[pane] = apply_ops(lines, update.ops)
        self.updates.append((pane, update))

    def set_status(self, status):
        self.statuses.append(status)

    def request_exit(self):
        self.exit_requested = True

    def text(self, pane="transcript"):
        return "\n".join("".join(value for value, _ in line) for line in self.frames.get(pane, []))


@pytest.fixture
def surface():
    return RecordingSurface()


# ── Streaming ──────────────────────────────────────────

class InlineRunner:
    """Executor stand-in that runs jobs immediately on the calling thread."""

    def __init__(self):
        self.jobs = 0

    def submit(self, fn, *args, **kwargs):
        self.jobs += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait=True, cancel_futures=False):
        pass


class ScriptedSource(DeltaStreamSource):
    """Plays back a fixed list of deltas for every request."""

    def __init__(self, deltas: Sequence = (), on_next: Optional[Callable[[int], None]] = None,
                 open_error: Optional[Exception] = None, usage: Optional[dict] = None):
        self.deltas = list(deltas)
        self.usage = usage
        self.on_next = on_next
        self.open_error = open_error
        self.requests: List[ChatRequest] = []
        self.cancelled: List[StreamHandle] = []
        self.calls = 0

    def open(self, request):
        self.requests.append(request)
        if self.open_error is not None:
            raise self.open_error
        self.calls = 0
        handle = StreamHandle(request=request)
        handle.usage = self.usage
        handle.iterator = iter(self.deltas)
        return handle

    def next(self, handle):
        index = self.calls
        self.calls += 1
        if self.on_next is not None:
            self.on_next(index)
        if handle.cancelled.is_set():
            return StreamFailure("cancelled", "Stream cancelled.")
        return next(handle.iterator, StreamComplete())

    def cancel(self, handle):
        self.cancelled.append(handle)
        super().cancel(handle)


def text_deltas(*chunks):
    return [TextDelta(chunk) for chunk in chunks]


@pytest.fixture
def runner():
    return InlineRunner()


@pytest.fixture
def make_controller(config, surface, renderer, runner, abot_home):
    """Factory: a controller wired to a scripted source and inline runner."""

    def factory(source, **kwargs):
        kwargs.setdefault("events", EventQueue())
        kwargs.setdefault("store", SessionStore(abot_home / "sessions", abot_home / "recovery"))
        kwargs.setdefault("renderer", renderer)
        kwargs.setdefault("runner", runner)
        return SessionController(config, source, surface, width=80, height=20, **kwargs)

    return factory

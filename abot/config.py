"""
Configuration: model profiles plus chat defaults.

Loading priority:
  1. Working directory .abot.yml
  2. Global ~/.abot/config.yml (created with defaults on first run)

Environment overrides: ABOT_MODEL, ABOT_LOG_LEVEL, ABOT_THEME.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError
from .themes import DEFAULT_THEME, canonical_name

CONFIG_DIR = Path.home() / ".abot"
CONFIG_FILE = CONFIG_DIR / "config.yml"
HISTORY_FILE = CONFIG_DIR / "history.txt"
PROJECT_CONFIG_NAME = ".abot.yml"
# preset built from a raw model id on the command line; never persisted
CLI_PRESET = "_cli"

DEFAULT_INITIAL_PROMPT = "You are a helpful AI assistant."
LOG_LEVEL_NAMES = ("debug", "info", "warning", "error")

log = logging.getLogger(__name__)


@dataclass
class ModelPreset:
    name: str
    provider: str
    model: str
    api_base: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None
    # None means "use the chat-wide default"
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: Optional[bool] = None
    description: str = ""

    def resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        env_map = {
            "openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY",
            "deepseek": "DEEPSEEK_API_KEY", "gemini": "GEMINI_API_KEY",
        }
        env_var = env_map.get(self.provider)
        return os.environ.get(env_var) if env_var else None

    def get_llm_kwargs(self, defaults: "Config") -> dict:
        """Return litellm.completion kwargs for this profile."""
        return {
            "model": self.model,
            "temperature": self.temperature if self.temperature is not None else defaults.temperature,
            "max_tokens": self.max_tokens if self.max_tokens is not None else defaults.max_tokens,
            "stream": self.stream if self.stream is not None else defaults.stream,
            "api_base": self.api_base,
            "api_key": self.resolve_api_key(),
        }


@dataclass
class Config:
    active_model: str = "llamacpp"
    models: Dict[str, ModelPreset] = field(default_factory=dict)
    temperature: float = 0.7
    max_tokens: int = 2000
    stream: bool = True
    initial_prompt: str = DEFAULT_INITIAL_PROMPT
    theme: str = "github_dark"
    syntax_theme: str = "monokai"
    log_level: str = "info"
    web_result_limit: int = 10
    tick_interval: float = 0.25
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        config_loaded = False
        unreadable = False
        for candidate in [project_path / PROJECT_CONFIG_NAME, CONFIG_FILE]:
            if not candidate.exists():
                continue
            try:
                config._load_yaml(candidate)
            except ConfigError as exc:
                # Leave the broken file alone; the next candidate or defaults apply.
                log.warning("%s; skipping", exc)
                unreadable = True
                continue
            config._config_source = str(candidate)
            config_loaded = True
            break

        if not config_loaded:
            config._add_default_presets()
            config._config_source = str(CONFIG_FILE)
            if not unreadable:
                config.save()

        config._apply_env()
        return config

    @classmethod
    def get_default_presets(cls) -> Dict[str, ModelPreset]:
        return {
            "deepseek": ModelPreset(
                name="deepseek", provider="deepseek",
                model="deepseek/deepseek-chat",
                api_key_env="DEEPSEEK_API_KEY",
                description="DeepSeek chat",
            ),
            "gpt-4o": ModelPreset(
                name="gpt-4o", provider="openai",
                model="openai/gpt-4o",
                api_key_env="OPENAI_API_KEY",
                description="OpenAI GPT-4o",
            ),
            "llamacpp": ModelPreset(
                name="llamacpp", provider="local",
                model="openai/phi4",
                api_base="http://localhost:8080/v1", api_key="not-needed",
                description="llama.cpp server on :8080",
            ),
            "ollama": ModelPreset(
                name="ollama", provider="ollama",
                model="ollama_chat/mistral",
                api_base="http://localhost:11434",
                description="Ollama on :11434",
            ),
        }

    def _add_default_presets(self):
        self.models = self.get_default_presets()
        if self.active_model not in self.models:
            self.active_model = "llamacpp"

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(str(filepath), str(exc)) from exc
        if not isinstance(data, dict):
            raise ConfigError(str(filepath), "top level must be a mapping")

        self.active_model = str(data.get("active-model", "llamacpp"))
        self.temperature = self._coerce_float(data.get("temperature", 0.7), default=0.7,
                                              min_value=0.0, max_value=2.0)
        self.max_tokens = self._coerce_positive_int(data.get("max-tokens", 2000), default=2000,
                                                    min_value=1, max_value=1_000_000)
        self.stream = self._coerce_bool(data.get("stream", True), default=True)
        self.initial_prompt = str(data.get("initial-prompt") or DEFAULT_INITIAL_PROMPT)
        self.theme = self._normalize_theme(data.get("theme", "github_dark"))
        self.syntax_theme = str(data.get("syntax-theme") or "monokai")
        self.log_level = self._normalize_log_level(data.get("log-level", "info"))
        self.web_result_limit = self._coerce_positive_int(
            data.get("web-result-limit", 10), default=10, min_value=1, max_value=50
        )
        self.tick_interval = self._coerce_float(
            data.get("tick-interval", 0.25), default=0.25, min_value=0.05, max_value=5.0
        )

        self.models = {}
        raw_models = data.get("models") or {}
        if not isinstance(raw_models, dict):
            raw_models = {}
        for name, m in raw_models.items():
            if not isinstance(m, dict):
                continue
            self.models[str(name)] = ModelPreset(
                name=str(name), provider=m.get("provider", "openai"),
                model=m.get("model", "openai/gpt-4o-mini"),
                api_base=m.get("api-base"), api_key=m.get("api-key"),
                api_key_env=m.get("api-key-env"),
                temperature=m.get("temperature"),
                max_tokens=m.get("max-tokens"),
                stream=m.get("stream"),
                description=m.get("description", ""),
            )
        if not self.models:
            self._add_default_presets()

    def _apply_env(self):
        env_map = {
            "ABOT_MODEL": ("active_model", str),
            "ABOT_LOG_LEVEL": ("log_level", self._normalize_log_level),
            "ABOT_THEME": ("theme", self._normalize_theme),
        }
        for env_var, (attr, conv) in env_map.items():
            val = os.environ.get(env_var)
            if val:
                setattr(self, attr, conv(val))

    def save(self, filepath: Optional[str] = None):
        target = Path(filepath) if filepath else (
            Path(self._config_source) if self._config_source else CONFIG_FILE
        )
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(str(target), str(exc)) from exc

        data: Dict[str, Any] = {
            "active-model": self.active_model,
            "temperature": self.temperature,
            "max-tokens": self.max_tokens,
            "stream": self.stream,
            "initial-prompt": self.initial_prompt,
            "theme": self.theme,
            "syntax-theme": self.syntax_theme,
            "log-level": self.log_level,
            "web-result-limit": self.web_result_limit,
            "tick-interval": self.tick_interval,
            "models": {},
        }
        for name, m in self.models.items():
            entry: Dict[str, Any] = {"provider": m.provider, "model": m.model,
                                     "description": m.description}
            for key, value in (("api-base", m.api_base), ("api-key", m.api_key),
                               ("api-key-env", m.api_key_env), ("temperature", m.temperature),
                               ("max-tokens", m.max_tokens), ("stream", m.stream)):
                if value is not None:
                    entry[key] = value
            data["models"][name] = entry

        try:
            with open(target, "w") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        except OSError as exc:
            raise ConfigError(str(target), str(exc)) from exc
        self._config_source = str(target)

    def get_active_preset(self) -> ModelPreset:
        if self.active_model in self.models:
            return self.models[self.active_model]
        if self.models:
            return next(iter(self.models.values()))
        return ModelPreset(name="default", provider="local", model="openai/model",
                           api_base="http://localhost:8080/v1", api_key="not-needed")

    def set_active_model(self, name: str) -> bool:
        """Switch presets for this process. See ``persist_active_model`` for the file."""
        if name not in self.models:
            return False
        self.active_model = name
        return True

    def persist_active_model(self, name: str) -> Optional[Path]:
        """Record ``name`` as ``active-model`` in the config file.

        Only that key is rewritten; the rest of the file stays as the user
        wrote it, so command-line presets, keys and environment overrides
        never reach the disk. Returns the file written, or None for a
        command-line preset. Raises ConfigError.
        """
        if name == CLI_PRESET:
            return None
        target = Path(self._config_source) if self._config_source else CONFIG_FILE
        data: Dict[str, Any] = {}
        if target.exists():
            try:
                with open(target) as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as exc:
                raise ConfigError(str(target), str(exc)) from exc
            if not isinstance(data, dict):
                raise ConfigError(str(target), "top level must be a mapping")
        data["active-model"] = name
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "w") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        except OSError as exc:
            raise ConfigError(str(target), str(exc)) from exc
        return target

    def list_models(self) -> List[Dict]:
        return [
            {"name": n, "active": n == self.active_model, "provider": m.provider,
             "model": m.model, "api_base": m.api_base or "-",
             "key": bool(m.resolve_api_key()), "desc": m.description}
            for n, m in self.models.items()
        ]

    def summary(self) -> dict:
        p = self.get_active_preset()
        return {
            "Active model": f"{self.active_model} → {p.model}",
            "Provider": p.provider,
            "API base": p.api_base or "(provider default)",
            "API key": "set" if p.resolve_api_key() else "not set",
            "Temperature": p.temperature if p.temperature is not None else self.temperature,
            "Max tokens": p.max_tokens if p.max_tokens is not None else self.max_tokens,
            "Theme": self.theme,
            "Syntax theme": self.syntax_theme,
            "Log level": self.log_level,
            "Config": self._config_source or "(defaults)",
        }

    @staticmethod
    def _normalize_theme(value) -> str:
        return canonical_name(value) or DEFAULT_THEME

    @staticmethod
    def _normalize_log_level(value) -> str:
        level = str(value or "info").strip().lower()
        if level not in LOG_LEVEL_NAMES:
            return "info"
        return level

    @staticmethod
    def _coerce_bool(value, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            if text in ("1", "true", "yes", "on"):
                return True
            if text in ("0", "false", "no", "off"):
                return False
        if isinstance(value, (int, float)):
            return bool(value)
        return default

    @staticmethod
    def _coerce_positive_int(value, default: int, min_value: int = 1, max_value: int = 100000) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return default
        if parsed < min_value:
            return min_value
        if parsed > max_value:
            return max_value
        return parsed

    @staticmethod
    def _coerce_float(value, default: float, min_value: float, max_value: float) -> float:
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return default
        return max(min_value, min(max_value, parsed))

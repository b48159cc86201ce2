"""Color themes for the transcript, status bar and prompt.

One theme is active per process. ``NO_COLOR`` in the environment always
wins over the configured theme.
"""

import os
from typing import Dict, Optional, Tuple, Type

from .base import Theme
from .github_dark import GithubDarkTheme
from .github_light import GithubLightTheme
from .high_contrast import HighContrastTheme
from .no_color import NoColorTheme

DEFAULT_THEME = "github_dark"

_THEMES: Dict[str, Type[Theme]] = {
    "github_dark": GithubDarkTheme,
    "github_light": GithubLightTheme,
    "high_contrast": HighContrastTheme,
    "no_color": NoColorTheme,
}
_ALIASES = {"dark": "github_dark", "light": "github_light", "none": "no_color"}

THEME_NAMES: Tuple[str, ...] = tuple(_THEMES)

_active: Optional[Theme] = None


def canonical_name(name: str) -> Optional[str]:
    """Registry name for ``name`` or an alias of it; None if unknown."""
    key = str(name or "").strip().lower()
    key = _ALIASES.get(key, key)
    return key if key in _THEMES else None


def resolve_theme(name: str) -> Optional[Theme]:
    """A fresh theme instance, or None for an unknown name."""
    if os.environ.get("NO_COLOR"):
        return NoColorTheme()
    key = canonical_name(name)
    return _THEMES[key]() if key else None


def get_theme() -> Theme:
    global _active
    if _active is None:
        _active = resolve_theme(DEFAULT_THEME)
    return _active


def set_theme(name: str) -> bool:
    """Activate ``name``. Unknown names leave the current theme in place."""
    global _active
    theme = resolve_theme(name)
    if theme is None:
        return False
    _active = theme
    return True


def list_themes() -> Tuple[str, ...]:
    return THEME_NAMES


__all__ = ["DEFAULT_THEME", "THEME_NAMES", "Theme", "canonical_name", "get_theme",
           "list_themes", "resolve_theme", "set_theme"]

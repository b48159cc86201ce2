"""Full-screen Textual front-end."""

from .app import AbotApp

__all__ = ["AbotApp"]

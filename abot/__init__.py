"""abot: terminal chat client with live markdown rendering."""

__version__ = "0.3.0"

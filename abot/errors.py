"""Structured error types for abot."""


class AbotError(Exception):
    """Base error for all abot operations."""
    pass


class ConfigError(AbotError):
    """Raised when a configuration file cannot be read or written."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class StreamError(AbotError):
    """Raised when the model stream cannot be opened or breaks mid-way."""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}")


class PersistenceError(AbotError):
    """Raised when a conversation cannot be written to disk."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Cannot write {path}: {message}")


class WebSearchError(AbotError):
    """Raised when @web augmentation cannot fetch search results."""
    pass


class MessageFinalizedError(AbotError):
    """Raised when text is appended to a message that is no longer streaming."""

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Message is {status}; it can no longer be extended")


class TerminalLostError(AbotError):
    """The terminal went away. The only error that ends a session."""
    pass

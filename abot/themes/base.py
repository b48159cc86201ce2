"""Base theme interface."""

from abc import ABC, abstractmethod


class Theme(ABC):
    """Base theme class: UI palette plus markdown styles.

    Values are rich style strings; an empty string means "no style".
    """

    # Core palette
    ACCENT: str
    DIM: str
    TEXT: str
    MUTED: str

    # Semantic colors
    SUCCESS: str
    WARN: str
    ERROR: str
    INFO: str

    # Prompt / transcript labels
    PROMPT: str
    USER_LABEL: str
    ASSISTANT_LABEL: str
    NOTICE: str

    # Markdown
    HEADINGS: tuple          # levels 1-4; deeper levels reuse the last one
    BOLD: str
    ITALIC: str
    BULLET: str
    INLINE_CODE: str
    CODE_BLOCK: str          # background of fenced code
    CODE_LABEL: str
    QUOTE_MARK: str
    LINK: str
    RULE: str

    @abstractmethod
    def __init__(self):
        """Initialize theme colors."""
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__.replace("Theme", "").lower()

    def heading(self, level: int) -> str:
        return self.HEADINGS[min(max(level, 1), len(self.HEADINGS)) - 1]

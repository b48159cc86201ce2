"""No Color theme: plain text output respecting NO_COLOR environment variable."""

from .base import Theme


class NoColorTheme(Theme):
    """No colors at all; emphasis still uses plain attributes."""

    def __init__(self):
        # All colors are empty: no ANSI codes
        self.ACCENT = ""
        self.DIM = ""
        self.TEXT = ""
        self.MUTED = ""

        self.SUCCESS = ""
        self.WARN = ""
        self.ERROR = ""
        self.INFO = ""

        self.PROMPT = ""
        self.USER_LABEL = "bold"
        self.ASSISTANT_LABEL = "bold"
        self.NOTICE = "italic"

        self.HEADINGS = ("bold underline", "bold", "bold", "bold")
        self.BOLD = "bold"
        self.ITALIC = "italic"
        self.BULLET = ""
        self.INLINE_CODE = ""
        self.CODE_BLOCK = ""
        self.CODE_LABEL = ""
        self.QUOTE_MARK = ""
        self.LINK = "underline"
        self.RULE = ""

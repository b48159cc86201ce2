"""High contrast theme: for users with visual impairments."""

from .base import Theme


class HighContrastTheme(Theme):
    """Bright, distinct colors on a dark background."""

    def __init__(self):
        self.ACCENT = "#00BFFF"
        self.DIM = "#AAAAAA"          # still readable
        self.TEXT = "#FFFFFF"
        self.MUTED = "#CCCCCC"

        self.SUCCESS = "#00FF00"
        self.WARN = "#FFFF00"
        self.ERROR = "#FF0000"
        self.INFO = "#00BFFF"

        self.PROMPT = "#00BFFF"
        self.USER_LABEL = "bold #00BFFF"
        self.ASSISTANT_LABEL = "bold #FFFFFF"
        self.NOTICE = "bold #FFFF00"

        self.HEADINGS = ("bold #FF0000", "bold #FFFF00", "bold #00FF00", "bold #00BFFF")
        self.BOLD = "bold #FFFFFF"
        self.ITALIC = "italic #FFFFFF"
        self.BULLET = "bold #FFFF00"
        self.INLINE_CODE = "bold #FFFFFF on #333333"
        self.CODE_BLOCK = "on #000000"
        self.CODE_LABEL = "#CCCCCC"
        self.QUOTE_MARK = "#FFFFFF"
        self.LINK = "underline #00BFFF"
        self.RULE = "#FFFFFF"

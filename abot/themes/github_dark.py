"""GitHub Dark theme: the default dark color scheme."""

from .base import Theme


class GithubDarkTheme(Theme):
    """GitHub Dark palette with warm markdown accents."""

    def __init__(self):
        self.ACCENT = "#7FA6D9"
        self.DIM = "#6E7681"
        self.TEXT = "#E6EDF3"
        self.MUTED = "#8B949E"

        self.SUCCESS = "#57DB9C"
        self.WARN = "#E3B341"
        self.ERROR = "#F85149"
        self.INFO = "#58A6FF"

        self.PROMPT = "#B7C6D8"
        self.USER_LABEL = "bold #58A6FF"
        self.ASSISTANT_LABEL = "bold cyan"
        self.NOTICE = "italic #E3B341"

        self.HEADINGS = ("bold red", "bold yellow", "bold green", "bold blue")
        self.BOLD = "bold rgb(255,187,0)"
        self.ITALIC = "italic rgb(215,255,135)"
        self.BULLET = "bold rgb(255,187,0)"
        self.INLINE_CODE = "rgb(187,187,187) on rgb(45,45,45)"
        self.CODE_BLOCK = "on rgb(39,40,34)"
        self.CODE_LABEL = "dim"
        self.QUOTE_MARK = "rgb(150,150,150)"
        self.LINK = "underline #58A6FF"
        self.RULE = "#484F58"

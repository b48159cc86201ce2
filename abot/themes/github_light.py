"""GitHub Light theme: light color scheme."""

from .base import Theme


class GithubLightTheme(Theme):
    """GitHub Light palette."""

    def __init__(self):
        self.ACCENT = "#0969DA"
        self.DIM = "#57606A"
        self.TEXT = "#24292F"
        self.MUTED = "#656D76"

        self.SUCCESS = "#1A7F37"
        self.WARN = "#9A6700"
        self.ERROR = "#CF222E"
        self.INFO = "#0969DA"

        self.PROMPT = "#0969DA"
        self.USER_LABEL = "bold #0969DA"
        self.ASSISTANT_LABEL = "bold blue"
        self.NOTICE = "italic #9A6700"

        self.HEADINGS = ("bold #CF222E", "bold #9A6700", "bold #1A7F37", "bold #0969DA")
        self.BOLD = "bold #953800"
        self.ITALIC = "italic #6639BA"
        self.BULLET = "bold #953800"
        self.INLINE_CODE = "#24292F on #EAEEF2"
        self.CODE_BLOCK = "on #F6F8FA"
        self.CODE_LABEL = "#57606A"
        self.QUOTE_MARK = "#8C959F"
        self.LINK = "underline #0969DA"
        self.RULE = "#D8DEE4"

"""Incremental syntax highlighting for fenced code blocks.

Pygments ``RegexLexer`` subclasses are driven one line at a time: each line
is tokenized starting from the state stack the previous line ended in, and
the result is cached under (language, start state, line text). When a
streaming code block grows, only the changed last line misses the cache.

Constructs that a lexer matches with a single regex spanning several lines
(rare; most lexers model strings and comments as states) are highlighted
per line instead. Lexers that are not plain ``RegexLexer``s are tokenized
as a whole block.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pygments.lexer import Lexer, RegexLexer
from pygments.lexers import get_lexer_by_name
from pygments.token import Error, Whitespace, _TokenType
from pygments.util import ClassNotFound
from rich.style import Style
from rich.syntax import Syntax
from rich.text import Text

log = logging.getLogger(__name__)

StateStack = Tuple[str, ...]
Segments = Tuple[Tuple[str, Style], ...]

_ROOT: StateStack = ("root",)


def _transition(stack: List[str], new_state) -> None:
    """Apply a processed RegexLexer state transition to ``stack``."""
    if isinstance(new_state, tuple):
        for state in new_state:
            if state == "#pop":
                if len(stack) > 1:
                    stack.pop()
            elif state == "#push":
                stack.append(stack[-1])
            else:
                stack.append(state)
    elif isinstance(new_state, int):
        # pop, but keep at least one state on the stack
        if abs(new_state) >= len(stack):
            del stack[1:]
        else:
            del stack[new_state:]
    elif new_state == "#push":
        stack.append(stack[-1])


def _line_lexable(lexer: Lexer) -> bool:
    return (isinstance(lexer, RegexLexer)
            and type(lexer).get_tokens_unprocessed is RegexLexer.get_tokens_unprocessed)


class SyntaxHighlighter:
    """Code lines + language tag → one ``rich.text.Text`` per line."""

    def __init__(self, theme: str = "monokai", cache_size: int = 8192):
        self.theme_name = theme
        self._theme = Syntax.get_theme(theme)
        self._lexers: Dict[str, Optional[Lexer]] = {}
        self._cache: "OrderedDict[tuple, tuple]" = OrderedDict()
        self._cache_size = cache_size
        # Number of lines actually run through a lexer; lets tests observe caching.
        self.lexed_lines = 0

    @property
    def background(self) -> Style:
        return self._theme.get_background_style()

    def lexer_for(self, language: str) -> Optional[Lexer]:
        key = (language or "").strip().lower()
        if not key:
            return None
        if key not in self._lexers:
            try:
                self._lexers[key] = get_lexer_by_name(key)
            except ClassNotFound:
                log.debug("No lexer for %r; rendering as plain code", key)
                self._lexers[key] = None
        return self._lexers[key]

    def highlight(self, lines: Sequence[str], language: str = "") -> List[Text]:
        return self.highlight_from(lines, language)[0]

    def highlight_from(self, lines: Sequence[str], language: str = "",
                       state: Optional[StateStack] = None) -> Tuple[List[Text], Optional[StateStack]]:
        """Highlight ``lines`` as if preceded by code that ended in ``state``.

        Returns the lines and the state after the last one. The state is None
        when the language can only be highlighted as a whole block.
        """
        lexer = self.lexer_for(language)
        if lexer is None:
            return [Text(line) for line in lines], _ROOT
        key = language.strip().lower()
        if not _line_lexable(lexer):
            return [self._text(segments) for segments in self._block(lexer, key, lines)], None

        result = []
        state = state or _ROOT
        for line in lines:
            segments, state = self._line(lexer, key, state, line)
            result.append(self._text(segments))
        return result, state

    # ── Caching ────────────────────────────────────────

    def _lookup(self, key):
        hit = self._cache.get(key)
        if hit is not None:
            self._cache.move_to_end(key)
        return hit

    def _store(self, key, value) -> None:
        self._cache[key] = value
        if len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)

    @staticmethod
    def _text(segments: Segments) -> Text:
        text = Text(no_wrap=True, end="")
        for value, style in segments:
            text.append(value, style)
        return text

    # ── Tokenizing ─────────────────────────────────────

    def _line(self, lexer: RegexLexer, language: str, stack: StateStack,
              line: str) -> Tuple[Segments, StateStack]:
        key = ("line", language, stack, line)
        hit = self._lookup(key)
        if hit is not None:
            return hit
        self.lexed_lines += 1
        tokens, end_stack = self._tokenize_line(lexer, stack, line + "\n")
        value = (self._segments(tokens, strip_newline=True), end_stack)
        self._store(key, value)
        return value

    @staticmethod
    def _tokenize_line(lexer: RegexLexer, stack: StateStack, text: str):
        tokendefs = lexer._tokens
        statestack = list(stack)
        statetokens = tokendefs[statestack[-1]]
        tokens = []
        pos = 0
        end = len(text)
        while pos < end:
            for rexmatch, action, new_state in statetokens:
                m = rexmatch(text, pos)
                if not m:
                    continue
                if action is not None:
                    if type(action) is _TokenType:
                        tokens.append((action, m.group()))
                    else:
                        tokens.extend((ttype, value) for _, ttype, value in action(lexer, m))
                pos = m.end()
                if new_state is not None:
                    _transition(statestack, new_state)
                    statetokens = tokendefs[statestack[-1]]
                break
            else:
                if text[pos] == "\n":
                    # at EOL with no rule matching, the lexer falls back to root
                    statestack = ["root"]
                    statetokens = tokendefs["root"]
                    tokens.append((Whitespace, "\n"))
                else:
                    tokens.append((Error, text[pos]))
                pos += 1
        return tokens, tuple(statestack)

    def _segments(self, tokens: Iterable[Tuple[_TokenType, str]],
                  strip_newline: bool = False) -> Segments:
        parts = [(value, ttype) for ttype, value in tokens if value]
        if strip_newline and parts and parts[-1][0].endswith("\n"):
            value, ttype = parts[-1]
            parts[-1] = (value[:-1], ttype)
        return tuple((value, self._theme.get_style_for_token(ttype))
                     for value, ttype in parts if value)

    def _block(self, lexer: Lexer, language: str, lines: Sequence[str]) -> List[Segments]:
        source = "\n".join(lines)
        key = ("block", language, source)
        hit = self._lookup(key)
        if hit is not None:
            return hit
        self.lexed_lines += len(lines)
        out: List[List[tuple]] = [[]]
        for _, ttype, value in lexer.get_tokens_unprocessed(source + "\n"):
            for index, part in enumerate(value.split("\n")):
                if index:
                    out.append([])
                if part:
                    out[-1].append((ttype, part))
        value = [self._segments(tokens) for tokens in out[:len(lines)]]
        value += [()] * (len(lines) - len(value))
        self._store(key, value)
        return value

"""Tests for line-incremental syntax highlighting."""

from abot.render import SyntaxHighlighter


def _plain(texts):
    return [text.plain for text in texts]


class TestHighlight:

    def test_plain_text_preserved(self):
        highlighter = SyntaxHighlighter("monokai")
        lines = ["def add(a, b):", "    return a + b"]
        assert _plain(highlighter.highlight(lines, "python")) == lines

    def test_keywords_are_styled(self):
        highlighter = SyntaxHighlighter("monokai")
        (text,) = highlighter.highlight(["def add(a, b):"], "python")
        styles = [span.style for span in text.spans if text.plain[span.start:span.end] == "def"]
        assert styles and styles[0].color is not None

    def test_unknown_language_is_plain(self):
        highlighter = SyntaxHighlighter("monokai")
        texts = highlighter.highlight(["whatever"], "no-such-language")
        assert _plain(texts) == ["whatever"]
        assert not texts[0].spans
        assert highlighter.lexer_for("no-such-language") is None

    def test_no_language_is_plain(self):
        highlighter = SyntaxHighlighter()
        assert _plain(highlighter.highlight(["x = 1"], "")) == ["x = 1"]
        assert highlighter.lexed_lines == 0

    def test_growing_block_lexes_only_new_lines(self):
        highlighter = SyntaxHighlighter("monokai")
        lines = ["import os", "x = 1", "y = 2"]
        highlighter.highlight(lines, "python")
        assert highlighter.lexed_lines == 3

        highlighter.highlight(lines + ["z = 3"], "python")
        assert highlighter.lexed_lines == 4

        highlighter.highlight(lines + ["z = 3"], "python")
        assert highlighter.lexed_lines == 4

    def test_state_carries_across_lines(self):
        highlighter = SyntaxHighlighter("monokai")
        lines = ['x = """start', "inside the string", 'end"""', "y = 1"]
        texts = highlighter.highlight(lines, "python")
        assert _plain(texts) == lines
        inside, after = texts[1], texts[3]
        string_style = inside.spans[0].style
        assert all(span.style == string_style for span in inside.spans)
        assert any(span.style != string_style for span in after.spans)

    def test_language_tag_is_case_insensitive(self):
        highlighter = SyntaxHighlighter("monokai")
        assert highlighter.lexer_for("Python") is highlighter.lexer_for("python")

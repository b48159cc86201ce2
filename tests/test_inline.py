"""Tests for inline span parsing."""

import time

from abot.markdown import Span, parse_inline


class TestInlineStyles:

    def test_plain_text(self):
        assert parse_inline("just words") == (Span("just words"),)

    def test_empty(self):
        assert parse_inline("") == ()

    def test_bold(self):
        assert parse_inline("a **b** c") == (Span("a "), Span("b", bold=True), Span(" c"))

    def test_italic_with_underscores(self):
        assert parse_inline("_it_") == (Span("it", italic=True),)

    def test_bold_italic(self):
        assert parse_inline("***both***") == (Span("both", bold=True, italic=True),)

    def test_strikethrough(self):
        assert parse_inline("~~gone~~") == (Span("gone", strike=True),)

    def test_code_span_keeps_markers_literal(self):
        assert parse_inline("run `a *b*` now") == (
            Span("run "), Span("a *b*", code=True), Span(" now"))

    def test_link(self):
        assert parse_inline("[site](http://example.com)") == (
            Span("site", link="http://example.com"),)

    def test_escaped_asterisks(self):
        assert parse_inline(r"\*not\*") == (Span("*not*"),)

    def test_intraword_underscores_are_literal(self):
        assert parse_inline("snake_case_name") == (Span("snake_case_name"),)

    def test_unmatched_opener_is_literal_when_final(self):
        assert parse_inline("Hello **wor") == (Span("Hello **wor"),)


class TestProvisional:
    """Text that is still streaming."""

    def test_unclosed_bold_is_withheld(self):
        assert parse_inline("Hello **wor", final=False) == (Span("Hello "),)

    def test_trailing_marker_is_withheld(self):
        assert parse_inline("x *", final=False) == (Span("x "),)

    def test_unclosed_code_span_is_withheld(self):
        assert parse_inline("x `abc", final=False) == (Span("x "),)

    def test_spaced_asterisk_is_not_an_opener(self):
        assert parse_inline("2 * 3", final=False) == (Span("2 * 3"),)

    def test_closed_bold_renders_immediately(self):
        assert parse_inline("Hello **world**", final=False) == (
            Span("Hello "), Span("world", bold=True))

    def test_half_link_is_withheld(self):
        assert parse_inline("see [docs](http://exa", final=False) == (Span("see "),)

    def test_bracket_without_link_is_shown(self):
        assert parse_inline("a [b] c", final=False) == (Span("a [b] c"),)


class TestManyOpeners:
    """Runs of unclosed markers, as in lists of glob patterns."""

    def test_unclosed_openers_final(self):
        text = "*x " * 200
        started = time.perf_counter()
        spans = parse_inline(text, final=True)
        elapsed = time.perf_counter() - started
        assert spans == (Span(text),)
        assert elapsed < 0.25

    def test_unclosed_openers_provisional(self):
        text = "Ignore: " + "*x " * 200
        started = time.perf_counter()
        spans = parse_inline(text, final=False)
        elapsed = time.perf_counter() - started
        assert spans == (Span("Ignore: "),)
        assert elapsed < 0.25

    def test_glob_patterns_stay_literal(self):
        text = " ".join(f"*.ext{i}" for i in range(40))
        assert parse_inline(text, final=True) == (Span(text),)

    def test_deep_nesting_still_resolves(self):
        assert parse_inline("*a _b *c* b_ a*") == (Span("a b c b a", italic=True),)

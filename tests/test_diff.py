"""Tests for the render diff engine."""

import pytest
from rich.style import Style

from abot.render import OpKind, RenderDiffEngine, apply_ops
from abot.render.diff import diff_lines

BOLD = Style(bold=True)


def _lines(*texts):
    return [((text, None),) if text else () for text in texts]


class TestDiffLines:

    def test_identical_frames_produce_no_ops(self):
        frame = _lines("a", "b", "c")
        assert diff_lines(frame, list(frame)) == ()

    def test_append(self):
        ops = diff_lines(_lines("a"), _lines("a", "b"))
        assert len(ops) == 1
        assert ops[0].kind is OpKind.INSERT
        assert ops[0].index == 1

    def test_change_only_the_last_line(self):
        ops = diff_lines(_lines("a", "b", "c"), _lines("a", "b", "cd"))
        assert len(ops) == 1
        assert ops[0].kind is OpKind.REPLACE
        assert (ops[0].index, ops[0].count) == (2, 1)

    def test_style_change_is_a_change(self):
        old = [(("word", None),)]
        new = [(("word", BOLD),)]
        assert diff_lines(old, new)

    def test_delete(self):
        ops = diff_lines(_lines("a", "b", "c"), _lines("a", "c"))
        assert [op.kind for op in ops] == [OpKind.DELETE]

    @pytest.mark.parametrize("old, new", [
        (("a", "b", "c", "d"), ("a", "x", "c", "y", "d")),
        (("a", "b"), ()),
        ((), ("a", "", "b")),
        (("a", "b", "c"), ("c", "b", "a")),
        (("x",) * 5, ("x",) * 3 + ("y",)),
    ])
    def test_applying_ops_yields_candidate(self, old, new):
        old_lines, new_lines = _lines(*old), _lines(*new)
        ops = diff_lines(old_lines, new_lines)
        assert apply_ops(list(old_lines), ops) == new_lines

    def test_stable_prefix_is_not_compared(self):
        ops = diff_lines(_lines("a", "b", "c"), _lines("a", "b", "d"), stable=2)
        assert ops[0].index == 2


class TestEngine:

    def test_first_update_is_full(self):
        engine = RenderDiffEngine(height=5)
        update = engine.update(_lines("a", "b"))
        assert update.full
        assert engine.lines == _lines("a", "b")

    def test_unchanged_candidate_is_not_an_update(self):
        engine = RenderDiffEngine(height=5)
        engine.update(_lines("a", "b"))
        count = engine.updates
        update = engine.update(_lines("a", "b"))
        assert not update.changed
        assert engine.updates == count

    def test_frame_equals_candidate_after_each_update(self):
        engine = RenderDiffEngine(height=3)
        for frame in (("a",), ("a", "b"), ("a", "bb", "c"), ("z",), ()):
            engine.update(_lines(*frame))
            assert engine.lines == _lines(*frame)

    def test_follows_new_content(self):
        engine = RenderDiffEngine(height=3)
        update = engine.update(_lines(*"abcdef"))
        assert update.top == 3
        assert [line[0][0] for line in engine.visible()] == ["d", "e", "f"]

    def test_scroll_lock_keeps_position(self):
        engine = RenderDiffEngine(height=3)
        engine.update(_lines(*"abcdef"))
        engine.scroll(-2)
        assert engine.viewport.scroll_locked
        assert engine.viewport.top == 1

        engine.update(_lines(*"abcdefgh"))
        assert engine.viewport.top == 1

        engine.scroll_to_end()
        assert not engine.viewport.scroll_locked
        assert engine.viewport.top == 5

    def test_scrolling_to_bottom_unlocks(self):
        engine = RenderDiffEngine(height=3)
        engine.update(_lines(*"abcdef"))
        engine.scroll(-1)
        engine.scroll(1)
        assert not engine.viewport.scroll_locked

    def test_scroll_is_clamped(self):
        engine = RenderDiffEngine(height=3)
        engine.update(_lines(*"abcdef"))
        assert engine.scroll(-100) == 0
        assert engine.scroll(100) == 3

    def test_page(self):
        engine = RenderDiffEngine(height=4)
        engine.update(_lines(*"abcdefghij"))
        assert engine.page(-1) == 3

    def test_resize_forces_full_update(self):
        engine = RenderDiffEngine(height=3)
        engine.update(_lines("a", "b"))
        engine.resize(40, 10)
        update = engine.update(_lines("a", "b"))
        assert update.full
        assert engine.viewport.height == 10

    def test_shrinking_frame_clamps_locked_view(self):
        engine = RenderDiffEngine(height=2)
        engine.update(_lines(*"abcdef"))
        engine.scroll_to(3)
        engine.update(_lines(*"abc"))
        assert engine.viewport.top == 1

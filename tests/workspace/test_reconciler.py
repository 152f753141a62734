"""Tests for apply-time span reconciliation."""

import pytest

from workspace.document_buffer import DocumentBuffer
from workspace.errors import ApplyConflict
from workspace.file_tree import FileKind, FileNode, FileTree
from workspace.policy import EditPolicy
from workspace.reconciler import EXACT, GLOBAL, SPACING, WINDOW, CapturedSpan, Reconciler


def _buffer(content: str) -> DocumentBuffer:
    return DocumentBuffer(FileTree([FileNode(id="doc", name="document.tex", content=content)]))


class TestWorkedExample:
    def test_shifted_span_found_in_window(self):
        buf = _buffer("A B C D")
        span = CapturedSpan(2, 5, "B C")
        buf.replace_range(0, 0, "Z ")
        assert buf.content == "Z A B C D"

        result = Reconciler().apply(buf, span, "X Y")
        assert buf.content == "Z A X Y D"
        assert result.strategy == WINDOW
        assert (result.start, result.end) == (4, 7)
        assert buf.cursor == 7


class TestTiers:
    def test_exact_position(self):
        found = Reconciler().locate("A B C D", CapturedSpan(2, 5, "B C"))
        assert (found.start, found.end, found.strategy) == (2, 5, EXACT)

    def test_window_is_bounded(self):
        policy = EditPolicy(reconcile_window=10)
        content = "x" * 50 + "needle text"
        found = Reconciler(policy).locate(content, CapturedSpan(0, 11, "needle text"))
        assert found.strategy == GLOBAL
        assert found.start == 50

    def test_window_prefers_nearby_occurrence(self):
        content = "target" + " " * 3000 + "padding target"
        span = CapturedSpan(3000, 3006, "target")
        found = Reconciler().locate(content, span)
        assert found.strategy == WINDOW
        assert found.start == content.rindex("target")

    def test_stale_offsets_beyond_end(self):
        found = Reconciler().locate("short B C", CapturedSpan(40, 43, "B C"))
        assert found.strategy == WINDOW
        assert found.start == 6

    def test_spacing_tier(self):
        content = "We propose  a\nnovel method for parsing."
        span = CapturedSpan(0, 28, "We propose a novel method")
        found = Reconciler().locate(content, span)
        assert found.strategy == SPACING
        assert content[found.start:found.end] == "We propose  a\nnovel method"

    def test_empty_original_never_matches(self):
        assert Reconciler().locate("abc", CapturedSpan(0, 0, "")) is None


class TestConflict:
    def test_missing_text_leaves_buffer_unchanged(self):
        buf = _buffer("A B C D")
        buf.set_cursor(3)
        span = CapturedSpan(2, 5, "B C")
        buf.edit("totally different")
        buf.set_cursor(4)

        with pytest.raises(ApplyConflict) as exc:
            Reconciler().apply(buf, span, "X Y")
        assert buf.content == "totally different"
        assert buf.cursor == 4
        assert exc.value.original_text == "B C"

    def test_binary_active_file_conflicts(self):
        tree = FileTree([
            FileNode(id="doc", name="document.tex", content="A B C D"),
            FileNode(id="img", name="a.png", kind=FileKind.BINARY, blob=b"x"),
        ])
        buf = DocumentBuffer(tree)
        buf.set_active("img")
        with pytest.raises(ApplyConflict):
            Reconciler().apply(buf, CapturedSpan(2, 5, "B C"), "X")
        assert tree.get("doc").content == "A B C D"

    def test_identical_replacement_is_applied(self):
        buf = _buffer("A B C D")
        result = Reconciler().apply(buf, CapturedSpan(2, 5, "B C"), "B C")
        assert buf.content == "A B C D"
        assert result.strategy == EXACT

"""Tests for the active document buffer."""

from workspace import events
from workspace.document_buffer import DocumentBuffer, Selection
from workspace.file_tree import DEFAULT_DOCUMENT_NAME, FileKind, FileNode, FileTree
from workspace.history import HistorySnapshot


class TestActiveFile:
    def test_initial_active_is_first_document(self, buffer):
        assert buffer.active_file_id == "doc"
        assert buffer.content == "A B C D"
        assert buffer.file_name == "document.tex"

    def test_set_active_resets_cursor_and_selection(self, buffer):
        buffer.set_cursor(3)
        buffer.set_selection(0, 1)
        buffer.set_active("intro")
        assert buffer.cursor == 0
        assert buffer.selection is None
        assert buffer.content == "Intro text."

    def test_set_active_folder_resolves_to_document(self, buffer):
        buffer.set_active("sections")
        assert buffer.active_file_id == "doc"
        buffer.set_active("ghost")
        assert buffer.active_file_id == "doc"
        buffer.edit("edited")
        assert buffer.active_file_id == "doc"

    def test_binary_active_has_no_text(self, buffer):
        buffer.set_active("fig")
        assert not buffer.is_text_active
        assert buffer.content == ""
        assert not buffer.edit("text")

    def test_deleting_active_file_resyncs(self, buffer):
        buffer.set_active("intro")
        buffer.tree.delete("sections")
        assert buffer.active_file_id == "doc"

    def test_rename_active(self, buffer):
        assert buffer.rename_active("main.tex")
        assert buffer.file_name == "main.tex"


class TestSelection:
    def test_selection_is_sorted_and_clamped(self, buffer):
        buffer.set_selection(100, 2)
        assert buffer.selection == Selection(2, 7)
        assert buffer.selected_text() == "B C D"

    def test_empty_selection_clears(self, buffer):
        buffer.set_selection(3, 3)
        assert buffer.selection is None
        assert buffer.selected_text() == ""

    def test_cursor_clamped(self, buffer):
        buffer.set_cursor(-5)
        assert buffer.cursor == 0
        buffer.set_cursor(500)
        assert buffer.cursor == 7


class TestMutations:
    def test_replace_range_moves_cursor_after_text(self, buffer):
        buffer.set_selection(0, 1)
        assert buffer.replace_range(2, 5, "X Y")
        assert buffer.content == "A X Y D"
        assert buffer.cursor == 5
        assert buffer.selection is None

    def test_insert_at(self, buffer):
        buffer.insert_at(1, "!")
        assert buffer.content == "A! B C D"
        assert buffer.cursor == 2

    def test_insert_at_cursor(self, buffer):
        buffer.set_cursor(7)
        buffer.insert_at_cursor(" E")
        assert buffer.content == "A B C D E"
        assert buffer.cursor == 9

    def test_edit_clamps_cursor_and_jump(self, buffer):
        buffer.set_cursor(7)
        buffer.request_jump(6)
        buffer.edit("AB")
        assert buffer.cursor == 2
        assert buffer.pending_jump == 2

    def test_edit_marks_dirty(self, buffer):
        buffer.edit("new")
        assert buffer.save_state.dirty
        assert buffer.save_state.saving_indicator_active

    def test_mutation_emits_content_changed(self, buffer):
        seen = []
        buffer.emitter.subscribe(seen.append)
        buffer.replace_range(0, 1, "Z")
        kinds = [e.kind for e in seen]
        assert events.CONTENT_CHANGED in kinds

    def test_content_lands_in_tree(self, buffer):
        buffer.edit("changed")
        assert buffer.tree.get("doc").content == "changed"

    def test_poll_save_settles_after_quiet_window(self, buffer, clock):
        buffer.edit("draft")
        clock.advance(0.5)
        assert not buffer.poll_save()
        buffer.edit("draft two")
        clock.advance(0.5)
        assert not buffer.poll_save()
        clock.advance(0.4)
        assert buffer.poll_save()
        assert not buffer.save_state.dirty
        assert buffer.save_state.last_saved_at == 1700000000.0


class TestFindAndReplace:
    def test_exact_first_occurrence(self, buffer):
        buffer.edit("foo bar foo")
        assert buffer.find_and_replace("foo", "baz")
        assert buffer.content == "baz bar foo"

    def test_whitespace_tolerant(self, buffer):
        buffer.edit("We   propose\na novel method here.")
        assert buffer.find_and_replace("We propose a novel method", "We present a method")
        assert buffer.content == "We present a method here."

    def test_short_needle_no_spacing_tier(self, buffer):
        buffer.edit("a  b  c")
        assert not buffer.find_and_replace("a b c", "x")
        assert buffer.content == "a  b  c"

    def test_no_match_no_mutation(self, buffer):
        seen = []
        buffer.emitter.subscribe(seen.append)
        assert not buffer.find_and_replace("missing text", "x")
        assert buffer.content == "A B C D"
        assert seen == []

    def test_cursor_unchanged(self, buffer):
        buffer.set_cursor(1)
        buffer.find_and_replace("D", "DDD")
        assert buffer.cursor == 1


class TestJump:
    def test_request_and_clear(self, buffer):
        buffer.request_jump(99)
        assert buffer.pending_jump == 7
        buffer.clear_jump()
        assert buffer.pending_jump is None


class TestHistory:
    def test_snapshot_and_restore(self, buffer):
        snap_id = buffer.save_history_snapshot()
        buffer.edit("something else")
        assert buffer.restore_snapshot(snap_id)
        assert buffer.content == "A B C D"

    def test_restore_switches_to_snapshot_file(self, buffer):
        buffer.set_active("intro")
        snap_id = buffer.save_history_snapshot()
        buffer.edit("rewritten intro")
        buffer.set_active("doc")
        buffer.edit("doc edited")

        assert buffer.restore_snapshot(snap_id)
        assert buffer.active_file_id == "intro"
        assert buffer.content == "Intro text."
        assert buffer.tree.get("doc").content == "doc edited"

    def test_snapshot_of_binary_is_none(self, buffer):
        buffer.set_active("fig")
        assert buffer.save_history_snapshot() is None

    def test_restore_unknown_snapshot(self, buffer):
        assert not buffer.restore_snapshot("nope")

    def test_delete_snapshot(self, buffer):
        snap_id = buffer.save_history_snapshot()
        assert buffer.delete_snapshot(snap_id)
        assert buffer.snapshots() == []
        assert not buffer.delete_snapshot(snap_id)


class TestProjectLifecycle:
    def test_load_project_prefers_document_tex(self, buffer):
        buffer.load_project([
            FileNode(id="a", name="appendix.tex", content="a"),
            FileNode(id="m", name=DEFAULT_DOCUMENT_NAME, content="main"),
        ])
        assert buffer.active_file_id == "m"
        assert buffer.content == "main"

    def test_load_project_keeps_valid_active(self, buffer):
        buffer.load_project(
            [FileNode(id="a", name="a.tex", content="a"), FileNode(id="b", name="b.tex", content="b")],
            active_file_id="b",
            history=[HistorySnapshot(id="h1", file_id="b", created_at=1.0, content="old")],
            last_saved_at=42.0,
        )
        assert buffer.active_file_id == "b"
        assert [s.id for s in buffer.snapshots()] == ["h1"]
        assert buffer.save_state.last_saved_at == 42.0
        assert not buffer.save_state.dirty

    def test_reset(self, buffer):
        buffer.save_history_snapshot()
        buffer.reset()
        assert [n.name for n in buffer.tree.nodes()] == [DEFAULT_DOCUMENT_NAME]
        assert buffer.snapshots() == []
        assert buffer.file_name == DEFAULT_DOCUMENT_NAME

    def test_project_loaded_event(self):
        tree = FileTree()
        buf = DocumentBuffer(tree)
        seen = []
        tree.emitter.subscribe(seen.append)
        buf.load_project([FileNode(id="x", name="x.tex", kind=FileKind.TEXT, content="")])
        assert seen[-1].kind == events.PROJECT_LOADED
        assert seen[-1].file_id == "x"

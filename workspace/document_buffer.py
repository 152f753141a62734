"""
Document Buffer Module

Single source of truth for the active file's text, the cursor/selection
offsets into it, its save state and its manual version history.

Offsets are only meaningful against the content they were taken from. Every
content mutation goes through _commit(), which clamps the cursor and any
pending jump to the new length and clears the selection, so no stale offset
survives an edit.

Usage:
    tree = FileTree.with_default_document()
    buffer = DocumentBuffer(tree)
    buffer.replace_range(0, 5, "Hello")
    buffer.find_and_replace("Start writing here.", "Intro text.")
    snapshot_id = buffer.save_history_snapshot()
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from workspace import events
from workspace.file_tree import FileNode, FileTree, DEFAULT_DOCUMENT_NAME
from workspace.fuzzy_match import TextMatch, locate
from workspace.history import HistoryLog, HistorySnapshot
from workspace.policy import DEFAULT_POLICY, EditPolicy
from workspace.save_state import SaveState, SaveTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """Half-open [start, end) range."""
    start: int
    end: int


class DocumentBuffer:
    """Active-document state layered over a FileTree."""

    def __init__(
        self,
        tree: FileTree,
        policy: EditPolicy = DEFAULT_POLICY,
        history: HistoryLog = None,
        save_tracker: SaveTracker = None,
    ):
        self.tree = tree
        self.policy = policy
        self.emitter = tree.emitter
        self.history = history or HistoryLog(limit=policy.history_limit)
        self.save_tracker = save_tracker or SaveTracker(window=policy.save_debounce_seconds)
        self.save_tracker.on_change = self._on_save_state
        self.emitter.subscribe(self._on_tree_event)

        active = tree.resolve_active(None)
        self.active_file_id: Optional[str] = active.id if active else None
        self.cursor: int = 0
        self.selection: Optional[Selection] = None
        self.pending_jump: Optional[int] = None

    # -------------------------------------------------------------------------
    # Active document
    # -------------------------------------------------------------------------

    @property
    def active_file(self) -> Optional[FileNode]:
        return self.tree.resolve_active(self.active_file_id)

    @property
    def content(self) -> str:
        active = self.active_file
        if active is None or not active.is_text:
            return ""
        return active.content or ""

    @property
    def file_name(self) -> str:
        active = self.active_file
        return active.name if active else DEFAULT_DOCUMENT_NAME

    @property
    def is_text_active(self) -> bool:
        active = self.active_file
        return active is not None and active.is_text

    @property
    def save_state(self) -> SaveState:
        return self.save_tracker.state

    def set_active(self, file_id: str) -> None:
        """Switch the active file; cursor goes to 0 and the selection is cleared.

        A folder or unknown id falls back to the first document.
        """
        resolved = self.tree.resolve_active(file_id)
        file_id = resolved.id if resolved else None
        self.active_file_id = file_id
        self.cursor = 0
        self.selection = None
        self.pending_jump = None
        self.emitter.emit(events.ACTIVE_CHANGED, file_id)

    def sync_active(self) -> None:
        """Re-resolve the active file after a tree mutation removed it."""
        resolved = self.tree.resolve_active(self.active_file_id)
        resolved_id = resolved.id if resolved else None
        if resolved_id != self.active_file_id:
            self.set_active(resolved_id)

    def rename_active(self, name: str) -> bool:
        active = self.active_file
        if active is None:
            return False
        return self.tree.rename(active.id, name)

    # -------------------------------------------------------------------------
    # Cursor / selection / jump
    # -------------------------------------------------------------------------

    def set_cursor(self, position: int) -> None:
        self.cursor = self._clamp(position)
        self.emitter.emit(events.CURSOR_CHANGED, self.active_file_id, cursor=self.cursor)

    def set_selection(self, start: Optional[int], end: Optional[int] = None) -> None:
        """Set the selection; an empty or None range clears it."""
        if start is None or end is None:
            self.selection = None
        else:
            lo, hi = sorted((self._clamp(start), self._clamp(end)))
            self.selection = Selection(lo, hi) if lo != hi else None
        self.emitter.emit(
            events.SELECTION_CHANGED,
            self.active_file_id,
            start=self.selection.start if self.selection else None,
            end=self.selection.end if self.selection else None,
        )

    def selected_text(self) -> str:
        if self.selection is None:
            return ""
        return self.content[self.selection.start:self.selection.end]

    def request_jump(self, position: int) -> None:
        self.pending_jump = self._clamp(position)
        self.emitter.emit(events.JUMP_REQUESTED, self.active_file_id, position=self.pending_jump)

    def clear_jump(self) -> None:
        self.pending_jump = None

    # -------------------------------------------------------------------------
    # Content mutations
    # -------------------------------------------------------------------------

    def edit(self, new_content: str) -> bool:
        """Replace the whole content of the active text file."""
        if not self.is_text_active:
            return False
        self._commit(new_content, cursor=self.cursor)
        return True

    def insert_at(self, offset: int, text: str) -> bool:
        return self.replace_range(offset, offset, text)

    def insert_at_cursor(self, text: str) -> bool:
        return self.insert_at(self.cursor, text)

    def replace_range(self, start: int, end: int, text: str) -> bool:
        """Replace [start, end) with `text`; the cursor lands right after it."""
        if not self.is_text_active:
            return False
        content = self.content
        start = self._clamp(start, content)
        end = self._clamp(end, content)
        if end < start:
            start, end = end, start
        self._commit(content[:start] + text + content[end:], cursor=start + len(text))
        return True

    def find_and_replace(self, needle: str, replacement: str) -> bool:
        """
        Replace the first match of `needle` (exact, then whitespace-tolerant).

        Returns False without touching the buffer if neither tier matches.
        The cursor is left where it was.
        """
        if not self.is_text_active:
            return False
        content = self.content
        found = self.locate(needle, content)
        if found is None:
            return False
        self._commit(content[:found.start] + replacement + content[found.end:], cursor=self.cursor)
        return True

    def locate(self, needle: str, content: str = None) -> Optional[TextMatch]:
        """Read-only lookup using the same tiers as find_and_replace."""
        return locate(
            self.content if content is None else content,
            needle,
            min_chars=self.policy.fuzzy_min_chars,
            min_tokens=self.policy.fuzzy_min_tokens,
        )

    # -------------------------------------------------------------------------
    # Save state
    # -------------------------------------------------------------------------

    def mark_saved(self) -> None:
        self.save_tracker.mark_saved()

    def poll_save(self) -> bool:
        return self.save_tracker.poll()

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def save_history_snapshot(self) -> Optional[str]:
        """Checkpoint the active text file. None if it is not text-bearing."""
        active = self.active_file
        if active is None or not active.is_text:
            return None
        snapshot = self.history.record(active.id, active.content or "")
        self.emitter.emit(events.HISTORY_CHANGED, active.id, added=snapshot.id)
        return snapshot.id

    def restore_snapshot(self, snapshot_id: str) -> bool:
        """
        Put a snapshot's content back into its file verbatim and make that
        file active. Other files are not touched.
        """
        snapshot = self.history.get(snapshot_id)
        if snapshot is None:
            return False
        node = self.tree.get(snapshot.file_id)
        if node is None or not node.is_text:
            logger.debug("restore_snapshot: file %s no longer exists", snapshot.file_id)
            return False
        if self.active_file_id != snapshot.file_id:
            self.set_active(snapshot.file_id)
        self._commit(snapshot.content, cursor=self.cursor)
        return True

    def delete_snapshot(self, snapshot_id: str) -> bool:
        removed = self.history.remove(snapshot_id)
        if removed:
            self.emitter.emit(events.HISTORY_CHANGED, None, removed=snapshot_id)
        return removed

    def snapshots(self) -> List[HistorySnapshot]:
        return self.history.entries()

    # -------------------------------------------------------------------------
    # Project lifecycle
    # -------------------------------------------------------------------------

    def load_project(
        self,
        nodes: Iterable[FileNode],
        active_file_id: Optional[str] = None,
        history: Iterable[HistorySnapshot] = (),
        last_saved_at: Optional[float] = None,
    ) -> None:
        """Swap in a whole project: tree contents, active file, history and save state."""
        self.tree.load(nodes)
        self.history = HistoryLog(limit=self.policy.history_limit, entries=history)
        self.save_tracker.reset(last_saved_at=last_saved_at)
        self.active_file_id = active_file_id if active_file_id in self.tree else None
        if self.active_file_id is None:
            self.active_file_id = self._default_active_id()
        self.cursor = 0
        self.selection = None
        self.pending_jump = None
        self.emitter.emit(events.PROJECT_LOADED, self.active_file_id)

    def reset(self) -> None:
        """Back to a single default document with no history."""
        self.load_project(FileTree.with_default_document().nodes())

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _commit(self, new_content: str, cursor: int) -> None:
        active = self.active_file
        if active is None:
            return
        self.tree.set_content(active.id, new_content)
        self.active_file_id = active.id
        self.cursor = max(0, min(cursor, len(new_content)))
        self.selection = None
        if self.pending_jump is not None:
            self.pending_jump = min(self.pending_jump, len(new_content))
        self.emitter.emit(events.CONTENT_CHANGED, active.id, length=len(new_content), cursor=self.cursor)
        self.save_tracker.mark_dirty()

    def _clamp(self, position: int, content: str = None) -> int:
        length = len(self.content if content is None else content)
        return max(0, min(int(position), length))

    def _default_active_id(self) -> Optional[str]:
        documents = self.tree.documents()
        for node in documents:
            if node.is_text and node.name == DEFAULT_DOCUMENT_NAME:
                return node.id
        for node in documents:
            if node.is_text:
                return node.id
        return documents[0].id if documents else None

    def _on_tree_event(self, event: events.ChangeEvent) -> None:
        if event.kind == events.NODES_DELETED and self.active_file_id in event.data.get("ids", ()):
            self.sync_active()

    def _on_save_state(self, state: SaveState) -> None:
        self.emitter.emit(events.SAVE_STATE_CHANGED, self.active_file_id, **state.to_dict())

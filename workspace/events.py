"""
Change notifications for workspace state.

Every mutating operation on the FileTree and DocumentBuffer emits a
ChangeEvent through an EventEmitter. Consumers (editor widget bridge, outline
view, autosave writer) subscribe instead of polling.

Usage:
    emitter = EventEmitter()
    unsubscribe = emitter.subscribe(lambda ev: print(ev.kind, ev.file_id))
    ...
    unsubscribe()
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


# Event kinds
NODE_ADDED = "node-added"
NODE_RENAMED = "node-renamed"
NODE_MOVED = "node-moved"
NODES_DELETED = "nodes-deleted"
CONTENT_CHANGED = "content-changed"
ACTIVE_CHANGED = "active-changed"
CURSOR_CHANGED = "cursor-changed"
SELECTION_CHANGED = "selection-changed"
JUMP_REQUESTED = "jump-requested"
SAVE_STATE_CHANGED = "save-state-changed"
HISTORY_CHANGED = "history-changed"
PROJECT_LOADED = "project-loaded"


@dataclass
class ChangeEvent:
    """A single state change notification."""
    kind: str
    file_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[ChangeEvent], None]


class EventEmitter:
    """Synchronous fan-out of ChangeEvents to subscribed listeners."""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def emit(self, kind: str, file_id: Optional[str] = None, /, **data: Any) -> ChangeEvent:
        event = ChangeEvent(kind=kind, file_id=file_id, data=data)
        # Snapshot so listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning("Change listener %r failed on %s: %s", listener, kind, e)
        return event

    def __len__(self) -> int:
        return len(self._listeners)

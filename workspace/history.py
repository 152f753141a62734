"""Manual version checkpoints for text documents."""

import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, Iterable, List, Optional


@dataclass(frozen=True)
class HistorySnapshot:
    id: str
    file_id: str
    created_at: float
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistorySnapshot":
        return cls(
            id=str(data["id"]),
            file_id=str(data["file_id"]),
            created_at=float(data.get("created_at") or 0.0),
            content=str(data.get("content") or ""),
        )


class HistoryLog:
    """
    Newest-first ring buffer of snapshots.

    Appending beyond `limit` evicts the oldest entry. Snapshots are only ever
    created on an explicit "save version" action, never per keystroke.
    """

    def __init__(self, limit: int = 50, entries: Iterable[HistorySnapshot] = ()):
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self.limit = limit
        # entries are newest-first; keep the newest `limit` of them.
        self._entries: Deque[HistorySnapshot] = deque(list(entries)[:limit], maxlen=limit)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def record(self, file_id: str, content: str, created_at: float = None) -> HistorySnapshot:
        snapshot = HistorySnapshot(
            id=uuid.uuid4().hex[:10],
            file_id=file_id,
            created_at=time.time() if created_at is None else created_at,
            content=content,
        )
        # appendleft on a bounded deque drops from the right, i.e. the oldest.
        self._entries.appendleft(snapshot)
        return snapshot

    def get(self, snapshot_id: str) -> Optional[HistorySnapshot]:
        for entry in self._entries:
            if entry.id == snapshot_id:
                return entry
        return None

    def remove(self, snapshot_id: str) -> bool:
        entry = self.get(snapshot_id)
        if entry is None:
            return False
        self._entries.remove(entry)
        return True

    def for_file(self, file_id: str) -> List[HistorySnapshot]:
        return [e for e in self._entries if e.file_id == file_id]

    def entries(self) -> List[HistorySnapshot]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

"""
Per-user, per-project persistence of workspace state.

Each project is one JSON file under <root>/<user>/<project>.json holding the
tree snapshot, the active file id, the version history and last_saved_at.
Names are percent-encoded into path segments (dots included), so the mapping
is reversible and two identities never share a file. Writes go to a temp file first and are swapped in with os.replace.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

from workspace.document_buffer import DocumentBuffer
from workspace.file_tree import FileNode
from workspace.history import HistorySnapshot

logger = logging.getLogger(__name__)

STATE_VERSION = 1
DEFAULT_USER = "local"
DEFAULT_PROJECT = "default"

def storage_key(user: str, project: str) -> str:
    """Namespaced identity key, e.g. `prism-document:alice:thesis`."""
    return f"prism-document:{user or DEFAULT_USER}:{project or DEFAULT_PROJECT}"


def _segment(value: str, fallback: str) -> str:
    # "." is unreserved for quote(); encode it too so "." and ".." cannot escape.
    return quote(value or fallback, safe="").replace(".", "%2E")


@dataclass
class ProjectState:
    nodes: List[FileNode] = field(default_factory=list)
    active_file_id: Optional[str] = None
    history: List[HistorySnapshot] = field(default_factory=list)
    last_saved_at: Optional[float] = None

    @classmethod
    def from_buffer(cls, buffer: DocumentBuffer) -> "ProjectState":
        return cls(
            nodes=buffer.tree.nodes(),
            active_file_id=buffer.active_file_id,
            history=buffer.snapshots(),
            last_saved_at=buffer.save_state.last_saved_at,
        )

    def load_into(self, buffer: DocumentBuffer) -> None:
        buffer.load_project(
            self.nodes,
            active_file_id=self.active_file_id,
            history=self.history,
            last_saved_at=self.last_saved_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": STATE_VERSION,
            "files": [n.to_dict() for n in self.nodes],
            "active_file_id": self.active_file_id,
            "history": [s.to_dict() for s in self.history],
            "last_saved_at": self.last_saved_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectState":
        nodes = []
        for item in data.get("files") or []:
            try:
                nodes.append(FileNode.from_dict(item))
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug("Skipping unreadable file entry: %s", e)
        history = []
        for item in data.get("history") or []:
            try:
                history.append(HistorySnapshot.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.debug("Skipping unreadable history entry: %s", e)
        last_saved_at = data.get("last_saved_at")
        return cls(
            nodes=nodes,
            active_file_id=data.get("active_file_id"),
            history=history,
            last_saved_at=float(last_saved_at) if isinstance(last_saved_at, (int, float)) else None,
        )


class WorkspaceStore:
    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, user: str, project: str) -> Path:
        return self.root / _segment(user, DEFAULT_USER) / f"{_segment(project, DEFAULT_PROJECT)}.json"

    def load(self, user: str, project: str) -> Optional[ProjectState]:
        """Stored state for the identity, or None if nothing (readable) is stored."""
        path = self.path_for(user, project)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read workspace %s: %s", path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring workspace %s: unexpected top-level %s", path, type(data).__name__)
            return None
        return ProjectState.from_dict(data)

    def save(self, user: str, project: str, state: ProjectState) -> Path:
        path = self.path_for(user, project)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8", newline="") as f:
            json.dump(state.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
        logger.debug("Saved workspace %s (%d files)", storage_key(user, project), len(state.nodes))
        return path

    def delete(self, user: str, project: str) -> bool:
        path = self.path_for(user, project)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def projects(self, user: str) -> List[str]:
        user_dir = self.root / _segment(user, DEFAULT_USER)
        if not user_dir.is_dir():
            return []
        return sorted(unquote(p.stem) for p in user_dir.glob("*.json"))

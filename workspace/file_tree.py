"""
File Tree Module

Owns the set of files and folders that make up a project: identity,
hierarchy, names and per-node payloads (text content or binary blob).

Structural guards are silent. A mutation that would orphan a node, create a
cycle, point at a non-folder parent or delete the last document is ignored
(the method returns a falsy value and logs at debug level) so the tree is always
in a valid state. Nothing here raises for a rejected edit.

Usage:
    tree = FileTree.with_default_document()
    figures = tree.add_folder("figures")
    logo = tree.add(FileNode(name="logo.png", kind=FileKind.BINARY, blob=b"..."), parent_id=figures)
    tree.move(logo, None)
    tree.delete(figures)
"""

import base64
import copy
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from workspace import events
from workspace.events import EventEmitter

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_NAME = "document.tex"
DEFAULT_FOLDER_NAME = "New folder"

DEFAULT_DOCUMENT_CONTENT = r"""\documentclass[11pt]{article}
\usepackage[margin=1in]{geometry}
\usepackage{amsmath}

\begin{document}

\section*{Introduction}

Start writing here.

\end{document}
"""


class FileKind(str, Enum):
    TEXT = "text"
    BINARY = "binary"
    FOLDER = "folder"


@dataclass
class FileNode:
    """A file or folder in the project tree."""
    name: str
    kind: FileKind = FileKind.TEXT
    id: str = ""
    parent_id: Optional[str] = None
    content: Optional[str] = None
    blob: Optional[bytes] = None

    @property
    def is_folder(self) -> bool:
        return self.kind == FileKind.FOLDER

    @property
    def is_text(self) -> bool:
        return self.kind == FileKind.TEXT

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "parent_id": self.parent_id,
        }
        if self.content is not None:
            data["content"] = self.content
        if self.blob is not None:
            data["blob"] = base64.b64encode(self.blob).decode("ascii")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileNode":
        blob = data.get("blob")
        if isinstance(blob, str):
            blob = base64.b64decode(blob)
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            kind=FileKind(data.get("kind", FileKind.TEXT.value)),
            parent_id=data.get("parent_id"),
            content=data.get("content"),
            blob=blob,
        )


def generate_id() -> str:
    return uuid.uuid4().hex[:10]


class FileTree:
    """The exclusive owner of all FileNodes in a project."""

    def __init__(self, nodes: Iterable[FileNode] = (), emitter: EventEmitter = None):
        self.emitter = emitter or EventEmitter()
        self._nodes: Dict[str, FileNode] = {}
        self.load(nodes)

    def load(self, nodes: Iterable[FileNode]) -> None:
        """Replace every node at once. Invalid parents are re-rooted; an empty
        (or folder-only) project gets the default document."""
        self._nodes = {}
        for node in nodes:
            node = copy.copy(node)
            if not node.id or node.id in self._nodes:
                node.id = self._new_id()
            self._nodes[node.id] = node
        if not any(not n.is_folder for n in self._nodes.values()):
            seed = default_document()
            if seed.id in self._nodes:
                seed.id = self._new_id()
            self._nodes[seed.id] = seed
        self._repair()

    @classmethod
    def with_default_document(cls, emitter: EventEmitter = None) -> "FileTree":
        return cls(emitter=emitter)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: Optional[str]) -> Optional[FileNode]:
        """Return a copy of the node, or None."""
        node = self._nodes.get(node_id) if node_id else None
        return copy.copy(node) if node else None

    def nodes(self) -> List[FileNode]:
        """All nodes in insertion order (copies)."""
        return [copy.copy(n) for n in self._nodes.values()]

    def documents(self) -> List[FileNode]:
        """All non-folder nodes in insertion order (copies)."""
        return [copy.copy(n) for n in self._nodes.values() if not n.is_folder]

    def children(self, parent_id: Optional[str]) -> List[FileNode]:
        return [copy.copy(n) for n in self._nodes.values() if n.parent_id == parent_id]

    def ancestors(self, node_id: str) -> List[str]:
        """Ids from the node's parent up to the root."""
        chain: List[str] = []
        seen: Set[str] = {node_id}
        node = self._nodes.get(node_id)
        while node is not None and node.parent_id:
            if node.parent_id in seen:
                break
            chain.append(node.parent_id)
            seen.add(node.parent_id)
            node = self._nodes.get(node.parent_id)
        return chain

    def descendants(self, folder_id: str) -> Set[str]:
        """Ids of every transitive child of a folder."""
        found: Set[str] = set()
        frontier = [folder_id]
        while frontier:
            current = frontier.pop()
            for node in self._nodes.values():
                if node.parent_id == current and node.id not in found:
                    found.add(node.id)
                    if node.is_folder:
                        frontier.append(node.id)
        return found

    def path_of(self, node_id: str) -> str:
        """Slash-joined path of folder names ending with the node's own name."""
        node = self._nodes.get(node_id)
        if node is None:
            return ""
        segments = [node.name]
        for ancestor_id in self.ancestors(node_id):
            segments.insert(0, self._nodes[ancestor_id].name)
        return "/".join(segments)

    def resolve_active(self, node_id: Optional[str]) -> Optional[FileNode]:
        """
        Resolve the document the editor should show for `node_id`.

        Falls back to the first non-folder node when the id is unknown or
        denotes a folder. Returns None only for an empty tree.
        """
        node = self._nodes.get(node_id) if node_id else None
        if node is not None and not node.is_folder:
            return copy.copy(node)
        for candidate in self._nodes.values():
            if not candidate.is_folder:
                return copy.copy(candidate)
        return None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def add(self, node: FileNode, parent_id: Optional[str] = None) -> str:
        """
        Insert a new node and return its freshly assigned id.

        `parent_id` overrides node.parent_id when given. A parent that does not
        exist or is not a folder places the node at the root.
        """
        node = copy.copy(node)
        node.id = self._new_id()
        target_parent = parent_id if parent_id is not None else node.parent_id
        if target_parent is not None and not self._is_folder(target_parent):
            logger.debug("FileTree.add: parent %s is not a folder, adding %s at root", target_parent, node.name)
            target_parent = None
        node.parent_id = target_parent
        if node.is_folder:
            node.content = None
            node.blob = None
        elif node.is_text and node.content is None:
            node.content = ""
        self._nodes[node.id] = node
        self.emitter.emit(events.NODE_ADDED, node.id, kind=node.kind.value, parent_id=node.parent_id)
        return node.id

    def add_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        folder = FileNode(name=name.strip() or DEFAULT_FOLDER_NAME, kind=FileKind.FOLDER)
        return self.add(folder, parent_id=parent_id)

    def rename(self, node_id: str, name: str) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            logger.debug("FileTree.rename: unknown node %s", node_id)
            return False
        node.name = name
        self.emitter.emit(events.NODE_RENAMED, node_id, name=name)
        return True

    def move(self, node_id: str, new_parent_id: Optional[str]) -> bool:
        """Re-parent a node. None moves it to the root."""
        node = self._nodes.get(node_id)
        if node is None:
            logger.debug("FileTree.move: unknown node %s", node_id)
            return False
        if new_parent_id is not None:
            if not self._is_folder(new_parent_id):
                logger.debug("FileTree.move: target %s is not an existing folder", new_parent_id)
                return False
            if new_parent_id == node_id or new_parent_id in self.descendants(node_id):
                logger.debug("FileTree.move: moving %s under %s would create a cycle", node_id, new_parent_id)
                return False
        node.parent_id = new_parent_id
        self.emitter.emit(events.NODE_MOVED, node_id, parent_id=new_parent_id)
        return True

    def set_content(self, node_id: str, content: str) -> bool:
        node = self._nodes.get(node_id)
        if node is None or not node.is_text:
            return False
        node.content = content
        return True

    def delete(self, node_id: str) -> Set[str]:
        """
        Delete a node; folders cascade to every transitive descendant.

        Returns the set of removed ids (empty if the delete was rejected
        because no document would remain, or the id is unknown).
        """
        node = self._nodes.get(node_id)
        if node is None:
            logger.debug("FileTree.delete: unknown node %s", node_id)
            return set()
        doomed = {node_id}
        if node.is_folder:
            doomed |= self.descendants(node_id)
        survivors = [n for n in self._nodes.values() if n.id not in doomed and not n.is_folder]
        if not survivors:
            logger.debug("FileTree.delete: refusing to remove the last document (%s)", node_id)
            return set()
        for doomed_id in doomed:
            del self._nodes[doomed_id]
        self.emitter.emit(events.NODES_DELETED, node_id, ids=sorted(doomed))
        return doomed

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def to_list(self) -> List[dict]:
        return [n.to_dict() for n in self._nodes.values()]

    @classmethod
    def from_list(cls, items: Iterable[Dict[str, Any]], emitter: EventEmitter = None) -> "FileTree":
        return cls([FileNode.from_dict(item) for item in items], emitter=emitter)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _new_id(self) -> str:
        node_id = generate_id()
        while node_id in self._nodes:
            node_id = generate_id()
        return node_id

    def _is_folder(self, node_id: str) -> bool:
        node = self._nodes.get(node_id)
        return node is not None and node.is_folder

    def _in_cycle(self, node_id: str) -> bool:
        seen: Set[str] = set()
        current = self._nodes.get(node_id)
        while current is not None and current.parent_id:
            if current.parent_id == node_id:
                return True
            if current.parent_id in seen:
                return False
            seen.add(current.parent_id)
            current = self._nodes.get(current.parent_id)
        return False

    def _repair(self) -> None:
        """Re-root nodes whose parent is missing, not a folder, or part of a cycle."""
        for node in self._nodes.values():
            if node.parent_id is None:
                continue
            if not self._is_folder(node.parent_id) or self._in_cycle(node.id):
                logger.debug("FileTree: re-rooting %s (invalid parent %s)", node.id, node.parent_id)
                node.parent_id = None


def default_document() -> FileNode:
    return FileNode(
        id="default-document",
        name=DEFAULT_DOCUMENT_NAME,
        kind=FileKind.TEXT,
        content=DEFAULT_DOCUMENT_CONTENT,
    )

"""Shared fixtures for the prism-workspace test suite."""

import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Ensure project root is importable
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from workspace.document_buffer import DocumentBuffer  # noqa: E402
from workspace.file_tree import FileKind, FileNode, FileTree  # noqa: E402
from workspace.save_state import SaveTracker  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def prism_home(tmp_path):
    """Point PRISM_HOME at a temporary directory for the duration of a test."""
    with patch.dict(os.environ, {"PRISM_HOME": str(tmp_path)}):
        yield tmp_path


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def tree():
    """document.tex at the root, plus a sections/ folder holding intro.tex and a figure."""
    t = FileTree([
        FileNode(id="doc", name="document.tex", kind=FileKind.TEXT, content="A B C D"),
        FileNode(id="sections", name="sections", kind=FileKind.FOLDER),
        FileNode(id="intro", name="intro.tex", kind=FileKind.TEXT, parent_id="sections", content="Intro text."),
        FileNode(id="fig", name="plot.png", kind=FileKind.BINARY, parent_id="sections", blob=b"\x89PNG"),
    ])
    return t


@pytest.fixture()
def buffer(tree, clock):
    return DocumentBuffer(tree, save_tracker=SaveTracker(window=0.8, clock=clock, wall_clock=lambda: 1700000000.0))

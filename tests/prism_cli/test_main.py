"""Tests for the prism command-line entry points."""

from unittest.mock import patch

import pytest

from agent import stream_events
from agent.backend import OpenAITransformBackend, RemoteTransformBackend, TransformBackend, TransformResult
from prism_cli import main as cli
from prism_cli.config import load_config
from workspace.file_tree import FileKind


class CannedBackend(TransformBackend):
    def __init__(self, text):
        self.text = text

    async def stream(self, request):
        yield stream_events.meta(mode=request.mode.value)
        yield stream_events.text_delta(self.text)
        yield stream_events.analysis(["reworded"])
        yield stream_events.done()

    async def complete(self, request):
        return TransformResult(self.text, ["reworded"])


@pytest.fixture()
def project_dir(tmp_path):
    root = tmp_path / "thesis"
    (root / "figures").mkdir(parents=True)
    (root / "document.tex").write_text("\\section{Intro}\nWe propose a method.\n", encoding="utf-8")
    (root / "figures" / "plot.png").write_bytes(b"\x89PNG")
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref", encoding="utf-8")
    return root


class TestTreeFromDirectory:
    def test_mirrors_layout(self, project_dir):
        tree = cli.tree_from_directory(project_dir)
        paths = {tree.path_of(n.id): n.kind for n in tree.nodes()}
        assert paths == {
            "document.tex": FileKind.TEXT,
            "figures": FileKind.FOLDER,
            "figures/plot.png": FileKind.BINARY,
        }

    def test_empty_directory_keeps_default_document(self, tmp_path):
        tree = cli.tree_from_directory(tmp_path)
        assert [n.name for n in tree.nodes()] == ["document.tex"]


class TestMakeBackend:
    def test_direct_provider(self, prism_home):
        backend = cli.make_backend(load_config(), "polish")
        assert isinstance(backend, OpenAITransformBackend)
        assert backend.model_name == "gpt-4o"

    def test_remote_endpoint(self, prism_home):
        backend = cli.make_backend(load_config(), "polish", endpoint="https://prism.example.com/api")
        assert isinstance(backend, RemoteTransformBackend)
        assert backend.provider.base_url == "https://api.openai.com/v1"


class TestTransformCommand:
    def test_apply_writes_file(self, prism_home, project_dir):
        doc = project_dir / "document.tex"
        with patch.object(cli, "setup_logging"), \
                patch.object(cli, "make_backend", return_value=CannedBackend("We present a method.")):
            cli.transform(str(doc), mode="rewrite", find="We propose a method.", apply=True)
        assert doc.read_text(encoding="utf-8") == "\\section{Intro}\nWe present a method.\n"

    def test_preview_only_leaves_file(self, prism_home, project_dir):
        doc = project_dir / "document.tex"
        before = doc.read_text(encoding="utf-8")
        with patch.object(cli, "setup_logging"), \
                patch.object(cli, "make_backend", return_value=CannedBackend("Other.")):
            cli.transform(str(doc), start=0, end=15)
        assert doc.read_text(encoding="utf-8") == before

    def test_missing_text_exits(self, prism_home, project_dir):
        with patch.object(cli, "setup_logging"), \
                patch.object(cli, "make_backend", return_value=CannedBackend("x")):
            with pytest.raises(SystemExit):
                cli.transform(str(project_dir / "document.tex"), find="not in the file at all")

    def test_oversized_selection_exits(self, prism_home, tmp_path):
        doc = tmp_path / "big.tex"
        doc.write_text("x" * 5000, encoding="utf-8")
        with patch.object(cli, "setup_logging"), \
                patch.object(cli, "make_backend", return_value=CannedBackend("x")):
            with pytest.raises(SystemExit):
                cli.transform(str(doc))

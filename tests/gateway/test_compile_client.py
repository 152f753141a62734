"""Tests for compile resource gathering and the compile service client."""

import base64
import json

import httpx

from gateway.compile_client import CompileClient, CompileResult, gather_resources
from workspace.file_tree import FileKind, FileNode, FileTree


class TestGatherResources:
    def test_bundle_shape(self, tree):
        resources = {r["path"]: r for r in gather_resources(tree)}
        assert set(resources) == {"document.tex", "sections/intro.tex", "sections/plot.png"}
        assert resources["document.tex"] == {"path": "document.tex", "content": "A B C D", "main": True}
        assert resources["sections/intro.tex"]["main"] is False
        assert base64.b64decode(resources["sections/plot.png"]["file"]) == b"\x89PNG"
        assert "content" not in resources["sections/plot.png"]

    def test_nested_folders(self):
        t = FileTree([
            FileNode(id="a", name="a", kind=FileKind.FOLDER),
            FileNode(id="b", name="b", kind=FileKind.FOLDER, parent_id="a"),
            FileNode(id="f", name="deep.tex", parent_id="b", content=""),
        ])
        assert [r["path"] for r in gather_resources(t)] == ["a/b/deep.tex"]


def _client(handler):
    return CompileClient("https://compile.example.com/build", client=httpx.Client(transport=httpx.MockTransport(handler)))


class TestCompileClient:
    def test_pdf_response(self, tree):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF-1.5 ...")

        result = _client(handler).compile(tree)
        assert result.ok
        assert result.pdf.startswith(b"%PDF")
        assert len(seen["body"]["resources"]) == 3

    def test_build_failure_with_logs(self, tree):
        def handler(request):
            return httpx.Response(400, json={"error": "Undefined control sequence", "log_files": {"output.log": "l.3 \\foo"}})

        result = _client(handler).compile(tree)
        assert not result.ok
        assert result.error == "Undefined control sequence"
        assert result.log_files == {"output.log": "l.3 \\foo"}
        assert result.to_dict() == {"ok": False, "error": "Undefined control sequence", "log_files": ["output.log"]}

    def test_non_json_failure(self, tree):
        def handler(request):
            return httpx.Response(502, content=b"Bad gateway")

        result = _client(handler).compile(tree)
        assert result.error == "Compilation failed (HTTP 502)"

    def test_unreachable_service(self, tree):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = _client(handler).compile(tree)
        assert "unreachable" in result.error

    def test_project_without_main_document(self):
        t = FileTree([FileNode(id="x", name="chapter.tex", content="")])
        calls = []
        result = _client(lambda request: calls.append(request)).compile(t)
        assert result.error == "No document.tex in project"
        assert calls == []


class TestCompileResult:
    def test_ok_to_dict(self):
        assert CompileResult(pdf=b"1234").to_dict() == {"ok": True, "pdf_bytes": 4}

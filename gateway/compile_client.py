"""
LaTeX compilation through a remote compile service.

The workspace tree is flattened into a resource bundle, one entry per
non-folder node:

    {"path": "sections/intro.tex", "content": "...", "main": false}
    {"path": "figures/plot.png", "file": "<base64>"}

and POSTed as {"resources": [...]}. The service answers with the PDF bytes
(application/pdf), or with a JSON body {"error": ..., "log_files": {...}}
when the build fails.
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from workspace.file_tree import DEFAULT_DOCUMENT_NAME, FileTree

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def gather_resources(tree: FileTree, main_name: str = DEFAULT_DOCUMENT_NAME) -> List[Dict[str, Any]]:
    """Flatten the tree into compile resources. Folders contribute only path segments."""
    resources = []
    for node in tree.nodes():
        if node.is_folder:
            continue
        path = tree.path_of(node.id)
        if node.is_text:
            resources.append({
                "path": path,
                "content": node.content or "",
                "main": node.name == main_name,
            })
        else:
            resources.append({
                "path": path,
                "file": base64.b64encode(node.blob or b"").decode("ascii"),
            })
    return resources


@dataclass
class CompileResult:
    """Outcome of one compile request."""
    pdf: Optional[bytes] = None
    error: Optional[str] = None
    log_files: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.pdf is not None and self.error is None

    def to_dict(self) -> dict:
        result = {"ok": self.ok}
        if self.pdf is not None:
            result["pdf_bytes"] = len(self.pdf)
        if self.error:
            result["error"] = self.error
        if self.log_files:
            result["log_files"] = sorted(self.log_files)
        return result


class CompileClient:
    def __init__(self, url: str, timeout: float = 120.0, client: httpx.Client = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def compile(self, tree: FileTree) -> CompileResult:
        """Compile the whole project. Service and transport failures become CompileResult.error."""
        resources = gather_resources(tree)
        if not any(r.get("main") for r in resources):
            return CompileResult(error=f"No {DEFAULT_DOCUMENT_NAME} in project")

        try:
            if self._client is not None:
                resp = self._client.post(self.url, json={"resources": resources}, timeout=self.timeout)
            else:
                resp = httpx.post(self.url, json={"resources": resources}, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning("Compile service %s unreachable: %s", self.url, e)
            return CompileResult(error=f"Compile service unreachable: {e}")

        if resp.status_code < 400 and PDF_CONTENT_TYPE in resp.headers.get("content-type", ""):
            logger.debug("Compiled %d resources into %d-byte PDF", len(resources), len(resp.content))
            return CompileResult(pdf=resp.content)

        return _failure(resp)


def _failure(resp: httpx.Response) -> CompileResult:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        return CompileResult(error=f"Compilation failed (HTTP {resp.status_code})")
    logs = data.get("log_files") or data.get("logFiles") or {}
    if not isinstance(logs, dict):
        logs = {}
    return CompileResult(
        error=str(data.get("error") or f"Compilation failed (HTTP {resp.status_code})"),
        log_files={str(k): str(v) for k, v in logs.items()},
    )

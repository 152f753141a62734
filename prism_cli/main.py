#!/usr/bin/env python3
"""
prism -- command-line front end for the LaTeX workspace.

Usage:
    # Polish lines of a file and show the rewrite (nothing is written)
    prism transform paper.tex --mode=polish --find="We propose a method"

    # Translate a character range and write the result back
    prism transform paper.tex --mode=translate --start=120 --end=480 --target_language=en --apply

    # Build a PDF from a project directory
    prism compile ./thesis --output=thesis.pdf

    # Show a project directory as a workspace tree
    prism tree ./thesis

    # List configured providers and task assignments
    prism models
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import fire
from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from agent.backend import OpenAITransformBackend, RemoteTransformBackend, TransformBackend
from agent.preview import PreviewStatus
from agent.transform import StyleOptions, ThinkingStyle, TransformMode, WritingStyle
from gateway.compile_client import CompileClient
from prism_cli import display
from prism_cli.config import load_config, load_env, load_policy, setup_logging
from prism_cli.providers import find_model, resolve_model_config
from workspace.errors import PrismError
from workspace.file_tree import FileKind, FileNode, FileTree
from workspace.session import Workspace

logger = logging.getLogger(__name__)

console = Console()

TEXT_SUFFIXES = {".tex", ".bib", ".sty", ".cls", ".bst", ".txt", ".md"}


def tree_from_directory(directory: Path) -> FileTree:
    """Mirror a directory on disk as a FileTree. Hidden entries are skipped."""
    tree = FileTree(nodes=[])
    folder_ids: Dict[Path, str] = {}
    placeholder = tree.documents()

    for path in sorted(directory.rglob("*")):
        rel = path.relative_to(directory)
        if any(part.startswith(".") for part in rel.parts):
            continue
        parent_id = folder_ids.get(path.parent)
        if path.is_dir():
            folder_ids[path] = tree.add_folder(path.name, parent_id)
        elif path.suffix.lower() in TEXT_SUFFIXES:
            content = path.read_text(encoding="utf-8", errors="replace")
            tree.add(FileNode(name=path.name, kind=FileKind.TEXT, content=content), parent_id)
        else:
            tree.add(FileNode(name=path.name, kind=FileKind.BINARY, blob=path.read_bytes()), parent_id)

    # Drop the seeded default document once real files are present.
    for node in placeholder:
        tree.delete(node.id)
    return tree


def _bootstrap(verbose: bool) -> Dict[str, Any]:
    config = load_config()
    setup_logging("DEBUG" if verbose else config.get("logging", {}).get("level"))
    try:
        load_env()
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)
    return config


def make_backend(config: Dict[str, Any], task: str, endpoint: str = None) -> TransformBackend:
    provider = resolve_model_config(
        config["providers"], config["model_assignments"], task, config.get("active_provider"),
    )
    if provider is None:
        raise PrismError("No model provider configured")
    policy = load_policy(config)
    endpoint = endpoint or config.get("transform", {}).get("endpoint")
    if endpoint:
        return RemoteTransformBackend(endpoint, provider)
    return OpenAITransformBackend(provider, max_changes=policy.max_changes)


def transform(
    path: str,
    mode: str = "polish",
    start: Optional[int] = None,
    end: Optional[int] = None,
    find: Optional[str] = None,
    target_language: Optional[str] = None,
    writing_style: Optional[str] = None,
    thinking_style: Optional[str] = None,
    instructions: Optional[str] = None,
    apply: bool = False,
    no_stream: bool = False,
    endpoint: Optional[str] = None,
    verbose: bool = False,
):
    """
    Rewrite part of a file with a model and preview the result.

    Args:
        path: Text file to edit.
        mode: polish, rewrite, expand or translate.
        start, end: Character range to rewrite.
        find: Text to rewrite (first match, whitespace-tolerant) instead of a range.
        target_language: en or zh-CN for translate.
        writing_style: academic, professional or creative.
        thinking_style: rigorous or divergent.
        instructions: Extra free-form instructions for the model.
        apply: Write the rewrite back into the file.
        no_stream: Request a single JSON response instead of a stream.
        endpoint: Transform route URL; defaults to calling the provider directly.
        verbose: Debug logging.
    """
    config = _bootstrap(verbose)
    file_path = Path(path)
    if not file_path.is_file():
        console.print(f"[red]No such file: {file_path}[/]")
        sys.exit(1)

    transform_defaults = config.get("transform", {})
    policy = load_policy(config)
    try:
        mode = TransformMode(mode)
        backend = make_backend(config, mode.value, endpoint)
        style = StyleOptions(
            writing_style=WritingStyle(writing_style or transform_defaults.get("writing_style", "academic")),
            thinking_style=ThinkingStyle(thinking_style or transform_defaults.get("thinking_style", "rigorous")),
        )
    except (ValueError, PrismError) as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)

    workspace = Workspace(backend=backend, policy=policy)
    buffer = workspace.buffer
    buffer.load_project([
        FileNode(name=file_path.name, kind=FileKind.TEXT, content=file_path.read_text(encoding="utf-8")),
    ])

    if find:
        match = buffer.locate(find)
        if match is None:
            console.print(f"[red]Text not found in {file_path.name}[/]")
            sys.exit(1)
        buffer.set_selection(match.start, match.end)
    else:
        buffer.set_selection(start or 0, len(buffer.content) if end is None else end)

    match = find_model(config["providers"], mode.value, config["model_assignments"], config.get("active_provider"))
    display.print_header(console, match[1]["model_name"] if match else "?", buffer.file_name)

    async def _run():
        with Live(Text("Requesting rewrite...", style="dim"), console=console, refresh_per_second=8) as live:
            workspace.previews.on_update = lambda p: live.update(display.preview_panel(p))
            return await workspace.transform(
                mode,
                target_language=target_language or (
                    transform_defaults.get("target_language") if mode is TransformMode.TRANSLATE else None
                ),
                style=style,
                instructions=instructions,
                stream=not no_stream and transform_defaults.get("stream", True),
            )

    try:
        preview = asyncio.run(_run())
    except PrismError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)

    if preview.status is not PreviewStatus.READY:
        sys.exit(1)
    if not apply:
        console.print("[dim]Preview only; pass --apply to write it back.[/]")
        return

    try:
        result = workspace.apply_preview()
    except PrismError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)
    file_path.write_text(buffer.content, encoding="utf-8")
    console.print(display.apply_summary(result))


def compile_project(directory: str, output: str = "output.pdf", url: Optional[str] = None, verbose: bool = False):
    """
    Compile a project directory (with a document.tex) into a PDF.

    Args:
        directory: Project root.
        output: Where to write the PDF.
        url: Compile service URL (defaults to compile.url in config.yaml).
        verbose: Debug logging.
    """
    config = _bootstrap(verbose)
    root = Path(directory)
    if not root.is_dir():
        console.print(f"[red]No such directory: {root}[/]")
        sys.exit(1)

    compile_config = config.get("compile", {})
    client = CompileClient(url or compile_config.get("url"), timeout=float(compile_config.get("timeout", 120)))
    with console.status("Compiling..."):
        result = client.compile(tree_from_directory(root))

    if result.ok:
        Path(output).write_bytes(result.pdf)
    console.print(display.compile_panel(result, output if result.ok else None))
    if not result.ok:
        sys.exit(1)


def tree(directory: str = "."):
    """Render a project directory as a workspace tree."""
    root = Path(directory)
    if not root.is_dir():
        console.print(f"[red]No such directory: {root}[/]")
        sys.exit(1)
    project = tree_from_directory(root)
    console.print(display.build_tree(project, title=root.resolve().name))


def models():
    """List configured providers, their models and task assignments."""
    config = load_config()
    table = Table(title="Providers")
    table.add_column("provider")
    table.add_column("base url", style="dim")
    table.add_column("model")
    table.add_column("assigned to")
    assigned: Dict[str, list] = {}
    for key, model_id in config["model_assignments"].items():
        assigned.setdefault(model_id, []).append(key)
    for provider in config["providers"]:
        for model in provider["models"]:
            table.add_row(
                provider.get("name") or provider["id"],
                provider.get("base_url", ""),
                model["model_name"],
                ", ".join(assigned.get(model["id"], [])),
            )
    console.print(table)


def main():
    fire.Fire({
        "transform": transform,
        "compile": compile_project,
        "tree": tree,
        "models": models,
    })


if __name__ == "__main__":
    main()

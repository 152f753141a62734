"""Rich renderables for the prism CLI.

Pure display functions: they read workspace objects and never mutate them.
"""

from typing import Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from agent.preview import PreviewStatus, TransformPreview
from gateway.compile_client import CompileResult
from workspace.file_tree import FileKind, FileTree
from workspace.reconciler import ApplyResult

VERSION = "v0.1.0"

_ACCENT = "#FFBF00"
_MUTED = "dim #B8860B"
_BORDER = "#CD7F32"

_STATUS_STYLES = {
    PreviewStatus.LOADING: "yellow",
    PreviewStatus.READY: "green",
    PreviewStatus.ERROR: "red",
    PreviewStatus.APPLIED: "bold green",
    PreviewStatus.DISCARDED: "dim",
}

_KIND_ICONS = {
    FileKind.FOLDER: "📁",
    FileKind.TEXT: "📄",
    FileKind.BINARY: "🖼",
}


def build_tree(tree: FileTree, active_file_id: Optional[str] = None, title: str = "project") -> Tree:
    """Folders first, then files, each level sorted by name."""
    root = Tree(f"[bold {_ACCENT}]{title}[/]")

    def add_level(branch: Tree, parent_id: Optional[str]) -> None:
        children = sorted(tree.children(parent_id), key=lambda n: (not n.is_folder, n.name.lower()))
        for node in children:
            label = f"{_KIND_ICONS.get(node.kind, '')} {node.name}"
            if node.id == active_file_id:
                label = f"[bold]{label}[/] [{_MUTED}](active)[/]"
            child = branch.add(label)
            if node.is_folder:
                add_level(child, node.id)

    add_level(root, None)
    return root


def preview_panel(preview: TransformPreview, show_original: bool = True) -> Panel:
    """Original text, rewrite and change bullets for one preview."""
    style = _STATUS_STYLES.get(preview.status, "")
    parts = []
    if show_original:
        parts.append(Text("Original", style=f"bold {_MUTED}"))
        parts.append(Text(preview.span.original_text, style="dim"))
        parts.append(Text(""))

    parts.append(Text("Rewrite", style=f"bold {_ACCENT}"))
    if preview.text:
        parts.append(Text(preview.text))
    elif preview.status is PreviewStatus.LOADING:
        parts.append(Text("waiting for the model...", style="dim italic"))

    if preview.error:
        parts.append(Text(""))
        parts.append(Text(f"Error: {preview.error}", style="red"))

    if preview.changes:
        changes = Table.grid(padding=(0, 1))
        changes.add_column(style=_ACCENT)
        changes.add_column()
        for change in preview.changes:
            changes.add_row("•", change)
        parts.append(Text(""))
        parts.append(Text("Changes", style=f"bold {_MUTED}"))
        parts.append(changes)

    return Panel(
        Group(*parts),
        title=f"[bold]{preview.mode.value}[/] [{style}]{preview.status.value}[/]",
        border_style=_BORDER,
        padding=(0, 2),
    )


def apply_summary(result: ApplyResult) -> str:
    return (
        f"[green]Applied[/] via [bold]{result.strategy}[/] match "
        f"at {result.start}-{result.end} (cursor {result.cursor})"
    )


def compile_panel(result: CompileResult, output_path: Optional[str] = None) -> Panel:
    if result.ok:
        body = f"[green]PDF built[/] ({len(result.pdf):,} bytes)"
        if output_path:
            body += f"\n[{_MUTED}]{output_path}[/]"
        return Panel(body, title="[bold]compile[/]", border_style="green", padding=(0, 2))

    table = Table.grid(padding=(0, 2))
    table.add_column(style=_MUTED)
    table.add_column()
    table.add_row("error", f"[red]{result.error}[/]")
    for name in sorted(result.log_files):
        tail = result.log_files[name].strip().splitlines()[-5:]
        table.add_row(name, "\n".join(tail))
    return Panel(table, title="[bold]compile[/]", border_style="red", padding=(0, 2))


def print_header(console: Console, model: str, file_name: str) -> None:
    model_short = model.split("/")[-1] if "/" in model else model
    console.print(
        f"[bold {_ACCENT}]prism {VERSION}[/] [{_MUTED}]·[/] {model_short} [{_MUTED}]·[/] {file_name}"
    )

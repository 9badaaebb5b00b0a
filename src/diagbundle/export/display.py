from __future__ import annotations

import json
import zipfile
from datetime import datetime
from pathlib import Path

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from diagbundle.export.models import ExportOutcome, ExportStatus
from diagbundle.export.writer import INFO_ENTRY_NAME

console = Console()


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def display_export_outcome(
    outcome: ExportOutcome, *, locale: str = "en", out: Console | None = None
) -> None:
    """Print the single user-visible message for an export."""
    out = out or console
    message = outcome.message(locale)
    if outcome.status is not ExportStatus.SUCCESS:
        style = "yellow" if outcome.status is ExportStatus.BUSY else "red"
        out.print(Text(message, style=style))
        if outcome.error:
            out.print(Text(outcome.error, style="dim"))
        return

    table = Table(show_header=False, border_style="dim", padding=(0, 1))
    table.add_column("Key", style="bold cyan", width=12)
    table.add_column("Value")
    table.add_row("Bundle", str(outcome.output_path))
    if outcome.share is not None:
        table.add_row("Share copy", str(outcome.share.path))
        table.add_row("Share URI", outcome.share.uri)
        table.add_row("MIME type", outcome.share.mime_type)

    out.print(
        Panel(
            Group(Text(message), Text(""), table),
            title=outcome.share.title if outcome.share else None,
            border_style="green",
        )
    )


def display_bundle(path: Path, *, out: Console | None = None) -> None:
    """List the entries of a bundle and show its info.json."""
    out = out or console
    table = Table(border_style="dim", padding=(0, 1))
    table.add_column("Entry", style="bold cyan")
    table.add_column("Modified")
    table.add_column("Size", justify="right")

    info_text: str | None = None
    with zipfile.ZipFile(path) as zf:
        for item in zf.infolist():
            table.add_row(
                item.filename,
                datetime(*item.date_time).strftime("%Y-%m-%d %H:%M:%S"),
                _format_size(item.file_size),
            )
        if INFO_ENTRY_NAME in zf.namelist():
            info_text = zf.read(INFO_ENTRY_NAME).decode("utf-8")

    renderables: list[RenderableType] = [table]
    if info_text is not None:
        renderables.append(Text(""))
        renderables.append(
            Syntax(json.dumps(json.loads(info_text), indent=2, ensure_ascii=False), "json")
        )
    out.print(Panel(Group(*renderables), title=path.name, border_style="cyan"))

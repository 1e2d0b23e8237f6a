"""Index commands for inspecting and clearing the download index."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from harvester.config import settings
from harvester.errors import IndexWriteError
from harvester.index import DownloadIndex
from harvester.models import canonicalize

index_app = typer.Typer(help="Inspect or reset the download index.", no_args_is_help=True)


def _open_index(path: Optional[Path]) -> DownloadIndex:
    download_dir = settings.with_overrides(download_dir=path).download_dir
    return DownloadIndex(download_dir / settings.index_path.name, download_dir)


@index_app.command("list")
def index_list(
    path: Optional[Path] = typer.Option(None, "--path", help="Download directory."),
) -> None:
    """List every recorded download, oldest first."""
    index = _open_index(path)
    records = index.records()
    if not records:
        typer.echo(f"[index list] No records in {index.index_path}")
        return
    for record in records:
        stamp = record.completed_at.strftime("%Y-%m-%d %H:%M")
        typer.echo(f"  {stamp}  {record.canonical_title}")
    typer.echo(f"\n[index list] {len(records)} record(s)")


@index_app.command("check")
def index_check(
    title: str = typer.Argument(..., help="Book title as shown in the console."),
    path: Optional[Path] = typer.Option(None, "--path", help="Download directory."),
) -> None:
    """Report whether a title would be skipped by the next run."""
    key = canonicalize(title)
    index = _open_index(path)
    if index.contains(key):
        typer.echo(f"✅ {key} is already downloaded")
    else:
        typer.echo(f"⬇️  {key} has not been downloaded")
        raise typer.Exit(code=1)


@index_app.command("reset")
def index_reset(
    path: Optional[Path] = typer.Option(None, "--path", help="Download directory."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Clear the index.  Downloaded files are kept."""
    index = _open_index(path)
    if not yes:
        typer.confirm(f"Clear {index.index_path}?", abort=True)
    try:
        index.reset()
    except IndexWriteError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=1)
    typer.echo(f"[index reset] Cleared {index.index_path}")

"""kindle-harvest CLI: entry-point for downloading purchased e-books.

Usage:
    python cli/main.py --help

Commands:
    run       → sign in, discover listing pages, download everything new
    index     → inspect or reset the download index
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from harvester.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any working directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import logging
from typing import Optional

import typer

from cli.commands.index import index_app
from harvester.browser import BrowserError
from harvester.config import MAX_CONCURRENCY, settings
from harvester.errors import AuthError, FatalConfigError, HarvestError
from harvester.logging_utils import configure_logging

app = typer.Typer(
    name="harvest",
    help="Download purchased e-books from the content console.",
    no_args_is_help=True,
)
app.add_typer(index_app, name="index")

logger = logging.getLogger("harvest")


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------
@app.command("run")
def run(
    username: Optional[str] = typer.Option(
        None, "--username", "-u", help="Account e-mail (default: $AMAZON_USERNAME)."
    ),
    password: Optional[str] = typer.Option(
        None, "--password", "-p", help="Account password (default: $AMAZON_PASSWORD)."
    ),
    device: Optional[str] = typer.Option(
        None, "--device", "-d", help="Kindle device to transfer to (default: $AMAZON_DEVICE)."
    ),
    path: Optional[Path] = typer.Option(
        None, "--path", help="Where to store downloaded books (default: ./ebooks)."
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency",
        "-c",
        min=1,
        max=MAX_CONCURRENCY,
        help=f"Number of concurrent browser sessions (1-{MAX_CONCURRENCY}).",
    ),
    max_pages: Optional[int] = typer.Option(
        None, "--max-pages", min=1, help="Stop discovery after this many listing pages."
    ),
    disable_idempotency: bool = typer.Option(
        False,
        "--disable-idempotency",
        help="Download every book regardless of whether it was downloaded before.",
    ),
    headless: bool = typer.Option(False, "--headless", help="Run the browser headless."),
    debug: bool = typer.Option(
        False, "--debug", help="Verbose logging into a fresh log file (forces headless)."
    ),
) -> None:
    """Sign in and download every purchased book not downloaded yet."""
    from harvester.runner import run_harvest

    config = settings.with_overrides(
        username=username,
        password=password,
        device=device,
        download_dir=path,
        concurrency=concurrency,
        max_pages=max_pages,
        idempotency_enabled=False if disable_idempotency else None,
        headless=True if (headless or debug) else None,
    )
    config.ensure_download_dir()
    configure_logging(
        config.log_path,
        level=logging.DEBUG if debug else logging.INFO,
        fresh=debug,
    )

    if not config.device:
        typer.echo("⚠️  No device configured; the first listed device will be used.")

    try:
        report = run_harvest(config)
    except FatalConfigError as exc:
        logger.error("[RUN] Fatal configuration error: %s", exc)
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=2)
    except AuthError as exc:
        logger.error("[RUN] Sign-in failed: %s", exc)
        typer.echo(f"❌ Sign-in failed: {exc}")
        raise typer.Exit(code=1)
    except (HarvestError, BrowserError) as exc:
        logger.error("[RUN] Run failed: %s", exc)
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=1)

    stats = report.stats.as_dict()
    typer.echo(
        f"\n--- Harvest complete ---\n"
        f"  Pages       : {len(report.pages)}/{stats['pages_discovered']} "
        f"({stats['pages_abandoned']} abandoned)\n"
        f"  Downloaded  : {stats['downloaded']}\n"
        f"  Skipped     : {stats['skipped']}\n"
        f"  Unavailable : {stats['unavailable']}\n"
        f"  Failed      : {stats['failed']}\n"
        f"  Books in    : {config.download_dir}"
    )
    if not report.ok:
        typer.echo(f"❌ {stats['index_errors']} page(s) stopped on index write errors.")
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()

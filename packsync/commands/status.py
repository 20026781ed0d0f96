"""Status command: show the persisted cache store of a pack folder."""

from __future__ import annotations

import json
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.table import Table

from packsync.core.config import AppConfig
from packsync.core.errors import ManifestError
from packsync.core.manifest import CacheStore

logger = structlog.get_logger()


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    debug: bool = ctx.obj["debug"]
    return config, console, verbose, debug


@click.command()
@click.option(
    "--pack-folder", "-f",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Local pack root (default from config, else current directory)"
)
@click.pass_context
def status(ctx: click.Context, pack_folder: Path | None) -> None:
    """Show which files the cache store tracks."""
    config, console, verbose, _ = _get_context_objects(ctx)

    folder = pack_folder if pack_folder is not None else config.sync.pack_folder
    manifest_path = folder / config.sync.manifest_file

    try:
        store = CacheStore.load(manifest_path)
    except ManifestError as e:
        logger.error("status_failed", error=str(e))
        raise click.ClickException(str(e)) from e

    if config.output_format == "json":
        print(json.dumps(store.manifest.model_dump(mode="json", by_alias=True), indent=2, sort_keys=True))
        return

    if not manifest_path.exists():
        console.print(f"[yellow]No cache store at {manifest_path}[/yellow]")
        return

    summary = Table(title="Pack State")
    summary.add_column("Property", style="cyan")
    summary.add_column("Value", style="white")
    summary.add_row("Cache Store", str(manifest_path))
    summary.add_row("Pack Hash", store.pack_hash or "Not recorded")
    summary.add_row("Index Hash", store.index_hash or "Not recorded")
    summary.add_row("Installed Side", store.side or "Not recorded")
    summary.add_row("Tracked Files", f"{len(store):,}")
    console.print(summary)

    if not store.records:
        return

    files = Table(title="Tracked Files")
    files.add_column("Location", style="green")
    files.add_column("Hash", style="yellow")
    files.add_column("Optional", style="cyan")
    if verbose:
        files.add_column("Identifier", style="white")

    for file_id, record in sorted(store.records.items()):
        digest = f"{record.hash_algorithm}:{record.hash}" if record.hash else "-"
        if not verbose and len(digest) > 24:
            digest = digest[:24] + "..."
        if record.is_optional:
            optional = "selected" if record.option_value else "deselected"
        else:
            optional = "-"
        row = [record.cached_location or "-", digest, optional]
        if verbose:
            row.append(file_id)
        files.add_row(*row)

    console.print(files)

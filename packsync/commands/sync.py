"""Sync command: bring a pack folder up to date with a remote pack."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
import structlog
from pydantic import ValidationError
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn
from rich.table import Table

from packsync.core.config import AppConfig, SyncConfig
from packsync.core.errors import SyncError
from packsync.core.fetcher import DescriptorFetcher
from packsync.core.options import OptionGroup
from packsync.core.types import Side
from packsync.core.updater import PackUpdater, SyncResult
from packsync.core.utils import format_size

logger = structlog.get_logger()


class RichUserInterface:
    """Console implementation of the engine's user interface.

    Args:
        console: Rich console to render to
        accept_defaults: Answer option prompts with the current selections
        interactive: Whether prompts may be shown; detected from stdin when None
    """

    def __init__(self, console: Console, accept_defaults: bool = False, interactive: bool | None = None):
        self.console = console
        self.accept_defaults = accept_defaults
        self.interactive = sys.stdin.isatty() if interactive is None else interactive
        self.errors: list[tuple[str | None, str]] = []
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None

    def report_progress(self, message: str, completed: int | None = None, total: int | None = None) -> None:
        if completed is None or total is None:
            self.console.print(f"[dim]{message}[/dim]")
            return

        if self._progress is None:
            self._progress = Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                console=self.console,
                transient=True,
            )
            self._progress.start()
            self._task_id = self._progress.add_task("Downloading", total=total)

        assert self._task_id is not None
        self._progress.update(self._task_id, completed=completed, total=total, description=message)
        if completed >= total:
            self.finish()

    def finish(self) -> None:
        """Stop the progress display if it is running."""
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task_id = None

    def present_option_groups(self, groups: list[OptionGroup]) -> dict[str, bool] | None:
        if self.accept_defaults:
            return {group.name: group.selected for group in groups}
        if not self.interactive:
            logger.warning("options_not_interactive", groups=len(groups))
            return None

        self.finish()
        self.console.print("[bold]Optional components[/bold]")
        selections: dict[str, bool] = {}
        for group in groups:
            if group.description:
                self.console.print(f"  [cyan]{group.name}[/cyan]: {group.description}")
            selections[group.name] = click.confirm(f"Install {group.name}?", default=group.selected)
        return selections

    def report_fatal_error(self, error: BaseException) -> None:
        self.finish()
        self.console.print(f"[red]Error:[/red] {error}")

    def report_recoverable_error(self, error: BaseException, file_id: str | None = None) -> None:
        self.errors.append((file_id, str(error)))
        target = self._progress.console if self._progress is not None else self.console
        target.print(f"[yellow]Warning:[/yellow] {error}")


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    debug: bool = ctx.obj["debug"]
    return config, console, verbose, debug


def _build_sync_config(base: SyncConfig, **overrides: object) -> SyncConfig:
    """Apply CLI overrides to the configured sync settings."""
    values = base.model_dump()
    values.update({key: value for key, value in overrides.items() if value is not None})
    return SyncConfig.model_validate(values)


def _print_summary(console: Console, result: SyncResult, verbose: bool) -> None:
    if result.up_to_date:
        console.print(f"[green]{result.pack_name or 'Pack'} is up to date[/green]")
        return

    table = Table(title=f"Sync Summary: {result.pack_name or 'pack'}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Fetched", f"{len(result.fetched):,}")
    table.add_row("Unchanged", f"{len(result.skipped):,}")
    table.add_row("Deleted", f"{len(result.deleted):,}")
    table.add_row("Failed", f"{len(result.failures):,}")
    table.add_row("Written", format_size(result.bytes_written))
    console.print(table)

    if verbose and result.fetched:
        fetched = Table(title="Fetched Files")
        fetched.add_column("File", style="green")
        for file_id in result.fetched:
            fetched.add_row(file_id)
        console.print(fetched)

    if result.failures:
        failures = Table(title="Failed Files")
        failures.add_column("Name", style="yellow")
        failures.add_column("Error", style="red")
        for failure in result.failures:
            failures.add_row(failure.name, failure.error)
        console.print(failures)


def _summary_dict(result: SyncResult) -> dict[str, object]:
    return {
        "pack": result.pack_name,
        "up_to_date": result.up_to_date,
        "fetched": result.fetched,
        "skipped": result.skipped,
        "deleted": result.deleted,
        "failures": [
            {"file_id": f.file_id, "name": f.name, "error": f.error} for f in result.failures
        ],
        "bytes_written": result.bytes_written,
    }


@click.command()
@click.argument("pack_uri", type=str)
@click.option(
    "--pack-folder", "-f",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Local pack root (default from config, else current directory)"
)
@click.option(
    "--side", "-s",
    type=click.Choice([side.value for side in Side], case_sensitive=False),
    default=None,
    help="Side to install files for"
)
@click.option("--workers", "-w", type=int, default=None, help="Concurrent downloads")
@click.option("--manifest-file", type=str, default=None, help="Cache store file name inside the pack folder")
@click.option("--accept-defaults", is_flag=True, help="Do not prompt for optional components")
@click.option("--reconfigure-options", is_flag=True, help="Prompt for all optional components")
@click.pass_context
def sync(
    ctx: click.Context,
    pack_uri: str,
    pack_folder: Path | None,
    side: str | None,
    workers: int | None,
    manifest_file: str | None,
    accept_defaults: bool,
    reconfigure_options: bool,
) -> None:
    """Synchronize a pack folder with a remote pack.

    PACK_URI is the URL or path of the pack descriptor (pack.toml).
    """
    config, console, verbose, _ = _get_context_objects(ctx)

    try:
        sync_config = _build_sync_config(
            config.sync,
            pack_folder=pack_folder,
            side=side.lower() if side else None,
            max_workers=workers,
            manifest_file=manifest_file,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e)) from e

    # Keep stdout clean for machine-readable output
    ui_console = Console(stderr=True) if config.output_format == "json" else console
    ui = RichUserInterface(ui_console, accept_defaults=accept_defaults)
    logger.debug("sync_started", pack_uri=pack_uri, pack_folder=str(sync_config.pack_folder))

    try:
        with DescriptorFetcher(config.http) as fetcher:
            updater = PackUpdater(
                pack_uri,
                sync_config,
                ui,
                fetcher,
                reconfigure_options=reconfigure_options,
            )
            result = updater.run()
    except SyncError:
        # Already reported through the user interface
        sys.exit(1)
    finally:
        ui.finish()

    if config.output_format == "json":
        print(json.dumps(_summary_dict(result), indent=2))
    else:
        _print_summary(console, result, verbose)

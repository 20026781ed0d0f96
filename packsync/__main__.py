"""Main entry point for packsync CLI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console

from packsync import __version__
from packsync.commands.status import status
from packsync.commands.sync import sync
from packsync.core.config import AppConfig

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@click.group()
@click.version_option(version=__version__, prog_name="packsync")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["rich", "json", "plain"], case_sensitive=False),
    default="rich",
    help="Output format",
)
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    verbose: bool,
    debug: bool,
    output: str,
) -> None:
    """Incremental, hash-verified pack synchronizer."""
    ctx.ensure_object(dict)

    try:
        app_config = AppConfig.load(config)
    except Exception as e:
        logger.error("config_load_failed", error=str(e))
        sys.exit(1)

    if verbose or debug:
        app_config.log_level = "DEBUG" if debug else "INFO"
    if output:
        app_config.output_format = output.lower()

    # structlog renders through stdlib loggers, so the level is applied there
    logging.basicConfig(format="%(message)s", stream=sys.stderr)
    logging.getLogger().setLevel(app_config.log_level)

    console = Console(
        force_terminal=output == "rich",
        no_color=output != "rich",
        width=None if output == "rich" else 120,
    )

    ctx.obj["config"] = app_config
    ctx.obj["console"] = console
    ctx.obj["verbose"] = verbose or debug
    ctx.obj["debug"] = debug

    logger.debug("cli_initialized", config=app_config.model_dump(mode="json"))


@main.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    console: Console = ctx.obj["console"]
    config: AppConfig = ctx.obj["config"]

    if config.output_format == "json":
        import json

        info = {
            "name": "packsync",
            "version": __version__,
            "python_version": sys.version.replace("\n", " "),
            "platform": sys.platform,
        }
        # Plain print keeps the JSON free of Rich markup
        print(json.dumps(info, indent=2))
    else:
        console.print(f"packsync {__version__}")
        if ctx.obj["verbose"]:
            console.print(f"Python {sys.version}")
            console.print(f"Platform: {sys.platform}")


main.add_command(sync)
main.add_command(status)


def handle_exception(exc_type: type[BaseException], exc_value: BaseException, exc_traceback: Any) -> None:
    """Handle uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        logger.info("operation_cancelled")
        sys.exit(1)

    logger.error(
        "uncaught_exception",
        exc_info=(exc_type, exc_value, exc_traceback),
    )
    sys.exit(1)


if __name__ == "__main__":
    sys.excepthook = handle_exception

    try:
        main()
    except Exception as e:
        logger.error("cli_failed", error=str(e))
        sys.exit(1)

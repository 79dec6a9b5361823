"""
fnruntimes — CLI entrypoint.

Usage:
    python -m src.main --help
    python -m src.main functions detect
    python -m src.main functions discover --json
"""

from __future__ import annotations

from pathlib import Path

import click

from src.core.observability.logging_config import resolve_level, setup_from_env

from src import __version__


@click.group()
@click.version_option(version=__version__, prog_name="fnruntimes")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to functions.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """fnruntimes — detect, validate and discover function sources."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_from_env(resolve_level(debug=debug, verbose=verbose, quiet=quiet))


# ── Register sub-command groups from src/ui/cli/ ──────────────────

from src.ui.cli.functions import functions

cli.add_command(functions)


if __name__ == "__main__":
    cli()

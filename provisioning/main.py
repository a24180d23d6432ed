"""
Provisioning engine — CLI entrypoint.

Usage:
    provision --help
    provision profiles create ide --install-folder ./ide
    provision install ide sdk@1.0.0
    provision update ide --dry-run
"""

from __future__ import annotations

from pathlib import Path

import click

from provisioning import __version__
from provisioning.core.observability.logging_config import (
    resolve_level,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="provision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provisioning.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provisioning engine — plan and apply changes to installation profiles."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = None
    ctx.obj["log_level"] = level

    setup_logging(level=resolve_level(level), quiet_third_party=not debug)


# ── Register subcommand groups ──────────────────────────────────

from provisioning.ui.cli.profiles import profiles  # noqa: E402
from provisioning.ui.cli.provision import install, revert, uninstall, update  # noqa: E402

cli.add_command(profiles)
cli.add_command(install)
cli.add_command(uninstall)
cli.add_command(update)
cli.add_command(revert)


def main() -> None:
    """Entry point for ``python -m provisioning.main``."""
    cli()


if __name__ == "__main__":
    main()

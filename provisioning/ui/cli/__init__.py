"""
CLI command groups for ``provision``.

Commands are thin wrappers over ``provisioning.core.use_cases``.
"""

from __future__ import annotations

import os
import sys

import click


def open_cli_workspace(ctx: click.Context):
    """Workspace for a command, or exit 1 with the configuration error.

    A ``log_level`` from provisioning.yml applies when neither a flag nor
    the environment chose a level.
    """
    from provisioning.core.config.loader import ConfigError, load_config
    from provisioning.core.observability.logging_config import ENV_LOG_LEVEL, setup_logging
    from provisioning.core.repository.metadata import MetadataError
    from provisioning.core.use_cases.workspace import open_workspace

    try:
        config = load_config(ctx.obj.get("config_path"))
        if config.log_level and not ctx.obj.get("log_level") and not os.environ.get(ENV_LOG_LEVEL):
            setup_logging(level=config.log_level)
        return open_workspace(config=config)
    except (ConfigError, MetadataError) as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

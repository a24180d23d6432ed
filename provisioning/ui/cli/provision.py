"""
CLI commands that change a profile: install, uninstall, update, revert.

Thin wrappers over ``provisioning.core.use_cases.provision``. Every
command accepts ``--dry-run`` (resolve and validate, change nothing) and
exits 1 when the request is unsatisfiable or the transaction fails.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from typing import Any

import click

from provisioning.ui.cli import open_cli_workspace

_json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.",
)
_dry_run_option = click.option(
    "--dry-run", is_flag=True, help="Resolve and validate only, change nothing.",
)

_OPERAND_ICONS = {"install": "➕", "uninstall": "➖", "update": "🔄", "property": "🔧"}


def _render(result: Any, as_json: bool) -> None:
    """Print a ProvisionResult and exit 1 unless it succeeded."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    mode_label = "[dry-run] " if result.dry_run else ""
    click.secho(f"\n⚡ {mode_label}{result.command} — {result.profile_id}", fg="cyan", bold=True)

    for note in result.notes:
        click.echo(f"   {note}")

    plan = result.plan
    if plan is not None and not plan.is_ok:
        status = plan.status
        click.secho(f"   ✗ Cannot satisfy request ({status.severity.value})", fg="red", bold=True)
        if status.conflicts_with_installed_roots:
            keys = ", ".join(u.key for u in status.conflicts_with_installed_roots)
            click.echo(f"     Conflicts with installed: {keys}")
        if status.conflicts_with_any_roots:
            keys = ", ".join(u.key for u in status.conflicts_with_any_roots)
            click.echo(f"     Conflicting roots: {keys}")
        for explanation in status.explanations:
            click.echo(f"     │ {explanation}")
        click.echo()
        sys.exit(1)

    if plan is not None and plan.operands:
        click.echo(f"   Operands: {len(plan.operands)}")
        for op in plan.operands:
            click.echo(f"     {_OPERAND_ICONS.get(op.kind, '•')} {op}")

    status = result.status
    if status is not None:
        click.echo()
        if status.is_success:
            label = "Plan is valid" if result.dry_run else "Committed"
            click.secho(f"   ✅ {label}", fg="green", bold=True)
        else:
            label = "Validation failed" if result.dry_run else "Rolled back"
            click.secho(f"   ❌ {label}: {status.message}", fg="red", bold=True)
            for child in status.errors() if status.is_multi() else [status]:
                click.echo(f"     │ {child}")
            click.echo()
            sys.exit(1)
    click.echo()


def _run(ctx: click.Context, as_json: bool, fn: Callable[..., Any], *args: Any) -> None:
    ws = open_cli_workspace(ctx)
    _render(fn(ws, *args), as_json)


@click.command()
@click.argument("profile_id")
@click.argument("units", nargs=-1, required=True)
@_dry_run_option
@_json_option
@click.pass_context
def install(
    ctx: click.Context,
    profile_id: str,
    units: tuple[str, ...],
    dry_run: bool,
    as_json: bool,
) -> None:
    """Install units into a profile.

    Examples:

        provision install ide sdk

        provision install ide sdk@1.0.0 "cdt@[2.0,3.0)"
    """
    from provisioning.core.use_cases.provision import run_install

    _run(ctx, as_json, run_install, profile_id, list(units), dry_run)


@click.command()
@click.argument("profile_id")
@click.argument("units", nargs=-1, required=True)
@_dry_run_option
@_json_option
@click.pass_context
def uninstall(
    ctx: click.Context,
    profile_id: str,
    units: tuple[str, ...],
    dry_run: bool,
    as_json: bool,
) -> None:
    """Uninstall units (all installed versions) from a profile."""
    from provisioning.core.use_cases.provision import run_uninstall

    _run(ctx, as_json, run_uninstall, profile_id, list(units), dry_run)


@click.command()
@click.argument("profile_id")
@_dry_run_option
@_json_option
@click.pass_context
def update(ctx: click.Context, profile_id: str, dry_run: bool, as_json: bool) -> None:
    """Update a profile's roots to the newest compatible versions."""
    from provisioning.core.use_cases.provision import run_update

    _run(ctx, as_json, run_update, profile_id, dry_run)


@click.command()
@click.argument("profile_id")
@click.argument("timestamp", type=int)
@_dry_run_option
@_json_option
@click.pass_context
def revert(
    ctx: click.Context,
    profile_id: str,
    timestamp: int,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Revert a profile to a committed state (see: profiles history)."""
    from provisioning.core.use_cases.provision import run_revert

    _run(ctx, as_json, run_revert, profile_id, timestamp, dry_run)

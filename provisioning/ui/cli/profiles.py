"""
CLI commands for profile management.

Thin wrappers over ``provisioning.core.use_cases.profiles``.
"""

from __future__ import annotations

import json
import sys
from datetime import UTC, datetime
from pathlib import Path

import click

from provisioning.ui.cli import open_cli_workspace


def _when(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")


def _parse_properties(pairs: tuple[str, ...]) -> dict[str, str]:
    props: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected KEY=VALUE, got {pair!r}", param_hint="--property")
        props[key.strip()] = value
    return props


@click.group()
def profiles() -> None:
    """Profiles — list, create, show, remove, history."""


@profiles.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """List all profiles."""
    from provisioning.core.use_cases.profiles import list_profiles

    ws = open_cli_workspace(ctx)
    found = list_profiles(ws)

    if as_json:
        click.echo(json.dumps([
            {"profile_id": p.profile_id, "timestamp": p.timestamp, "units": len(p.entries)}
            for p in found
        ], indent=2))
        return

    if not found:
        click.secho("No profiles yet. Create one with: provision profiles create ID", fg="yellow")
        return

    click.secho(f"📋 Profiles ({len(found)}):", fg="cyan", bold=True)
    for profile in found:
        click.echo(
            f"   • {profile.profile_id}  "
            f"{len(profile.entries)} units, committed {_when(profile.timestamp)}"
        )


@profiles.command("create")
@click.argument("profile_id")
@click.option(
    "--install-folder",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory native actions write into.",
)
@click.option("--property", "-p", "properties", multiple=True, help="Profile property KEY=VALUE.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def create(
    ctx: click.Context,
    profile_id: str,
    install_folder: Path | None,
    properties: tuple[str, ...],
    as_json: bool,
) -> None:
    """Create an empty profile."""
    from provisioning.core.use_cases.profiles import create_profile

    props = _parse_properties(properties)
    ws = open_cli_workspace(ctx)
    result = create_profile(ws, profile_id, install_folder=install_folder, properties=props)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"✅ Profile created: {profile_id}", fg="green", bold=True)


@profiles.command("show")
@click.argument("profile_id")
@click.option("--at", "timestamp", type=int, default=None, help="Historical timestamp.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, profile_id: str, timestamp: int | None, as_json: bool) -> None:
    """Show installed units and properties of a profile."""
    from provisioning.core.use_cases.profiles import show_profile

    ws = open_cli_workspace(ctx)
    result = show_profile(ws, profile_id, timestamp)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    data = result.to_dict()
    click.secho(f"\n📦 {profile_id}", fg="cyan", bold=True)
    click.echo(f"   Committed: {_when(data['timestamp'])} ({data['timestamp']})")

    if data["properties"]:
        click.echo()
        click.secho("   Properties:", fg="white", bold=True)
        for key, value in sorted(data["properties"].items()):
            click.echo(f"     {key} = {value}")

    click.echo()
    click.secho(f"   Units: {len(data['units'])}", fg="white", bold=True)
    for unit in data["units"]:
        marker = {"strict": " ★", "optional": " ☆"}.get(unit["inclusion"], "")
        click.echo(f"     • {unit['id']} {unit['version']}{marker}")
    click.echo()


@profiles.command("history")
@click.argument("profile_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, profile_id: str, as_json: bool) -> None:
    """Show the committed states and transactions of a profile."""
    from provisioning.core.use_cases.profiles import profile_history

    ws = open_cli_workspace(ctx)
    result = profile_history(ws, profile_id)

    if as_json:
        data = result.to_dict()
        click.echo(json.dumps(
            {k: data[k] for k in ("profile_id", "timestamps", "transactions", "error") if k in data},
            indent=2,
        ))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"\n🕘 {profile_id}", fg="cyan", bold=True)
    for ts in result.timestamps:
        click.echo(f"   {ts}  {_when(ts)}")

    if result.transactions:
        click.echo()
        click.secho("   Transactions:", fg="white", bold=True)
        for entry in result.transactions:
            color = "green" if entry.outcome == "committed" else "red"
            click.secho(f"     {entry.outcome:<11}", fg=color, nl=False)
            click.echo(f" {entry.transaction_id}  {len(entry.operands)} operands")
            if ctx.obj.get("verbose"):
                for err in entry.errors:
                    click.echo(f"       │ {err}")
    click.echo()


@profiles.command("remove")
@click.argument("profile_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation.")
@click.pass_context
def remove(ctx: click.Context, profile_id: str, yes: bool) -> None:
    """Delete a profile and its history."""
    from provisioning.core.use_cases.profiles import remove_profile

    if not yes:
        click.confirm(f"Remove profile {profile_id} and its history?", abort=True)

    ws = open_cli_workspace(ctx)
    error = remove_profile(ws, profile_id)
    if error:
        click.secho(f"❌ {error}", fg="red")
        sys.exit(1)

    click.secho(f"🗑️  Profile removed: {profile_id}", fg="green")

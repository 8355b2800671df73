"""Privileged ledger administration commands."""

import json

import click
from rich.console import Console
from rich.table import Table

from cli.utils import fail, get_components, parse_price

from .predictions import IDENTITY_ENV

console = Console()

caller_option = click.option(
    "--caller", envvar=IDENTITY_ENV, required=True, help="Admin identity"
)


@click.group()
def admin():
    """Threshold, pause and oracle management (admin only)."""
    pass


@admin.command("info")
def admin_info():
    """Show ledger settings."""
    c = get_components()
    summary = c["ledger"].summary()

    table = Table(show_header=False, title="Ledger")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Predictions", str(summary["prediction_counter"]))
    table.add_row(
        "Accuracy threshold",
        f"{summary['accuracy_threshold_percent']}% ({summary['accuracy_threshold']} bp)",
    )
    table.add_row("Paused", "[red]yes[/]" if summary["paused"] else "[green]no[/]")
    table.add_row("Oracles", ", ".join(summary["oracles"]) or "-")
    table.add_row("Database", str(c["config"].paths.ledger_db))
    console.print(table)


@admin.command("threshold")
@click.argument("basis_points", type=int)
@caller_option
def admin_threshold(basis_points, caller):
    """Set the accuracy threshold in basis points (500 = 5%)."""
    from ledger.errors import LedgerError

    c = get_components()
    try:
        change = c["guard"].set_accuracy_threshold(caller, basis_points)
    except LedgerError as e:
        fail(e)
    console.print(
        f"[green]Accuracy threshold updated[/] {change['old'] / 100}% -> {change['new'] / 100}%"
    )


@admin.command("pause")
@caller_option
def admin_pause(caller):
    """Reject new predictions until unpaused."""
    from ledger.errors import LedgerError

    c = get_components()
    try:
        changed = c["guard"].pause(caller)
    except LedgerError as e:
        fail(e)
    console.print("[yellow]Ledger paused[/]" if changed else "Ledger already paused")


@admin.command("unpause")
@caller_option
def admin_unpause(caller):
    """Accept new predictions again."""
    from ledger.errors import LedgerError

    c = get_components()
    try:
        changed = c["guard"].unpause(caller)
    except LedgerError as e:
        fail(e)
    console.print("[green]Ledger unpaused[/]" if changed else "Ledger was not paused")


@admin.command("oracle-grant")
@click.argument("identity")
@caller_option
def admin_oracle_grant(identity, caller):
    """Allow IDENTITY to resolve any prediction."""
    from ledger.errors import LedgerError

    c = get_components()
    try:
        changed = c["guard"].grant_oracle(caller, identity)
    except LedgerError as e:
        fail(e)
    console.print(f"[green]Oracle role granted to {identity}[/]" if changed else f"{identity} is already an oracle")


@admin.command("oracle-revoke")
@click.argument("identity")
@caller_option
def admin_oracle_revoke(identity, caller):
    """Remove IDENTITY from the oracle set."""
    from ledger.errors import LedgerError

    c = get_components()
    try:
        changed = c["guard"].revoke_oracle(caller, identity)
    except LedgerError as e:
        fail(e)
    console.print(f"[green]Oracle role revoked from {identity}[/]" if changed else f"{identity} was not an oracle")


@admin.command("bulk-resolve")
@click.argument("source", type=click.File("r"))
@caller_option
def admin_bulk_resolve(source, caller):
    """Resolve many predictions from a JSON file ('-' for stdin).

    Expects a list of {"id": 1, "actual_price": "54000.5"} objects.
    """
    from ledger.errors import LedgerError

    c = get_components()
    decimals = c["config"].ledger.price_decimals
    try:
        raw = json.load(source)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Invalid JSON: {e}", param_hint="source")
    if not isinstance(raw, list):
        raise click.BadParameter("Expected a JSON list", param_hint="source")

    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            items.append(entry)
            continue
        item = dict(entry)
        price = item.get("actual_price")
        if isinstance(price, (str, int, float)) and not isinstance(price, bool):
            try:
                item["actual_price"] = parse_price(str(price), decimals, "actual_price")
            except click.BadParameter:
                item["actual_price"] = None
        items.append(item)

    try:
        report = c["guard"].bulk_resolve(caller, items)
    except LedgerError as e:
        fail(e)

    console.print(
        f"[green]{report['resolved']} resolved[/], "
        f"{'[red]' if report['failed'] else ''}{report['failed']} failed{'[/]' if report['failed'] else ''}"
    )
    for err in report["errors"]:
        console.print(f"  #{err['prediction_id']}: {err['error']}")

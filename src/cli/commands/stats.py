"""Accuracy statistics and report commands."""

import json

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cli.utils import get_components
from shared_types import Timeframe

console = Console()


def _breakdown_table(title: str, label: str, rows: dict) -> Table:
    table = Table(show_header=True, title=title)
    table.add_column(label, style="green")
    table.add_column("Resolved", justify="right")
    table.add_column("Accurate", justify="right")
    table.add_column("Rate", justify="right")
    table.add_column("Avg accuracy", justify="right")
    for key, perf in rows.items():
        table.add_row(
            key,
            str(perf.get("total", perf.get("resolved_predictions", 0))),
            str(perf.get("accurate", perf.get("accurate_predictions", 0))),
            f"{perf['accuracy_rate']:.2f}%",
            f"{perf['average_accuracy']:.2f}%",
        )
    return table


def _echo_json(data) -> None:
    click.echo(json.dumps(data, default=str, indent=2))


@click.group()
def stats():
    """Accuracy statistics per user, model and asset."""
    pass


@stats.command("user")
@click.argument("predictor")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def stats_user(predictor, as_json):
    """Performance report for one predictor."""
    c = get_components()
    report = c["views"].user_performance(predictor)
    if as_json:
        _echo_json(report)
        return

    overall = report["overall"]
    console.print(Panel(
        f"Predictions: {overall['total_predictions']}  |  "
        f"Accurate: {overall['accurate_predictions']}  |  "
        f"Rate: {overall['accuracy_rate']:.2f}%  |  "
        f"Avg accuracy: {overall['average_accuracy']:.2f}%",
        title=f"[bold]{predictor}[/]",
    ))
    if report["asset_performance"]:
        console.print(_breakdown_table("By asset", "Asset", report["asset_performance"]))
    if report["model_performance"]:
        console.print(_breakdown_table("By model", "Model", report["model_performance"]))


@stats.command("model")
@click.argument("model_type")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def stats_model(model_type, as_json):
    """Performance report for one model label."""
    c = get_components()
    report = c["views"].model_report(model_type)
    if as_json:
        _echo_json(report)
        return

    overall = report["overall"]
    console.print(Panel(
        f"Predictions: {overall['total_predictions']}  |  "
        f"Resolved: {overall['resolved_predictions']}  |  "
        f"Rate: {overall['accuracy_rate']:.2f}%  |  "
        f"Avg accuracy: {overall['average_accuracy']:.2f}%",
        title=f"[bold]{model_type}[/]",
    ))
    if report["asset_performance"]:
        console.print(_breakdown_table("By asset", "Asset", report["asset_performance"]))


@stats.command("compare")
@click.argument("model_types", nargs=-1, required=True)
def stats_compare(model_types):
    """Rank model labels by accuracy rate."""
    c = get_components()
    rows = c["views"].compare_models(list(model_types))

    table = Table(show_header=True, title="Model comparison")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Model", style="green")
    table.add_column("Rate", justify="right")
    table.add_column("Avg accuracy", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Resolved", justify="right")
    for i, r in enumerate(rows, 1):
        table.add_row(
            str(i),
            r["model_type"],
            f"{r['accuracy_rate']:.2f}%",
            f"{r['average_accuracy']:.2f}%",
            str(r["total_predictions"]),
            str(r["resolved_predictions"]),
        )
    console.print(table)


@stats.command("assets")
def stats_assets():
    """Every asset with recorded predictions."""
    c = get_components()
    rows = c["views"].asset_list()
    if not rows:
        console.print("[yellow]No predictions recorded yet.[/]")
        return
    console.print(_breakdown_table("Assets", "Asset", {r["asset"]: r for r in rows}))


@stats.command("asset")
@click.argument("asset")
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def stats_asset(asset, as_json):
    """Per-model breakdown for one asset."""
    c = get_components()
    report = c["views"].asset_stats(asset)
    if as_json:
        _echo_json(report)
        return

    overall = report["overall"]
    console.print(
        f"[bold]{asset}[/]: {overall['total_predictions']} predictions, "
        f"{overall['resolved_predictions']} resolved, rate {overall['accuracy_rate']:.2f}%"
    )
    if report["model_performance"]:
        console.print(_breakdown_table("By model", "Model", report["model_performance"]))


@stats.command("analysis")
@click.argument("asset")
@click.option("--timeframe", type=click.Choice([t.value for t in Timeframe]), default=None)
def stats_analysis(asset, timeframe):
    """Sentiment and best/worst calls for an asset over a window."""
    c = get_components()
    timeframe = timeframe or c["config"].queries.default_timeframe
    report = c["views"].asset_analysis(asset, timeframe)
    _echo_json({
        **report,
        "most_accurate": [p.to_dict() for p in report["most_accurate"]],
        "least_accurate": [p.to_dict() for p in report["least_accurate"]],
    })


@stats.command("trending")
@click.option("--limit", "-n", default=None, type=click.IntRange(min=1))
def stats_trending(limit):
    """Assets ranked by recent prediction activity."""
    c = get_components()
    rows = c["views"].trending(limit)
    if not rows:
        console.print("[yellow]No activity yet.[/]")
        return

    table = Table(show_header=True, title="Trending assets (24h)")
    table.add_column("Asset", style="green")
    table.add_column("Last 24h", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Score", justify="right", style="cyan")
    for r in rows:
        table.add_row(
            r["asset"], str(r["recent_predictions"]), str(r["total_predictions"]), str(r["trend_score"])
        )
    console.print(table)


@stats.command("system")
def stats_system():
    """Usage and accuracy over the most recent predictions."""
    c = get_components()
    _echo_json(c["views"].system_stats())


@stats.command("audit")
@click.option("--rebuild", is_flag=True, help="Replace stored aggregates with the event-log fold")
def stats_audit(rebuild):
    """Check stored aggregates against the event log."""
    c = get_components()
    events = c["ledger"].events()
    discrepancies = c["stats"].audit(events)

    if not discrepancies:
        console.print(f"[green]Statistics consistent[/] ({len(events)} events)")
        return

    for d in discrepancies:
        console.print(f"[red]{d['kind']} {d['key']}[/]: stored={d['stored']} expected={d['expected']}")
    if rebuild:
        applied = c["stats"].rebuild(events)
        console.print(f"[green]Rebuilt statistics from {applied} events[/]")
    else:
        raise SystemExit(1)

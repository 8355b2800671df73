"""Prediction ledger CLI commands."""

import json
import time

import click
from rich.console import Console
from rich.table import Table

from cli.utils import fail, format_price, get_components, parse_price

console = Console()

IDENTITY_ENV = "PREDICTOR_IDENTITY"


def _prediction_table(rows, decimals: int, title: str) -> Table:
    table = Table(show_header=True, title=title)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Predictor", max_width=14)
    table.add_column("Asset", style="green")
    table.add_column("Model")
    table.add_column("Current", justify="right")
    table.add_column("Predicted", justify="right")
    table.add_column("Actual", justify="right")
    table.add_column("Score", justify="right")

    for p in rows:
        if not p.resolved:
            score = "[dim]pending[/]"
        elif p.was_accurate:
            score = f"[green]{p.accuracy_score / 100:.2f}%[/]"
        else:
            score = f"[red]{p.accuracy_score / 100:.2f}%[/]"
        table.add_row(
            str(p.id),
            p.predictor,
            p.asset,
            p.model_type,
            format_price(p.current_price, decimals),
            format_price(p.predicted_price, decimals),
            format_price(p.actual_price, decimals),
            score,
        )
    return table


@click.group()
def predictions():
    """Submit, resolve and browse predictions."""
    pass


@predictions.command("submit")
@click.argument("asset")
@click.argument("current_price")
@click.argument("predicted_price")
@click.option("--model", "model_type", required=True, help="Model label, e.g. LSTM")
@click.option("--target-time", type=int, help="Unix timestamp the prediction is for")
@click.option("--horizon", type=float, help="Hours from now (alternative to --target-time)")
@click.option("--metadata", default="{}", help="Opaque metadata stored verbatim")
@click.option("--caller", envvar=IDENTITY_ENV, required=True, help="Predictor identity")
def predictions_submit(asset, current_price, predicted_price, model_type, target_time, horizon, metadata, caller):
    """Record a new price prediction. Prices are decimal strings."""
    from ledger.errors import LedgerError

    if (target_time is None) == (horizon is None):
        raise click.UsageError("Give exactly one of --target-time or --horizon")

    c = get_components()
    decimals = c["config"].ledger.price_decimals
    if horizon is not None:
        target_time = int(time.time() + horizon * 3600)

    try:
        prediction_id = c["ledger"].submit(
            predictor=caller,
            asset=asset,
            current_price=parse_price(current_price, decimals, "current_price"),
            predicted_price=parse_price(predicted_price, decimals, "predicted_price"),
            target_time=target_time,
            model_type=model_type,
            metadata=metadata,
        )
    except LedgerError as e:
        fail(e)

    console.print(f"[green]Recorded prediction #{prediction_id}[/] for {asset}")


@predictions.command("resolve")
@click.argument("prediction_id", type=int)
@click.argument("actual_price")
@click.option("--caller", envvar=IDENTITY_ENV, required=True, help="Predictor or oracle identity")
def predictions_resolve(prediction_id, actual_price, caller):
    """Score a prediction against the observed price."""
    from ledger.errors import LedgerError

    c = get_components()
    decimals = c["config"].ledger.price_decimals
    try:
        result = c["ledger"].resolve(
            prediction_id, parse_price(actual_price, decimals, "actual_price"), caller
        )
    except LedgerError as e:
        fail(e)

    verdict = "[green]accurate[/]" if result.was_accurate else "[red]inaccurate[/]"
    console.print(
        f"Prediction #{prediction_id} resolved: {verdict} ({result.accuracy_score / 100:.2f}%)"
    )


@predictions.command("show")
@click.argument("prediction_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Raw JSON output")
def predictions_show(prediction_id, as_json):
    """Show a single prediction."""
    from ledger.errors import LedgerError

    c = get_components()
    try:
        p = c["ledger"].get(prediction_id)
    except LedgerError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps(p.to_dict(), default=str, indent=2))
        return
    console.print(_prediction_table([p], c["config"].ledger.price_decimals, f"Prediction #{p.id}"))
    if p.metadata and p.metadata != "{}":
        console.print(f"[dim]metadata:[/] {p.metadata}")


@predictions.command("list")
@click.option("--predictor", default=None)
@click.option("--asset", default=None)
@click.option("--model", "model_type", default=None)
@click.option("--status", type=click.Choice(["pending", "resolved", "all"]), default="all")
def predictions_list(predictor, asset, model_type, status):
    """List predictions in creation order, optionally filtered."""
    c = get_components()
    resolved = {"pending": False, "resolved": True}.get(status)
    rows = c["views"].predictions(
        predictor=predictor, asset=asset, model_type=model_type, resolved=resolved
    )

    if not rows:
        console.print("[yellow]No predictions found.[/]")
        return
    console.print(_prediction_table(rows, c["config"].ledger.price_decimals, "Predictions"))


@predictions.command("recent")
@click.option("--page", default=1, type=click.IntRange(min=1))
@click.option("--limit", "-n", default=10, type=click.IntRange(min=1))
def predictions_recent(page, limit):
    """Newest predictions first."""
    c = get_components()
    rows = c["ledger"].recent(page=page, limit=limit)

    if not rows:
        console.print("[yellow]No predictions found.[/]")
        return
    console.print(
        _prediction_table(rows, c["config"].ledger.price_decimals, f"Recent predictions (page {page})")
    )


@predictions.command("accuracy")
@click.argument("predicted_price")
@click.argument("actual_price")
@click.option("--threshold", type=click.IntRange(0, 10000), default=None,
              help="Threshold in basis points (defaults to the ledger's)")
def predictions_accuracy(predicted_price, actual_price, threshold):
    """Score a hypothetical prediction without recording it."""
    from ledger.accuracy import calculate_accuracy, is_accurate

    c = get_components()
    decimals = c["config"].ledger.price_decimals
    predicted = parse_price(predicted_price, decimals, "predicted_price")
    actual = parse_price(actual_price, decimals, "actual_price")
    if predicted <= 0 or actual <= 0:
        raise click.BadParameter("Prices must be greater than 0")

    if threshold is None:
        threshold = c["ledger"].config().accuracy_threshold
    score = calculate_accuracy(predicted, actual)
    verdict = "[green]accurate[/]" if is_accurate(score, threshold) else "[red]inaccurate[/]"
    console.print(f"Score: {score} bp ({score / 100:.2f}%) - {verdict} at threshold {threshold} bp")

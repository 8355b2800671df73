"""CLI entry point for the prediction ledger."""

import sys
from pathlib import Path

import click

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.commands import admin, predictions, stats
from cli.config import load_config_model
from cli.logging_config import setup_logging
from cli.utils import console
from observability import log_run_summary


@click.group()
@click.version_option(version="0.1.0")
@click.option("-c", "--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Config file (default: ./predictor.yaml or ~/.predictor/config.yaml)")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx, config_path, verbose, json_logs):
    """Crypto prediction ledger - record, resolve and score price predictions."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    try:
        config = load_config_model(config_path)
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)

    level = "DEBUG" if verbose else config.logging.level
    setup_logging(
        json_mode=json_logs or config.logging.json_output,
        level=level,
        log_file=config.paths.log_file,
    )
    if verbose:
        ctx.call_on_close(log_run_summary)


cli.add_command(predictions)
cli.add_command(stats)
cli.add_command(admin)


if __name__ == "__main__":
    cli()

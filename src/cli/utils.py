"""Shared CLI utilities."""

import sys

import click
import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def get_components(config_path=None):
    """Initialize ledger, stats, views and guard from config."""
    from access import AccessGuard, AccessPolicy
    from cli.config import load_config_model
    from cli.retry import retry_from_config
    from ledger import PredictionLedger
    from queries import LedgerViews
    from stats import StatsEngine

    if config_path is None:
        ctx = click.get_current_context(silent=True)
        root_obj = ctx.find_root().obj if ctx else None
        config_path = (root_obj or {}).get("config_path")

    try:
        config = load_config_model(config_path)
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)

    db_path = config.paths.ledger_db
    settings = config.ledger
    ledger = PredictionLedger(
        db_path,
        accuracy_threshold=settings.accuracy_threshold,
        # Admins resolve through bulk_resolve, so they start out as oracles too.
        bootstrap_oracles=[*settings.admins, *settings.oracles],
        retry_policy=retry_from_config(config.to_dict()),
    )
    stats = StatsEngine(db_path)
    views = LedgerViews(
        ledger,
        stats,
        top_n=config.queries.top_n,
        recent_sample=config.queries.recent_sample,
        trending_limit=config.queries.trending_limit,
    )
    guard = AccessGuard(ledger, AccessPolicy(settings.admins))
    logger.debug("components_ready", db_path=str(db_path), admins=len(settings.admins))

    return {
        "config": config,
        "ledger": ledger,
        "stats": stats,
        "views": views,
        "guard": guard,
    }


def parse_price(value: str, decimals: int, name: str = "price") -> int:
    """Human decimal price on the command line to a fixed-point int."""
    from ledger.accuracy import to_fixed

    try:
        return to_fixed(value, decimals)
    except ValueError:
        raise click.BadParameter(f"{value!r} is not a valid price", param_hint=name)


def format_price(value, decimals: int) -> str:
    from ledger.accuracy import from_fixed

    if value is None:
        return "-"
    return f"{from_fixed(value, decimals):,}"


def fail(error) -> None:
    """Print a ledger error and exit non-zero."""
    console.print(f"[red]{error.code}:[/] {error.message}")
    sys.exit(1)

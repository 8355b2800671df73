"""Retry utilities with exponential backoff."""

import logging
import sqlite3

import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.stdlib.get_logger(__name__)


def commit_retry(
    max_attempts: int = 3,
    min_wait: float = 0.05,
    max_wait: float = 1.0,
    exceptions: tuple = (sqlite3.OperationalError,),
):
    """Retry decorator for ledger write transactions.

    Only lock contention is retried. Domain errors raised inside the
    transaction are never in ``exceptions`` and propagate on the first attempt.

    Args:
        max_attempts: Max retry attempts
        min_wait: Min wait between retries (seconds)
        max_wait: Max wait between retries (seconds)
        exceptions: Exception types to retry on
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_from_config(config: dict):
    """Create commit retry decorator from config dict.

    Args:
        config: Config dict with retry section

    Returns:
        Configured retry decorator
    """
    retry_config = config.get("retry", {})
    return commit_retry(
        max_attempts=retry_config.get("max_attempts", 3),
        min_wait=retry_config.get("min_wait", 0.05),
        max_wait=retry_config.get("max_wait", 1.0),
    )

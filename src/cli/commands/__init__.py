"""CLI command modules."""

from .admin import admin
from .predictions import predictions
from .stats import stats

__all__ = ["admin", "predictions", "stats"]

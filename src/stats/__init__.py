"""Aggregate accuracy statistics derived from ledger events."""

from .engine import StatsEngine
from .projection import ModelPerformance, StatsProjection, StatsTables, UserStats

__all__ = ["ModelPerformance", "StatsEngine", "StatsProjection", "StatsTables", "UserStats"]

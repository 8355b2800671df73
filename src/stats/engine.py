"""Read side of the aggregate statistics plus audit/rebuild from the event log."""

from pathlib import Path
from typing import Iterable

import structlog

from db import read_snapshot, write_transaction
from ledger.models import LedgerEvent

from .projection import ModelPerformance, StatsProjection, StatsTables, UserStats

logger = structlog.get_logger()


class StatsEngine:
    """Per-user and per-model counters maintained by the ledger's projection."""

    def __init__(self, db_path: Path, tables: StatsTables | None = None):
        self.db_path = Path(db_path).expanduser()
        self.tables = tables or StatsTables()

    def user_stats(self, predictor: str) -> UserStats:
        with read_snapshot(self.db_path) as conn:
            return self.tables.load_user(conn, predictor)

    def model_performance(self, model_type: str) -> ModelPerformance:
        with read_snapshot(self.db_path) as conn:
            return self.tables.load_model(conn, model_type)

    def user_accuracy_rate(self, predictor: str) -> int:
        return self.user_stats(predictor).accuracy_rate

    def user_average_accuracy(self, predictor: str) -> int:
        return self.user_stats(predictor).average_accuracy

    def model_accuracy_rate(self, model_type: str) -> int:
        return self.model_performance(model_type).accuracy_rate

    def model_average_accuracy(self, model_type: str) -> int:
        return self.model_performance(model_type).average_accuracy

    def user_model_count(self, predictor: str, model_type: str) -> int:
        return self.user_stats(predictor).per_model_count.get(model_type, 0)

    def user_asset_count(self, predictor: str, asset: str) -> int:
        return self.user_stats(predictor).per_asset_count.get(asset, 0)

    def audit(self, events: Iterable[LedgerEvent]) -> list[dict]:
        """Compare stored aggregates against a fresh fold of ``events``.

        Returns one entry per mismatching user or model; empty when consistent.
        """
        expected = StatsProjection.fold(events)
        with read_snapshot(self.db_path) as conn:
            stored = self.tables.load_all(conn)

        discrepancies = []
        for kind, want, have in (
            ("user", expected.users, stored.users),
            ("model", expected.models, stored.models),
        ):
            for key in sorted(set(want) | set(have)):
                w = want[key].to_dict() if key in want else None
                h = have[key].to_dict() if key in have else None
                if w != h:
                    discrepancies.append({"kind": kind, "key": key, "expected": w, "stored": h})

        if discrepancies:
            logger.warning("stats_audit_mismatch", count=len(discrepancies))
        else:
            logger.info("stats_audit_clean")
        return discrepancies

    def rebuild(self, events: Iterable[LedgerEvent]) -> int:
        """Replace stored aggregates with a fold of ``events``. Returns events applied."""
        applied = 0
        with write_transaction(self.db_path) as conn:
            self.tables.clear(conn)
            for event in events:
                self.tables.apply(conn, event)
                applied += 1
        logger.info("stats_rebuilt", events=applied)
        return applied

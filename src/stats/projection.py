"""Statistics projection over ledger events.

The same fold exists twice: ``StatsProjection`` keeps aggregates in memory and
can be rebuilt from the full event log, ``StatsTables`` applies events
incrementally to SQLite inside the ledger's write transaction.
"""

import sqlite3
from dataclasses import dataclass, field
from typing import Iterable

from ledger.accuracy import BASIS_POINTS
from ledger.models import LedgerEvent
from shared_types import EventType, LabelKind


def rate_bp(part: int, total: int) -> int:
    """part / total in basis points, 0 when total is 0."""
    return part * BASIS_POINTS // total if total else 0


def average_bp(score_sum: int, total: int) -> int:
    return score_sum // total if total else 0


@dataclass
class UserStats:
    predictor: str
    total_predictions: int = 0
    accurate_predictions: int = 0
    total_accuracy_score: int = 0
    per_model_count: dict[str, int] = field(default_factory=dict)
    per_asset_count: dict[str, int] = field(default_factory=dict)

    @property
    def accuracy_rate(self) -> int:
        # Denominator includes unresolved predictions.
        return rate_bp(self.accurate_predictions, self.total_predictions)

    @property
    def average_accuracy(self) -> int:
        return average_bp(self.total_accuracy_score, self.total_predictions)

    def to_dict(self) -> dict:
        return {
            "predictor": self.predictor,
            "total_predictions": self.total_predictions,
            "accurate_predictions": self.accurate_predictions,
            "total_accuracy_score": self.total_accuracy_score,
            "accuracy_rate": self.accuracy_rate,
            "average_accuracy": self.average_accuracy,
            "per_model_count": dict(self.per_model_count),
            "per_asset_count": dict(self.per_asset_count),
        }


@dataclass
class ModelPerformance:
    model_type: str
    total_predictions: int = 0
    accurate_predictions: int = 0
    total_accuracy_score: int = 0

    @property
    def accuracy_rate(self) -> int:
        return rate_bp(self.accurate_predictions, self.total_predictions)

    @property
    def average_accuracy(self) -> int:
        return average_bp(self.total_accuracy_score, self.total_predictions)

    def to_dict(self) -> dict:
        return {
            "model_type": self.model_type,
            "total_predictions": self.total_predictions,
            "accurate_predictions": self.accurate_predictions,
            "total_accuracy_score": self.total_accuracy_score,
            "accuracy_rate": self.accuracy_rate,
            "average_accuracy": self.average_accuracy,
        }


class StatsProjection:
    """In-memory fold of PredictionCreated / PredictionResolved events."""

    def __init__(self):
        self.users: dict[str, UserStats] = {}
        self.models: dict[str, ModelPerformance] = {}

    @classmethod
    def fold(cls, events: Iterable[LedgerEvent]) -> "StatsProjection":
        projection = cls()
        for event in events:
            projection.apply(event)
        return projection

    def apply(self, event: LedgerEvent) -> None:
        p = event.payload
        if event.type == EventType.PREDICTION_CREATED:
            user = self.users.setdefault(p["predictor"], UserStats(p["predictor"]))
            user.total_predictions += 1
            user.per_model_count[p["model_type"]] = user.per_model_count.get(p["model_type"], 0) + 1
            user.per_asset_count[p["asset"]] = user.per_asset_count.get(p["asset"], 0) + 1
            model = self.models.setdefault(p["model_type"], ModelPerformance(p["model_type"]))
            model.total_predictions += 1
        elif event.type == EventType.PREDICTION_RESOLVED:
            accurate = 1 if p["was_accurate"] else 0
            for agg in (
                self.users.setdefault(p["predictor"], UserStats(p["predictor"])),
                self.models.setdefault(p["model_type"], ModelPerformance(p["model_type"])),
            ):
                agg.accurate_predictions += accurate
                agg.total_accuracy_score += p["accuracy_score"]


class StatsTables:
    """Incremental SQLite projection, applied inside the ledger's transaction."""

    def init_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS user_stats (
                predictor TEXT PRIMARY KEY,
                total_predictions INTEGER NOT NULL DEFAULT 0,
                accurate_predictions INTEGER NOT NULL DEFAULT 0,
                total_accuracy_score INTEGER NOT NULL DEFAULT 0
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS user_label_counts (
                predictor TEXT NOT NULL,
                kind TEXT NOT NULL CHECK(kind IN ('model','asset')),
                label TEXT NOT NULL,
                count INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (predictor, kind, label)
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS model_performance (
                model_type TEXT PRIMARY KEY,
                total_predictions INTEGER NOT NULL DEFAULT 0,
                accurate_predictions INTEGER NOT NULL DEFAULT 0,
                total_accuracy_score INTEGER NOT NULL DEFAULT 0
            )
        """)

    def apply(self, conn: sqlite3.Connection, event: LedgerEvent) -> None:
        p = event.payload
        if event.type == EventType.PREDICTION_CREATED:
            conn.execute(
                """INSERT INTO user_stats (predictor, total_predictions) VALUES (?, 1)
                ON CONFLICT(predictor) DO UPDATE SET total_predictions = total_predictions + 1""",
                (p["predictor"],),
            )
            for kind, label in ((LabelKind.MODEL, p["model_type"]), (LabelKind.ASSET, p["asset"])):
                conn.execute(
                    """INSERT INTO user_label_counts (predictor, kind, label, count) VALUES (?, ?, ?, 1)
                    ON CONFLICT(predictor, kind, label) DO UPDATE SET count = count + 1""",
                    (p["predictor"], str(kind), label),
                )
            conn.execute(
                """INSERT INTO model_performance (model_type, total_predictions) VALUES (?, 1)
                ON CONFLICT(model_type) DO UPDATE SET total_predictions = total_predictions + 1""",
                (p["model_type"],),
            )
        elif event.type == EventType.PREDICTION_RESOLVED:
            accurate = 1 if p["was_accurate"] else 0
            conn.execute(
                """UPDATE user_stats
                SET accurate_predictions = accurate_predictions + ?,
                    total_accuracy_score = total_accuracy_score + ?
                WHERE predictor = ?""",
                (accurate, p["accuracy_score"], p["predictor"]),
            )
            conn.execute(
                """UPDATE model_performance
                SET accurate_predictions = accurate_predictions + ?,
                    total_accuracy_score = total_accuracy_score + ?
                WHERE model_type = ?""",
                (accurate, p["accuracy_score"], p["model_type"]),
            )

    def clear(self, conn: sqlite3.Connection) -> None:
        for table in ("user_stats", "user_label_counts", "model_performance"):
            conn.execute(f"DELETE FROM {table}")

    def load_user(self, conn: sqlite3.Connection, predictor: str) -> UserStats:
        stats = UserStats(predictor)
        row = conn.execute(
            "SELECT * FROM user_stats WHERE predictor = ?", (predictor,)
        ).fetchone()
        if row:
            stats.total_predictions = row["total_predictions"]
            stats.accurate_predictions = row["accurate_predictions"]
            stats.total_accuracy_score = row["total_accuracy_score"]
        for r in conn.execute(
            "SELECT kind, label, count FROM user_label_counts WHERE predictor = ? ORDER BY label",
            (predictor,),
        ):
            target = stats.per_model_count if r["kind"] == LabelKind.MODEL else stats.per_asset_count
            target[r["label"]] = r["count"]
        return stats

    def load_model(self, conn: sqlite3.Connection, model_type: str) -> ModelPerformance:
        perf = ModelPerformance(model_type)
        row = conn.execute(
            "SELECT * FROM model_performance WHERE model_type = ?", (model_type,)
        ).fetchone()
        if row:
            perf.total_predictions = row["total_predictions"]
            perf.accurate_predictions = row["accurate_predictions"]
            perf.total_accuracy_score = row["total_accuracy_score"]
        return perf

    def load_all(self, conn: sqlite3.Connection) -> StatsProjection:
        """Read every stored aggregate into a StatsProjection for comparison."""
        projection = StatsProjection()
        for row in conn.execute("SELECT predictor FROM user_stats ORDER BY predictor").fetchall():
            projection.users[row["predictor"]] = self.load_user(conn, row["predictor"])
        for row in conn.execute(
            "SELECT model_type FROM model_performance ORDER BY model_type"
        ).fetchall():
            projection.models[row["model_type"]] = self.load_model(conn, row["model_type"])
        return projection

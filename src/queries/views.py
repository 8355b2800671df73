"""Composite read views assembled from the ledger and the statistics engine."""

from typing import Optional

import structlog

from ledger.accuracy import bp_to_percent
from ledger.store import PredictionLedger
from stats.engine import StatsEngine

from . import projections as proj

logger = structlog.get_logger()

RECENT_SAMPLE_SIZE = 100
ACTIVITY_DAYS = 7


def _prediction_point(p) -> dict:
    return {
        "id": p.id,
        "created_at": p.created_at,
        "current_price": p.current_price,
        "predicted_price": p.predicted_price,
        "actual_price": p.actual_price,
        "accuracy": p.accuracy_score / 100,
    }


class LedgerViews:
    """Read-only reports. Nothing here writes to the ledger."""

    def __init__(
        self,
        ledger: PredictionLedger,
        stats: StatsEngine,
        top_n: int = 5,
        recent_sample: int = RECENT_SAMPLE_SIZE,
        trending_limit: int = 10,
    ):
        self.ledger = ledger
        self.stats = stats
        self.top_n = top_n
        self.recent_sample = recent_sample
        self.trending_limit = trending_limit

    def predictions(
        self,
        predictor: Optional[str] = None,
        asset: Optional[str] = None,
        model_type: Optional[str] = None,
        resolved: Optional[bool] = None,
    ) -> list:
        # Narrow with the cheapest indexed lookup first, then filter the rest.
        if predictor is not None:
            base = self.ledger.by_predictor(predictor)
        elif asset is not None:
            base = self.ledger.by_asset(asset)
        elif model_type is not None:
            base = self.ledger.by_model(model_type)
        else:
            base = self.ledger.all()
        return proj.filter_predictions(
            base, resolved=resolved, asset=asset, model_type=model_type, predictor=predictor
        )

    def user_performance(self, predictor: str) -> dict:
        stats = self.stats.user_stats(predictor)
        predictions = self.ledger.by_predictor(predictor)
        return {
            "predictor": predictor,
            "overall": {
                "total_predictions": stats.total_predictions,
                "accurate_predictions": stats.accurate_predictions,
                "accuracy_rate": bp_to_percent(stats.accuracy_rate),
                "average_accuracy": bp_to_percent(stats.average_accuracy),
            },
            "asset_performance": proj.breakdown(predictions, lambda p: p.asset),
            "model_performance": proj.breakdown(predictions, lambda p: p.model_type),
            "timeline": proj.timeline(predictions),
        }

    def model_report(self, model_type: str) -> dict:
        predictions = self.ledger.by_model(model_type)
        return {
            "model_type": model_type,
            "overall": proj.summarize(predictions),
            "asset_performance": proj.breakdown(predictions, lambda p: p.asset),
            "timeline": proj.timeline(predictions),
        }

    def compare_models(self, model_types: list[str]) -> list[dict]:
        """One row per label, best accuracy rate first. Unknown labels give zero rows."""
        rows = []
        for label in model_types:
            perf = self.stats.model_performance(label)
            resolved = proj.filter_predictions(self.ledger.by_model(label), resolved=True)
            rows.append({
                "model_type": label,
                "accuracy_rate": bp_to_percent(perf.accuracy_rate),
                "average_accuracy": bp_to_percent(perf.average_accuracy),
                "total_predictions": perf.total_predictions,
                "resolved_predictions": len(resolved),
            })
        rows.sort(key=lambda r: r["accuracy_rate"], reverse=True)
        return rows

    def asset_list(self) -> list[dict]:
        result = []
        for asset in self.ledger.assets():
            summary = proj.summarize(self.ledger.by_asset(asset))
            result.append({"asset": asset, **summary})
        return result

    def asset_stats(self, asset: str) -> dict:
        predictions = self.ledger.by_asset(asset)
        by_model: dict[str, list] = {}
        for p in predictions:
            by_model.setdefault(p.model_type, []).append(p)
        return {
            "asset": asset,
            "overall": proj.summarize(predictions),
            "model_performance": {label: proj.summarize(ps) for label, ps in by_model.items()},
        }

    def asset_analysis(self, asset: str, timeframe: Optional[str] = None) -> dict:
        tf = proj.parse_timeframe(timeframe)
        windowed = proj.in_timeframe(self.ledger.by_asset(asset), self.ledger.clock(), tf)
        resolved = [p for p in windowed if p.resolved]
        ranked = proj.rank_by_accuracy(resolved, self.top_n)
        summary = proj.summarize(windowed)
        return {
            "asset": asset,
            "timeframe": str(tf),
            "summary": {
                "total_predictions": summary["total_predictions"],
                "resolved_predictions": summary["resolved_predictions"],
                "average_accuracy": summary["average_accuracy"],
            },
            "sentiment": proj.sentiment(windowed),
            "price_data": sorted(
                (_prediction_point(p) for p in resolved), key=lambda pt: pt["created_at"]
            ),
            "most_accurate": ranked["most_accurate"],
            "least_accurate": ranked["least_accurate"],
        }

    def trending(self, limit: Optional[int] = None) -> list[dict]:
        return proj.trending(self.ledger.all(), self.ledger.clock(), limit or self.trending_limit)

    def system_stats(self) -> dict:
        """Usage and accuracy over the most recent predictions."""
        summary = self.ledger.summary()
        sample = self.ledger.recent(page=1, limit=self.recent_sample)
        resolved = proj.summarize(sample)
        now = self.ledger.clock()
        window = ACTIVITY_DAYS * proj.SECONDS_PER_DAY
        last_week = [p for p in sample if p.created_at > now - window]
        logger.debug("system_stats_computed", sample_size=len(sample))
        return {
            "ledger": summary,
            "recent": {
                "sample_size": len(sample),
                "resolved_predictions": resolved["resolved_predictions"],
                "accurate_predictions": resolved["accurate_predictions"],
                "accuracy_rate": resolved["accuracy_rate"],
                "average_accuracy": resolved["average_accuracy"],
            },
            "usage": {
                "models": proj.usage_ranking(p.model_type for p in sample),
                "assets": proj.usage_ranking(p.asset for p in sample),
            },
            "activity": {
                "last_7_days": len(last_week),
                "daily_average": len(last_week) / ACTIVITY_DAYS,
            },
        }

"""Pure read-side projections over lists of predictions.

Percentages here are floats derived from basis points and computed over
resolved predictions only, unlike the ledger's per-user counters whose
denominator is every submitted prediction.
"""

from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from ledger.models import Prediction
from shared_types import Sentiment, Timeframe

SECONDS_PER_DAY = 86_400
TRENDING_WINDOW_SECONDS = SECONDS_PER_DAY

TIMEFRAME_SECONDS = {
    Timeframe.DAY: SECONDS_PER_DAY,
    Timeframe.WEEK: 7 * SECONDS_PER_DAY,
    Timeframe.MONTH: 30 * SECONDS_PER_DAY,
    Timeframe.QUARTER: 90 * SECONDS_PER_DAY,
}


def parse_timeframe(value: str | Timeframe | None) -> Timeframe:
    """Unknown or missing labels fall back to the 7-day window."""
    try:
        return Timeframe(value)
    except ValueError:
        return Timeframe.WEEK


def iso_date(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def filter_predictions(
    predictions: Iterable[Prediction],
    resolved: Optional[bool] = None,
    asset: Optional[str] = None,
    model_type: Optional[str] = None,
    predictor: Optional[str] = None,
) -> list[Prediction]:
    """Keep predictions matching every supplied criterion."""
    result = []
    for p in predictions:
        if resolved is not None and p.resolved != resolved:
            continue
        if asset is not None and p.asset != asset:
            continue
        if model_type is not None and p.model_type != model_type:
            continue
        if predictor is not None and p.predictor != predictor:
            continue
        result.append(p)
    return result


def in_timeframe(
    predictions: Iterable[Prediction], now: int, timeframe: str | Timeframe | None = None
) -> list[Prediction]:
    window = TIMEFRAME_SECONDS[parse_timeframe(timeframe)]
    return [p for p in predictions if now - window <= p.created_at <= now]


def _percent_rate(accurate: int, total: int) -> float:
    return accurate / total * 100 if total else 0.0


def _percent_average(score_sum: int, total: int) -> float:
    return score_sum / total / 100 if total else 0.0


def summarize(predictions: Iterable[Prediction]) -> dict:
    """Counts over all predictions, rates over the resolved ones."""
    predictions = list(predictions)
    resolved = [p for p in predictions if p.resolved]
    accurate = sum(1 for p in resolved if p.was_accurate)
    score_sum = sum(p.accuracy_score for p in resolved)
    return {
        "total_predictions": len(predictions),
        "resolved_predictions": len(resolved),
        "accurate_predictions": accurate,
        "accuracy_rate": _percent_rate(accurate, len(resolved)),
        "average_accuracy": _percent_average(score_sum, len(resolved)),
    }


def breakdown(
    predictions: Iterable[Prediction], key: Callable[[Prediction], str]
) -> dict[str, dict]:
    """Partition resolved predictions by ``key`` and score each partition."""
    groups: dict[str, list[Prediction]] = defaultdict(list)
    for p in predictions:
        if p.resolved:
            groups[key(p)].append(p)
    result = {}
    for label, members in groups.items():
        accurate = sum(1 for p in members if p.was_accurate)
        score_sum = sum(p.accuracy_score for p in members)
        result[label] = {
            "total": len(members),
            "accurate": accurate,
            "accuracy_rate": _percent_rate(accurate, len(members)),
            "average_accuracy": _percent_average(score_sum, len(members)),
        }
    return result


def classify_sentiment(prediction: Prediction) -> Sentiment:
    if prediction.predicted_price > prediction.current_price:
        return Sentiment.BULLISH
    if prediction.predicted_price < prediction.current_price:
        return Sentiment.BEARISH
    return Sentiment.NEUTRAL


def sentiment(predictions: Iterable[Prediction]) -> dict:
    counts = Counter(classify_sentiment(p) for p in predictions)
    bullish, bearish = counts[Sentiment.BULLISH], counts[Sentiment.BEARISH]
    if bullish > bearish:
        overall = Sentiment.BULLISH
    elif bearish > bullish:
        overall = Sentiment.BEARISH
    else:
        overall = Sentiment.NEUTRAL
    return {
        "bullish": bullish,
        "bearish": bearish,
        "neutral": counts[Sentiment.NEUTRAL],
        "sentiment": str(overall),
    }


def rank_by_accuracy(predictions: Iterable[Prediction], n: int = 5) -> dict[str, list[Prediction]]:
    """Top and bottom ``n`` resolved predictions by accuracy score."""
    ordered = sorted(
        (p for p in predictions if p.resolved), key=lambda p: p.accuracy_score, reverse=True
    )
    least = ordered[-n:] if n > 0 else []
    return {"most_accurate": ordered[:n], "least_accurate": list(reversed(least))}


def trending(predictions: Iterable[Prediction], now: int, limit: int = 10) -> list[dict]:
    """Rank assets by 2 * (activity in the last 24h) + all-time activity."""
    totals: Counter = Counter()
    recent: Counter = Counter()
    for p in predictions:
        totals[p.asset] += 1
        if p.created_at > now - TRENDING_WINDOW_SECONDS:
            recent[p.asset] += 1
    rows = [
        {
            "asset": asset,
            "total_predictions": total,
            "recent_predictions": recent[asset],
            "trend_score": recent[asset] * 2 + total,
        }
        for asset, total in totals.items()
    ]
    rows.sort(key=lambda r: r["trend_score"], reverse=True)
    return rows[:limit]


def usage_ranking(labels: Iterable[str]) -> dict[str, int]:
    """Label -> frequency, most used first."""
    return dict(Counter(labels).most_common())


def timeline(predictions: Iterable[Prediction]) -> list[dict]:
    """Resolved predictions as chart points, oldest first."""
    points = [
        {
            "prediction_id": p.id,
            "created_at": p.created_at,
            "date": iso_date(p.created_at),
            "accuracy": p.accuracy_score / 100,
            "asset": p.asset,
            "model_type": p.model_type,
        }
        for p in predictions
        if p.resolved
    ]
    return sorted(points, key=lambda point: point["created_at"])

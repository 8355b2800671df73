"""Data models for the prediction ledger and its domain events."""

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from shared_types import EventType

from .accuracy import DEFAULT_ACCURACY_THRESHOLD


@dataclass(frozen=True)
class Prediction:
    id: int
    predictor: str
    asset: str
    current_price: int
    predicted_price: int
    created_at: int
    target_time: int
    model_type: str
    metadata: str = "{}"
    resolved: bool = False
    actual_price: Optional[int] = None
    was_accurate: Optional[bool] = None
    accuracy_score: Optional[int] = None

    @classmethod
    def from_row(cls, row) -> "Prediction":
        resolved = bool(row["resolved"])
        return cls(
            id=row["id"],
            predictor=row["predictor"],
            asset=row["asset"],
            current_price=int(row["current_price"]),
            predicted_price=int(row["predicted_price"]),
            created_at=row["created_at"],
            target_time=row["target_time"],
            model_type=row["model_type"],
            metadata=row["metadata"],
            resolved=resolved,
            actual_price=int(row["actual_price"]) if resolved else None,
            was_accurate=bool(row["was_accurate"]) if resolved else None,
            accuracy_score=row["accuracy_score"] if resolved else None,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ResolutionResult:
    prediction_id: int
    was_accurate: bool
    accuracy_score: int


@dataclass
class GlobalConfig:
    accuracy_threshold: int = DEFAULT_ACCURACY_THRESHOLD
    paused: bool = False
    oracle_addresses: set[str] = field(default_factory=set)
    prediction_counter: int = 0


@dataclass(frozen=True)
class LedgerEvent:
    """One entry of the append-only event log."""

    type: EventType
    payload: dict[str, Any]
    emitted_at: int
    seq: Optional[int] = None

    @property
    def prediction_id(self) -> Optional[int]:
        return self.payload.get("id")

    def payload_json(self) -> str:
        # Prices exceed 64-bit range; keep them as strings on disk.
        return json.dumps(self.payload, sort_keys=True, default=str)

    @classmethod
    def from_row(cls, row) -> "LedgerEvent":
        return cls(
            type=EventType(row["event_type"]),
            payload=json.loads(row["payload"]),
            emitted_at=row["emitted_at"],
            seq=row["seq"],
        )


def prediction_created(prediction: Prediction, emitted_at: int) -> LedgerEvent:
    payload = prediction.to_dict()
    for key in ("current_price", "predicted_price"):
        payload[key] = str(payload[key])
    return LedgerEvent(EventType.PREDICTION_CREATED, payload, emitted_at)


def prediction_resolved(
    prediction: Prediction, result: ResolutionResult, emitted_at: int
) -> LedgerEvent:
    return LedgerEvent(
        EventType.PREDICTION_RESOLVED,
        {
            "id": prediction.id,
            "predictor": prediction.predictor,
            "asset": prediction.asset,
            "model_type": prediction.model_type,
            "actual_price": str(prediction.actual_price),
            "was_accurate": result.was_accurate,
            "accuracy_score": result.accuracy_score,
        },
        emitted_at,
    )


def user_stats_updated(predictor: str, stats: dict, emitted_at: int) -> LedgerEvent:
    return LedgerEvent(EventType.USER_STATS_UPDATED, {"predictor": predictor, **stats}, emitted_at)

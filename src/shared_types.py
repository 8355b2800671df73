"""Shared enums and types for the prediction ledger."""

from enum import StrEnum


class EventType(StrEnum):
    PREDICTION_CREATED = "PredictionCreated"
    PREDICTION_RESOLVED = "PredictionResolved"
    USER_STATS_UPDATED = "UserStatsUpdated"
    ACCURACY_THRESHOLD_UPDATED = "AccuracyThresholdUpdated"
    PAUSED = "Paused"
    UNPAUSED = "Unpaused"
    ORACLE_GRANTED = "OracleGranted"
    ORACLE_REVOKED = "OracleRevoked"


class Timeframe(StrEnum):
    DAY = "1d"
    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"


class Sentiment(StrEnum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Capability(StrEnum):
    ADMIN = "admin"
    ORACLE = "oracle"


class LabelKind(StrEnum):
    MODEL = "model"
    ASSET = "asset"

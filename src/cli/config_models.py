"""Pydantic configuration models for the prediction ledger."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ledger.accuracy import BASIS_POINTS, DEFAULT_ACCURACY_THRESHOLD, PRICE_DECIMALS
from shared_types import Timeframe


def _expand_env(value: str) -> str:
    """Resolve a whole-value ``${VAR}`` reference; anything else passes through."""
    if value.startswith("${") and value.endswith("}"):
        return os.getenv(value[2:-1], "")
    return value


class PathsConfig(BaseModel):
    """File paths configuration."""

    ledger_db: Path = Path("~/.predictor/ledger.db")
    log_file: Optional[Path] = None

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in all paths."""
        self.ledger_db = self.ledger_db.expanduser()
        if self.log_file:
            self.log_file = self.log_file.expanduser()
        return self


class LedgerSettings(BaseModel):
    """Initial ledger state, applied when the database is first created."""

    accuracy_threshold: int = DEFAULT_ACCURACY_THRESHOLD
    admins: list[str] = Field(default_factory=list)
    oracles: list[str] = Field(default_factory=list)
    price_decimals: int = PRICE_DECIMALS

    @field_validator("accuracy_threshold")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if not 0 <= v <= BASIS_POINTS:
            raise ValueError(f"accuracy_threshold must be within 0-{BASIS_POINTS}, got {v}")
        return v

    @field_validator("price_decimals")
    @classmethod
    def validate_decimals(cls, v: int) -> int:
        if not 0 <= v <= 36:
            raise ValueError(f"price_decimals must be within 0-36, got {v}")
        return v


class QueryConfig(BaseModel):
    """Defaults for read-side reports."""

    top_n: int = Field(default=5, ge=1)
    recent_sample: int = Field(default=100, ge=1)
    trending_limit: int = Field(default=10, ge=1)
    default_timeframe: Timeframe = Timeframe.WEEK


class RetryConfig(BaseModel):
    """Commit retry configuration for lock contention."""

    max_attempts: int = Field(default=3, ge=1)
    min_wait: float = 0.05
    max_wait: float = 1.0


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    json_output: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class PredictorConfig(BaseModel):
    """Main configuration model."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    queries: QueryConfig = Field(default_factory=QueryConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in role identities; drop those that resolve empty."""
        self.ledger.admins = [v for v in map(_expand_env, self.ledger.admins) if v]
        self.ledger.oracles = [v for v in map(_expand_env, self.ledger.oracles) if v]
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "PredictorConfig":
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump(mode="python")

"""Prediction ledger: submission, resolution and accuracy scoring."""

from .accuracy import (
    BASIS_POINTS,
    DEFAULT_ACCURACY_THRESHOLD,
    PRICE_DECIMALS,
    calculate_accuracy,
    from_fixed,
    is_accurate,
    to_fixed,
)
from .errors import (
    AlreadyResolved,
    LedgerError,
    LedgerUnavailableError,
    NotFound,
    SystemPaused,
    TooEarly,
    Unauthorized,
    ValidationError,
)
from .models import GlobalConfig, LedgerEvent, Prediction, ResolutionResult
from .store import PredictionLedger

__all__ = [
    "BASIS_POINTS",
    "DEFAULT_ACCURACY_THRESHOLD",
    "PRICE_DECIMALS",
    "AlreadyResolved",
    "GlobalConfig",
    "LedgerError",
    "LedgerEvent",
    "LedgerUnavailableError",
    "NotFound",
    "Prediction",
    "PredictionLedger",
    "ResolutionResult",
    "SystemPaused",
    "TooEarly",
    "Unauthorized",
    "ValidationError",
    "calculate_accuracy",
    "from_fixed",
    "is_accurate",
    "to_fixed",
]

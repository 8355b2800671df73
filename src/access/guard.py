"""Authorization gate for privileged ledger operations."""

import functools

import structlog

from ledger.errors import LedgerError, Unauthorized, ValidationError
from ledger.store import PredictionLedger
from shared_types import Capability

from .policy import AccessPolicy

logger = structlog.get_logger()


def requires(capability: Capability):
    """Reject the call before it touches state unless ``caller`` holds ``capability``."""

    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, caller: str, *args, **kwargs):
            if not self.policy.allows(caller, capability, self.ledger):
                logger.warning(
                    "access_denied", caller=caller, operation=method.__name__, required=str(capability)
                )
                raise Unauthorized(
                    f"{capability} privileges required", operation=method.__name__
                )
            return method(self, caller, *args, **kwargs)

        return wrapper

    return decorator


class AccessGuard:
    """Every GlobalConfig mutation and bulk resolution goes through here."""

    def __init__(self, ledger: PredictionLedger, policy: AccessPolicy):
        self.ledger = ledger
        self.policy = policy

    @requires(Capability.ADMIN)
    def set_accuracy_threshold(self, caller: str, threshold: int) -> dict:
        old, new = self.ledger.set_accuracy_threshold(threshold)
        return {"old": old, "new": new}

    @requires(Capability.ADMIN)
    def pause(self, caller: str) -> bool:
        return self.ledger.set_paused(True)

    @requires(Capability.ADMIN)
    def unpause(self, caller: str) -> bool:
        return self.ledger.set_paused(False)

    @requires(Capability.ADMIN)
    def grant_oracle(self, caller: str, identity: str) -> bool:
        return self.ledger.set_oracle(identity, granted=True)

    @requires(Capability.ADMIN)
    def revoke_oracle(self, caller: str, identity: str) -> bool:
        return self.ledger.set_oracle(identity, granted=False)

    @requires(Capability.ADMIN)
    def bulk_resolve(self, caller: str, items: list[dict]) -> dict:
        """Resolve each item in its own transaction; one failure never blocks the rest.

        Items look like ``{"id": 3, "actual_price": 50000 * 10**18}``
        (``prediction_id`` is accepted in place of ``id``).
        """
        if not items:
            raise ValidationError("Predictions list is required and must not be empty", field="items")

        details, errors = [], []
        for item in items:
            if not isinstance(item, dict):
                errors.append({"prediction_id": None, "error": "Invalid prediction data"})
                continue
            prediction_id = item.get("prediction_id") or item.get("id")
            actual_price = item.get("actual_price")
            if not prediction_id or not isinstance(actual_price, int) or actual_price <= 0:
                errors.append({"prediction_id": prediction_id, "error": "Invalid prediction data"})
                continue
            try:
                result = self.ledger.resolve(prediction_id, actual_price, caller, authorized=True)
            except LedgerError as e:
                errors.append({"prediction_id": prediction_id, "error": e.message, "code": e.code})
                continue
            details.append({
                "prediction_id": prediction_id,
                "was_accurate": result.was_accurate,
                "accuracy_score": result.accuracy_score,
            })

        logger.info("bulk_resolve_complete", caller=caller, resolved=len(details), failed=len(errors))
        return {
            "resolved": len(details),
            "failed": len(errors),
            "details": details,
            "errors": errors,
            "summary": {"total": len(items), "successful": len(details), "failed": len(errors)},
        }

"""Access control for privileged ledger operations."""

from .guard import AccessGuard, requires
from .policy import AccessPolicy

__all__ = ["AccessGuard", "AccessPolicy", "requires"]

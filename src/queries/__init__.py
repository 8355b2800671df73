"""Read-only query and projection layer."""

from .views import LedgerViews

__all__ = ["LedgerViews"]

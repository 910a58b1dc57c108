"""Domain entities and output contracts for the hierarchy engine."""

from . import contracts, models

__all__ = ["contracts", "models"]

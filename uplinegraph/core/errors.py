"""Exceptions raised at the engine's I/O boundaries."""

from __future__ import annotations


class UplineGraphError(RuntimeError):
    """Base class for errors surfaced to callers of the package."""


class SnapshotInputError(UplineGraphError):
    """Raised when an input or snapshot file cannot be read or parsed."""


__all__ = ["SnapshotInputError", "UplineGraphError"]

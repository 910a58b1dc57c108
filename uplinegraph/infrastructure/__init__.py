"""Filesystem adapters for inputs, snapshots and reports."""

from . import reports, snapshots

__all__ = ["reports", "snapshots"]

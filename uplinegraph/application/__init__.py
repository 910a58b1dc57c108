"""Application layer: the resolution pipeline and its stages."""

from . import (
    analysis,
    assembly,
    indexing,
    issues,
    normalizer,
    opportunities,
    pipeline,
    resolver,
    synthetic,
)

__all__ = [
    "analysis",
    "assembly",
    "indexing",
    "issues",
    "normalizer",
    "opportunities",
    "pipeline",
    "resolver",
    "synthetic",
]

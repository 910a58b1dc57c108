"""Core utilities shared across application and domain layers."""

from . import config, errors, normalization

__all__ = ["config", "errors", "normalization"]

"""Upline hierarchy resolution engine with layered application surfaces."""

from importlib import import_module

_SUBMODULES = (
    "core",
    "domain",
    "application",
    "infrastructure",
)

for _module_name in _SUBMODULES:
    globals()[_module_name] = import_module(f"{__name__}.{_module_name}")

__all__ = list(_SUBMODULES)

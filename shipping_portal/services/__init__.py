"""Business workflows for the shipping portal."""

from __future__ import annotations

from importlib import import_module
from types import ModuleType
from typing import Final

__all__: Final[list[str]] = ["analytics", "booking", "mail", "notifications", "shipments"]


def __getattr__(name: str) -> ModuleType:
    """Import service modules on first attribute access.

    Raises:
        AttributeError: If an unknown attribute is requested.
    """

    if name in __all__:
        return import_module(f"{__name__}.{name}")
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

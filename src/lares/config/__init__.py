"""Configuration package for lares.

Re-exports the settings symbols so that callers can write::

    from lares.config import get_settings
"""

from __future__ import annotations

from lares.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]

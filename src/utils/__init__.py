"""Utility modules for the storefront catalog service."""

from .config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]

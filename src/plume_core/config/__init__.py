"""Configuration for Plume services."""

from .settings import Settings, settings

__all__ = [
    "Settings",
    "settings",
]

"""
Configuration management.

Configuration file parsing, environment resolution and typed loader settings.
"""

from mdloader.config.loader import Config, load_config
from mdloader.config.resolver import resolve_config
from mdloader.config.settings import LoaderSettings

__all__ = [
    "load_config",
    "Config",
    "resolve_config",
    "LoaderSettings",
]

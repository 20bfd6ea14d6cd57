"""
Configuration management.

Configuration file parsing and environment resolution.
"""

from modelflow.config.loader import Config, load_config, resolve_env
from modelflow.config.resolver import resolve_config

__all__ = [
    "load_config",
    "Config",
    "resolve_config",
    "resolve_env",
]

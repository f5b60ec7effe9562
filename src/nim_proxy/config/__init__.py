"""
Configuration de NIM Proxy.
"""

from .loader import load_config, reload_config, get_config
from .settings import (
    Settings,
    UpstreamConfig,
    DisplayConfig,
    RequestDefaults,
    FallbackModels,
)

__all__ = [
    "load_config",
    "reload_config",
    "get_config",
    "Settings",
    "UpstreamConfig",
    "DisplayConfig",
    "RequestDefaults",
    "FallbackModels",
]

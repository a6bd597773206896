"""
Glimpse application layer - configuration and command line.
"""

from glimpse.app.config import GlimpseConfig, get_config, set_config, reload_config

__all__ = [
    "GlimpseConfig",
    "get_config",
    "set_config",
    "reload_config",
]

"""
E-Commerce Metrics Engine
Configuration Module
"""
from .settings import ConfigTargets, Settings, TargetResolution, get_settings, resolve_targets
from .logging import configure_logging

__all__ = [
    "ConfigTargets",
    "Settings",
    "TargetResolution",
    "get_settings",
    "resolve_targets",
    "configure_logging",
]

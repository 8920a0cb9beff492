"""Configuration package for the interview engine."""
from .app import AppConfig, LlmRoute, SessionSettings, load_config, resolve_route
from .settings import Settings, settings

__all__ = [
    "AppConfig",
    "LlmRoute",
    "SessionSettings",
    "load_config",
    "resolve_route",
    "Settings",
    "settings",
]

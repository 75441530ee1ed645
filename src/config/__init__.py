"""Configuration module for the OSINT pulse service."""

from src.config.settings import (
    AppSettings,
    get_app_settings,
    resolve_activity_settings,
    resolve_cache_settings,
    resolve_fetch_settings,
)

__all__ = [
    "AppSettings",
    "get_app_settings",
    "resolve_activity_settings",
    "resolve_cache_settings",
    "resolve_fetch_settings",
]

"""
Core utilities for KOT Printer.

This package groups non-Flask helpers used across the app:
- config: paths, JSON load/save, typed print settings
- logging: Request ID aware logging filters/formatters and root logger config

Exports are explicit to keep static analyzers (e.g., Pyright) happy.
"""

from .config import (
    DEFAULT_NAME_PATTERNS,
    PrintSettings,
    RestaurantInfo,
    default_config_path,
    default_menu_path,
    get_config_path,
    get_menu_path,
    load_config,
    load_settings,
    save_config,
)
from .logging import (
    JsonFormatter,
    RequestIdFilter,
    configure_logging,
)

__all__ = [
    # config
    "DEFAULT_NAME_PATTERNS",
    "PrintSettings",
    "RestaurantInfo",
    "default_config_path",
    "default_menu_path",
    "get_config_path",
    "get_menu_path",
    "load_config",
    "load_settings",
    "save_config",
    # logging
    "configure_logging",
    "RequestIdFilter",
    "JsonFormatter",
]

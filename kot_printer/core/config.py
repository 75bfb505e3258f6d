"""
Config utilities for KOT Printer.

Responsibilities:
- Resolve config/menu paths with environment and XDG support
- Provide JSON load/save helpers for the app's config
- Build typed print settings from the saved config plus env overrides
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

# Ordered: the first pattern with a matching usable device wins.
DEFAULT_NAME_PATTERNS: Tuple[str, ...] = (
    "thermal",
    "receipt",
    "pos",
    "epson",
    "tm-",
    "tm88",
    "tvs",
    "rp-",
    "rp3200",
    "xprinter",
    "star",
    "plus",
    "u)",
)


def default_config_path() -> str:
    """
    Resolve the default config path using:
    1) $XDG_CONFIG_HOME/kotprinter/config.json
    2) ~/.config/kotprinter/config.json
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return str(Path(xdg) / "kotprinter" / "config.json")
    return str(Path.home() / ".config" / "kotprinter" / "config.json")


def default_menu_path() -> str:
    """
    Resolve the default menu catalog path using:
    1) $XDG_DATA_HOME/kotprinter/menu.json
    2) ~/.local/share/kotprinter/menu.json
    """
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return str(Path(xdg) / "kotprinter" / "menu.json")
    return str(Path.home() / ".local" / "share" / "kotprinter" / "menu.json")


def get_config_path() -> str:
    """
    Return the config path honoring KOTPRINTER_CONFIG_PATH override.
    """
    return os.environ.get("KOTPRINTER_CONFIG_PATH", default_config_path())


def get_menu_path() -> str:
    """
    Return the menu path honoring KOTPRINTER_MENU_PATH override.
    """
    return os.environ.get("KOTPRINTER_MENU_PATH", default_menu_path())


def load_config(path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Load the JSON config if it exists; return None if missing.

    The path is resolved at call time so tests can point
    KOTPRINTER_CONFIG_PATH at a temporary file.

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    cfg_path = Path(path or get_config_path())
    if not cfg_path.exists():
        return None
    with cfg_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: Dict[str, Any], path: Optional[str] = None) -> None:
    """
    Save the JSON config, creating parent directories as needed.

    Writes atomically by using a temporary file and os.replace().
    Raises OSError on I/O failures.
    """
    cfg_path = Path(path or get_config_path())
    cfg_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = cfg_path.with_suffix(cfg_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, cfg_path)


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except Exception:
        return default


def _cfg_float(cfg: Mapping[str, Any], key: str, default: float) -> float:
    try:
        return float(cfg.get(key, default))
    except Exception:
        return default


def _cfg_int(cfg: Mapping[str, Any], key: str, default: int) -> int:
    try:
        return int(cfg.get(key, default))
    except Exception:
        return default


@dataclass(frozen=True)
class RestaurantInfo:
    """Header and footer lines printed on customer bills."""

    name: str = "Restaurant"
    address: Tuple[str, ...] = ()
    footer: str = "*** Thank you, Visit again ***"

    @classmethod
    def from_config(cls, data: Optional[Mapping[str, Any]]) -> "RestaurantInfo":
        if not data:
            return cls()
        address = data.get("address") or ()
        if isinstance(address, str):
            address = (address,)
        return cls(
            name=str(data.get("name") or cls.name),
            address=tuple(str(a) for a in address),
            footer=str(data.get("footer") or cls.footer),
        )


@dataclass(frozen=True)
class PrintSettings:
    """
    Typed view over the print-related config keys.

    Timing keys can be overridden with KOTPRINTER_* environment variables,
    mirroring the env-driven limits of the web layer.

    Paper size is never guessed from the device name. A 58mm printer needs
    `paper_width_mm: 58` and `ticket_columns: 32` in the config file.
    """

    backend: str = "cups"
    device_cache_ttl_seconds: float = 60.0
    job_timeout_seconds: float = 20.0
    render_delay_seconds: float = 1.5
    device_name_patterns: Tuple[str, ...] = DEFAULT_NAME_PATTERNS
    paper_width_mm: float = 80.0
    ticket_columns: int = 48
    print_dpi: int = 203
    preload_delay_seconds: float = 2.0
    device_refresh_interval_seconds: float = 0.0
    service_charge_percent: float = 0.0
    font_path: Optional[str] = None
    font_size: int = 22
    restaurant: RestaurantInfo = field(default_factory=RestaurantInfo)
    # Raw mapping, kept for backend-specific keys (ESC/POS connection details)
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]] = None) -> "PrintSettings":
        cfg = cfg or {}
        patterns: List[str] = [str(p).strip().lower() for p in cfg.get("device_name_patterns") or () if str(p).strip()]
        return cls(
            backend=str(os.environ.get("KOTPRINTER_BACKEND", cfg.get("backend", "cups"))).lower(),
            device_cache_ttl_seconds=_env_float(
                "KOTPRINTER_DEVICE_CACHE_TTL", _cfg_float(cfg, "device_cache_ttl_seconds", 60.0)
            ),
            job_timeout_seconds=_env_float("KOTPRINTER_JOB_TIMEOUT", _cfg_float(cfg, "job_timeout_seconds", 20.0)),
            render_delay_seconds=_env_float("KOTPRINTER_RENDER_DELAY", _cfg_float(cfg, "render_delay_seconds", 1.5)),
            device_name_patterns=tuple(patterns) or DEFAULT_NAME_PATTERNS,
            paper_width_mm=_cfg_float(cfg, "paper_width_mm", 80.0),
            ticket_columns=_cfg_int(cfg, "ticket_columns", 48),
            print_dpi=_cfg_int(cfg, "print_dpi", 203),
            preload_delay_seconds=_cfg_float(cfg, "preload_delay_seconds", 2.0),
            device_refresh_interval_seconds=_cfg_float(cfg, "device_refresh_interval_seconds", 0.0),
            service_charge_percent=_cfg_float(cfg, "service_charge_percent", 0.0),
            font_path=cfg.get("font_path") or os.environ.get("KOTPRINTER_FONT_PATH"),
            font_size=_cfg_int(cfg, "font_size", 22),
            restaurant=RestaurantInfo.from_config(cfg.get("restaurant")),
            raw=dict(cfg),
        )


def load_settings(path: Optional[str] = None) -> PrintSettings:
    """
    Load the saved config and return PrintSettings (defaults when missing).
    """
    return PrintSettings.from_config(load_config(path))


__all__ = [
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
]

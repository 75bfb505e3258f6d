from __future__ import annotations

"""
Health endpoints for KOT Printer.

This blueprint exposes `/healthz`, reporting:
- Overall status ("ok" or "degraded")
- Active print backend, device cache age and preloader state
- Presence of saved config
- Device availability and the default device
"""

from typing import Any, Dict

from flask import Blueprint

from kot_printer import get_service
from kot_printer.core.config import load_config

health_bp = Blueprint("health", __name__)


@health_bp.get("/healthz")
def healthz():
    svc = get_service()
    status: Dict[str, Any] = {"status": "ok"}
    status.update(svc.status())

    try:
        status["config_present"] = load_config() is not None
    except (OSError, ValueError):
        status["config_present"] = False
        status["status"] = "degraded"
        status["reason"] = "config_unreadable"

    report = svc.list_devices()
    status["devices_available"] = report.available
    status["default_device"] = report.default_device
    status["device_count"] = len(report.devices)
    if not report.available and status["status"] == "ok":
        status["status"] = "degraded"
        status["reason"] = "device_query_failed" if report.error else "no_devices"

    return status, 200

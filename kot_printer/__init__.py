"""
KOT Printer package

This module provides an application factory with minimal wiring:
- Configures logging via kot_printer.core.logging
- Creates a Flask app exposing the JSON print API and the health endpoint
- Builds (or accepts) the PrintService the blueprints talk to
- Optionally starts the background device preloader
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Optional

from flask import Flask, current_app, g

from kot_printer.core.logging import configure_logging
from kot_printer.printing.service import PrintService

EXTENSION_KEY = "kot_printer"


def _set_request_id() -> None:
    """
    Assign a request ID for logging if not set by a filter elsewhere.
    """
    g.request_id = getattr(g, "request_id", uuid.uuid4().hex)


def get_service(app: Optional[Flask] = None) -> PrintService:
    """Return the PrintService attached to the (current) app."""
    app = app or current_app
    return app.extensions[EXTENSION_KEY]


def create_app(
    config_overrides: Optional[dict] = None,
    service: Optional[PrintService] = None,
    start_preloader: bool = True,
) -> Flask:
    """
    Application factory.

    Parameters:
    - config_overrides: values to inject into app.config after defaults
    - service: a ready PrintService; when None one is built from the saved config
    - start_preloader: if True, warms the device cache in the background

    Returns:
    - Flask app instance
    """
    app = Flask("kot_printer")
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("KOTPRINTER_MAX_CONTENT_LENGTH", 1024 * 1024))  # 1 MiB
    app.json.sort_keys = False

    configure_logging()

    # Strict slashes off for more forgiving routing
    app.url_map.strict_slashes = False

    @app.before_request
    def _before_request():
        _set_request_id()

    svc = service or PrintService.from_config()
    app.extensions[EXTENSION_KEY] = svc

    from kot_printer.web.api import api_bp
    from kot_printer.web.health import health_bp

    app.register_blueprint(api_bp)
    app.register_blueprint(health_bp)

    if start_preloader:
        svc.start_preloader()
        app.logger.info("Device preloader started")

    if config_overrides:
        app.config.update(config_overrides)

    logging.getLogger(__name__).info("KOT Printer app created (backend=%s)", svc.settings.backend)
    return app


__all__ = ["EXTENSION_KEY", "create_app", "get_service"]

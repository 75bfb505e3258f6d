from __future__ import annotations

"""
JSON API (v1) for KOT Printer.

Endpoints:
- POST /api/v1/print                 : Print preformatted ticket text on one device
- POST /api/v1/orders/print          : Route an order into kitchen/drinks tickets and print them
- POST /api/v1/bills/print           : Print the customer bill for an order
- GET  /api/v1/devices               : Device list with status and default device
- POST /api/v1/devices/refresh       : Force a device cache refresh
- GET  /api/v1/devices/<name>/test   : Whether the named device is usable

Payload shape (POST /api/v1/orders/print):
{
  "items": [{"id": 1, "name": "Tea", "price": 20, "quantity": 2, "surcharge": 0}],
  "location": {"type": "table", "number": 5},
  "timestamp": "2026-10-18T13:30:05",        (optional)
  "catalog": {"1": "drinks"},                (optional; menu file when omitted)
  "include_bill": false                      (optional)
}

Print failures are not HTTP errors: they come back as 200 with
"success": false and an "error_kind".
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional, Type

from flask import Blueprint, jsonify, request
from pydantic import BaseModel, ValidationError

from kot_printer import get_service
from kot_printer.printing.catalog import load_catalog
from . import schemas

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api/v1")


# Limits (env-driven)
def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except Exception:
        return default


MAX_ORDER_ITEMS = _env_int("KOTPRINTER_MAX_ORDER_ITEMS", 200)
MAX_ITEM_NAME_LEN = _env_int("KOTPRINTER_MAX_ITEM_NAME_LEN", 120)
MAX_CONTENT_CHARS = _env_int("KOTPRINTER_MAX_CONTENT_CHARS", 20000)


def _limits() -> Dict[str, Any]:
    return {
        "limits": {
            "MAX_ORDER_ITEMS": MAX_ORDER_ITEMS,
            "MAX_ITEM_NAME_LEN": MAX_ITEM_NAME_LEN,
            "MAX_CONTENT_CHARS": MAX_CONTENT_CHARS,
        }
    }


def _json_error(msg: str, code: int = 400):
    return jsonify({"error": msg}), code


def _parse(model: Type[BaseModel]):
    """
    Validate the JSON body against `model`.

    Returns (request_model, None) on success or (None, error_response).
    """
    if not request.is_json:
        return None, _json_error("Expected application/json body", 415)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, _json_error("invalid JSON payload", 400)
    try:
        return model.model_validate(data, context=_limits()), None
    except ValidationError as e:
        # Return a concise error message
        errors = e.errors()
        if errors:
            first = errors[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            msg = first.get("msg") or str(e)
            return None, _json_error(f"{loc}: {msg}" if loc else msg, 400)
        return None, _json_error(str(e), 400)


def _menu_catalog():
    svc = get_service()
    menu_path: Optional[str] = svc.settings.raw.get("menu_path") or None
    return load_catalog(menu_path)


@api_bp.post("/print")
def print_ticket():
    req, err = _parse(schemas.PrintTicketRequest)
    if err:
        return err
    result = asyncio.run(get_service().print_ticket(req.content, req.device, kind=req.kind))
    return jsonify(result.to_dict()), 200


@api_bp.post("/orders/print")
def print_order():
    """
    Classify the order's items, render one ticket per routing group and print
    them concurrently. Responds once every ticket has settled.
    """
    req, err = _parse(schemas.OrderPrintRequest)
    if err:
        return err

    if req.catalog is not None:
        catalog = req.catalog
    else:
        try:
            catalog = _menu_catalog()
        except (OSError, ValueError) as e:
            logger.exception("Failed to load menu catalog")
            return _json_error(f"Failed to load menu catalog: {e}", 500)

    summary = asyncio.run(
        get_service().print_order_tickets(
            req.to_order(),
            catalog,
            include_bill=req.include_bill,
            target_device=req.device,
        )
    )
    return jsonify(summary.to_dict()), 200


@api_bp.post("/bills/print")
def print_bill():
    req, err = _parse(schemas.BillPrintRequest)
    if err:
        return err
    result = asyncio.run(get_service().print_bill(req.to_order(), req.device))
    return jsonify(result.to_dict()), 200


@api_bp.get("/devices")
def list_devices():
    return jsonify(get_service().list_devices().to_dict()), 200


@api_bp.post("/devices/refresh")
def refresh_devices():
    return jsonify(get_service().refresh_devices().to_dict()), 200


@api_bp.get("/devices/<path:name>/test")
def test_device(name: str):
    return jsonify(get_service().test_device(name)), 200


__all__ = ["api_bp"]

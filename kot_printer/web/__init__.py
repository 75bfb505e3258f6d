"""
Web module for KOT Printer.

Exposes blueprints for:
- Versioned JSON print API: api_bp
- Health endpoint: health_bp
"""

from .api import api_bp
from .health import health_bp

__all__ = ["api_bp", "health_bp"]

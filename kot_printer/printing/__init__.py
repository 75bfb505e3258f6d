"""
Printing subsystem for KOT Printer.

This package groups the print orchestration pipeline:

- devices / selection: enumerate output devices (TTL cache) and pick one
- catalog / routing: partition order items into kitchen and drinks tickets
- render / surface: fixed-width ticket text and its 1-bit raster
- backends: CUPS and ESC/POS platform implementations
- dispatcher: one silent print job end-to-end with timeout and cleanup
- service: the boundary operations the UI calls

For convenience, common names are re-exported for easy import.
"""

from .errors import *
from .models import *
from .devices import *
from .selection import *
from .catalog import *
from .routing import *
from .render import *
from .surface import *
from .backends import *
from .dispatcher import *
from .service import *

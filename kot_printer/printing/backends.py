"""
Platform print backends.

A backend answers two questions for the rest of the subsystem:
- query_devices(): which output devices exist and what state they report
- create_surface(options): a fresh, job-private rendering surface whose
  `_submit()` hands the rasterized ticket to the platform

Two platforms are supported:
- "cups":   system queues via `lpstat` / `lp` (Linux, macOS)
- "escpos": one directly attached ESC/POS printer via python-escpos (USB, network, serial)
"""

from __future__ import annotations

import io
import logging
import subprocess
from collections.abc import Mapping
from typing import Any, List, Optional

from PIL import Image

from kot_printer.core.config import PrintSettings
from kot_printer.printing.devices import Device, DeviceStatus, parse_status
from kot_printer.printing.errors import DeviceQueryError
from kot_printer.printing.surface import MM_PER_INCH, PrintOptions, RasterSurface, RenderSurface

logger = logging.getLogger(__name__)


class PrintBackend:
    """Base class; subclasses implement query_devices() and set surface_class."""

    name = "base"
    surface_class: type = RasterSurface

    def __init__(self, settings: Optional[PrintSettings] = None):
        self.settings = settings or PrintSettings()

    def query_devices(self) -> List[Device]:  # pragma: no cover - interface
        raise NotImplementedError

    def create_surface(self, options: PrintOptions) -> RenderSurface:
        return self.surface_class(
            options,
            font_path=self.settings.font_path,
            font_size=self.settings.font_size,
            columns=self.settings.ticket_columns,
            backend=self,
        )


# ---------------------------------------------------------------------------
# CUPS
# ---------------------------------------------------------------------------


def parse_lpstat(output: str) -> List[Device]:
    """
    Parse `lpstat -p -d` output into devices, in the order CUPS lists them.

    printer EPSON_TM88 is idle.  enabled since ...
    printer Office now printing Office-12.  enabled since ...
    printer Bar disabled since ... -
    system default destination: EPSON_TM88
    """
    entries: List[tuple[str, str]] = []
    default_name: Optional[str] = None
    for line in output.splitlines():
        if not line.strip() or line[:1].isspace():
            continue  # blank or continuation (reason) line
        if line.startswith("printer "):
            parts = line.split(None, 2)
            if len(parts) >= 2:
                entries.append((parts[1], parts[2] if len(parts) > 2 else ""))
        elif line.startswith("system default destination:"):
            default_name = line.split(":", 1)[1].strip() or None
    return [
        Device(name=name, status=parse_status(state), is_default=(name == default_name), description=state.strip() or None)
        for name, state in entries
    ]


class CupsSurface(RasterSurface):
    def __init__(self, options: PrintOptions, backend: "CupsBackend", **kwargs: Any):
        super().__init__(options, **kwargs)
        self.backend = backend

    def _submit(self, image: Image.Image, options: PrintOptions) -> None:
        if not options.device_name:
            raise RuntimeError("No target printer")
        buf = io.BytesIO()
        image.save(buf, format="PNG", dpi=(options.dpi, options.dpi))
        height_mm = image.height / float(options.dpi) * MM_PER_INCH
        cmd = self.backend.lp_command(options, height_mm)
        logger.info("Submitting %d byte(s) to %s via lp", buf.tell(), options.device_name)
        result = subprocess.run(
            cmd,
            input=buf.getvalue(),
            capture_output=True,
            timeout=self.backend.command_timeout,
        )
        if result.returncode != 0:
            reason = (result.stderr or result.stdout or b"").decode("utf-8", "replace").strip()
            raise RuntimeError(reason or f"lp exited with status {result.returncode}")


class CupsBackend(PrintBackend):
    name = "cups"
    surface_class = CupsSurface
    command_timeout = 15.0

    def query_devices(self) -> List[Device]:
        try:
            result = subprocess.run(
                ["lpstat", "-p", "-d"],
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise DeviceQueryError(f"lpstat unavailable: {e}") from e

        if result.returncode != 0:
            err = (result.stderr or "").strip()
            # CUPS answers "No destinations added." with a non-zero status
            if "no destinations" in err.lower():
                return []
            raise DeviceQueryError(err or f"lpstat exited with status {result.returncode}")
        return parse_lpstat(result.stdout)

    def lp_command(self, options: PrintOptions, height_mm: float) -> List[str]:
        width_mm = options.page_width_mm
        cmd = [
            "lp",
            "-d",
            str(options.device_name),
            "-n",
            str(options.copies),
            "-o",
            f"media=Custom.{width_mm:g}x{max(height_mm, 10.0):.0f}mm",
            "-o",
            "page-left=0",
            "-o",
            "page-right=0",
            "-o",
            "page-top=0",
            "-o",
            "page-bottom=0",
            "-o",
            f"print-color-mode={'color' if options.color else 'monochrome'}",
            "-o",
            f"ppi={options.dpi}",
            "-",
        ]
        return cmd


# ---------------------------------------------------------------------------
# ESC/POS
# ---------------------------------------------------------------------------


def connect_printer(config: Mapping[str, Any]):
    """
    Create and return an ESC/POS printer instance based on the provided config.
    Supports USB, Network, and Serial with optional 'printer_profile'.
    """
    profile = config.get("printer_profile") or None
    ptype = str(config.get("printer_type", "usb")).lower()

    if ptype == "usb":
        from escpos.printer import Usb

        vendor = int(str(config.get("usb_vendor_id", "0x04b8")), 16)
        product = int(str(config.get("usb_product_id", "0x0e28")), 16)
        if profile:
            return Usb(vendor, product, profile=profile)
        return Usb(vendor, product)
    if ptype == "network":
        from escpos.printer import Network

        ip = str(config.get("network_ip", ""))
        port = int(str(config.get("network_port", "9100")))
        if profile:
            return Network(ip, port, profile=profile)
        return Network(ip, port)
    if ptype == "serial":
        from escpos.printer import Serial

        port = str(config.get("serial_port", ""))
        baud = int(str(config.get("serial_baudrate", "19200")))
        if profile:
            return Serial(port, baudrate=baud, profile=profile)
        return Serial(port, baudrate=baud)
    raise RuntimeError(f"Unsupported printer type: {ptype}")


class EscposSurface(RasterSurface):
    def __init__(self, options: PrintOptions, backend: "EscposBackend", **kwargs: Any):
        super().__init__(options, **kwargs)
        self.backend = backend

    def _submit(self, image: Image.Image, options: PrintOptions) -> None:
        config = self.backend.settings.raw
        p = self.backend.connect()
        try:
            logger.info("Printing %dx%d ticket image on %s", image.width, image.height, options.device_name)
            for _ in range(max(1, options.copies)):
                p.image(image)
                try:
                    extra = int(config.get("cut_feed_lines", 2))
                except Exception:
                    extra = 2
                if extra > 0:
                    p.text("\n" * extra)
                p.cut()
        finally:
            try:
                p.close()
            except Exception as e:
                logger.debug("Printer close failed: %s", e)


class EscposBackend(PrintBackend):
    """
    A single configured ESC/POS printer. It is always reported as the
    default device; its status comes from a connect probe.
    """

    name = "escpos"
    surface_class = EscposSurface

    @property
    def device_name(self) -> str:
        cfg = self.settings.raw
        name = cfg.get("printer_name")
        if name:
            return str(name)
        ptype = str(cfg.get("printer_type", "usb")).lower()
        if ptype == "network":
            return f"ESC/POS network {cfg.get('network_ip', '')}:{cfg.get('network_port', '9100')}"
        if ptype == "serial":
            return f"ESC/POS serial {cfg.get('serial_port', '')}"
        return f"ESC/POS USB {cfg.get('usb_vendor_id', '0x04b8')}:{cfg.get('usb_product_id', '0x0e28')}"

    def connect(self):
        return connect_printer(self.settings.raw)

    def query_devices(self) -> List[Device]:
        status = DeviceStatus.IDLE
        reason: Optional[str] = None
        try:
            p = self.connect()
        except Exception as e:
            status = DeviceStatus.ERROR
            reason = f"printer_unreachable: {type(e).__name__}"
        else:
            try:
                online = getattr(p, "is_online", None)
                if callable(online) and online() is False:
                    status = DeviceStatus.ERROR
                    reason = "offline"
            except Exception as e:
                logger.debug("ESC/POS status probe failed: %s", e)
            finally:
                try:
                    p.close()
                except Exception:
                    pass
        return [Device(name=self.device_name, status=status, is_default=True, description=reason)]


BACKENDS = {
    CupsBackend.name: CupsBackend,
    EscposBackend.name: EscposBackend,
}


def create_backend(settings: PrintSettings) -> PrintBackend:
    try:
        cls = BACKENDS[settings.backend]
    except KeyError:
        raise ValueError(f"Unsupported print backend: {settings.backend!r} (expected one of {sorted(BACKENDS)})")
    logger.info("Using %s print backend", cls.name)
    return cls(settings)


__all__ = [
    "BACKENDS",
    "CupsBackend",
    "CupsSurface",
    "EscposBackend",
    "EscposSurface",
    "PrintBackend",
    "connect_printer",
    "create_backend",
    "parse_lpstat",
]

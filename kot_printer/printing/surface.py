"""
Ephemeral rendering surfaces for print jobs.

A surface is allocated for exactly one job. The dispatcher loads the ticket
text into it, waits for layout to settle, issues the print instruction and
finally releases it. RasterSurface draws the fixed-width ticket text onto a
Pillow canvas at the paper's dot width; backends subclass it and implement
`_submit()` to hand the image to the platform.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from PIL import Image, ImageDraw, ImageFont

from kot_printer.printing.errors import LoadFailure

logger = logging.getLogger(__name__)

# (success, failure_reason); may be invoked from any thread
CompletionCallback = Callable[[bool, Optional[str]], None]

MICRONS_PER_MM = 1000
MM_PER_INCH = 25.4
# Unprintable strip on each side of the stock; 80mm paper leaves ~575 dots at 203dpi
SIDE_MARGIN_MM = 4.0

_MONO_FONTS: Sequence[str] = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationMono-Regular.ttf",
    "/usr/share/fonts/truetype/freefont/FreeMono.ttf",
    "/usr/share/fonts/truetype/noto/NotoSansMono-Regular.ttf",
    "/usr/share/fonts/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/TTF/DejaVuSansMono.ttf",
    "/Library/Fonts/Courier New.ttf",
    "C:\\Windows\\Fonts\\cour.ttf",
)


@dataclass(frozen=True)
class PrintOptions:
    """
    Physical parameters of every silent print. Width follows the paper;
    height is left to the content (auto).

    The width comes from configuration only (see PrintSettings.paper_width_mm);
    names like "RP58" or "TM-T20" do not switch to 58mm stock.
    """

    device_name: Optional[str] = None
    silent: bool = True
    margins: str = "none"
    print_background: bool = True
    color: bool = False
    page_width_microns: int = 80 * MICRONS_PER_MM
    page_height_microns: Optional[int] = None
    dpi: int = 203
    copies: int = 1

    @property
    def page_width_mm(self) -> float:
        return self.page_width_microns / MICRONS_PER_MM

    @property
    def printable_dots(self) -> int:
        printable_mm = max(10.0, self.page_width_mm - 2 * SIDE_MARGIN_MM)
        return int(round(printable_mm / MM_PER_INCH * self.dpi))

    def for_device(self, name: str) -> "PrintOptions":
        return replace(self, device_name=name.strip())


def _measure_text(font: ImageFont.FreeTypeFont | ImageFont.ImageFont, text: str) -> tuple[int, int]:
    """
    Robust text measurement across Pillow font types.
    Tries getbbox() first, then getmask() as fallback.
    Returns (width, height).
    """
    try:
        bbox = font.getbbox(text)
        return int(bbox[2] - bbox[0]), int(bbox[3] - bbox[1])
    except Exception:
        try:
            mask = font.getmask(text)  # type: ignore[attr-defined]
            return int(mask.size[0]), int(mask.size[1])
        except Exception:
            return 0, 0


def resolve_font(font_path: Optional[str], font_size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """
    Resolve a monospace TTF font for ticket rasterizing, preferring:
    1) the configured font_path
    2) KOTPRINTER_FONT_PATH environment variable
    3) a list of common system monospace fonts
    Falls back to PIL's default font if none are found.
    """
    candidates: List[str] = []
    if font_path and font_path.strip():
        candidates.append(font_path.strip())
    env_path = os.environ.get("KOTPRINTER_FONT_PATH")
    if env_path and env_path not in candidates:
        candidates.append(env_path)
    for pth in _MONO_FONTS:
        if pth not in candidates:
            candidates.append(pth)

    for pth in candidates:
        try:
            return ImageFont.truetype(pth, font_size)
        except Exception:
            continue

    logger.debug("No monospace TTF found; using Pillow default font")
    try:
        return ImageFont.load_default(font_size)  # Pillow >= 10.1 scales the bundled font
    except TypeError:
        return ImageFont.load_default()


def fit_font_size(
    font_path: Optional[str],
    columns: int,
    max_width: int,
    preferred: int,
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """
    Step the font size down from `preferred` until a full line of `columns`
    characters fits `max_width` dots.
    """
    probe = "M" * max(1, columns)
    size = max(8, preferred)
    while size > 8:
        font = resolve_font(font_path, size)
        w, _ = _measure_text(font, probe)
        if 0 < w <= max_width:
            return font
        size -= 1
    return resolve_font(font_path, 8)


class RenderSurface:
    """
    Interface every backend surface implements.

    - load(content): async; raises on failure
    - print(options, callback): issue the print instruction, report through callback
    - release(): free the surface; safe to call more than once
    """

    released: bool = False

    async def load(self, content: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def print(self, options: PrintOptions, callback: CompletionCallback) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def release(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class RasterSurface(RenderSurface):
    """
    Invisible Pillow canvas sized to the paper width.

    Loading rasterizes the ticket text off the event loop. Printing runs
    `_submit()` on a daemon thread and reports the platform's answer through
    the completion callback, mirroring a print API with a done callback.
    """

    line_spacing = 6
    top_margin = 8
    bottom_margin = 24

    def __init__(self, options: PrintOptions, font_path: Optional[str] = None, font_size: int = 22, columns: int = 48):
        self.options = options
        self.font_path = font_path
        self.font_size = int(font_size)
        self.columns = int(columns)
        self.image: Optional[Image.Image] = None
        self.released = False
        self._lock = threading.Lock()

    def rasterize(self, content: str) -> Image.Image:
        if not content or not content.strip():
            raise LoadFailure("Ticket content is empty")
        width = self.options.printable_dots
        font = fit_font_size(self.font_path, self.columns, width, self.font_size)
        lines = content.rstrip("\n").split("\n")
        _, line_height = _measure_text(font, "Mg")
        line_height = max(1, line_height)

        height = self.top_margin + self.bottom_margin + (line_height + self.line_spacing) * len(lines)
        img = Image.new("L", (int(width), int(height)), 255)
        draw = ImageDraw.Draw(img)
        y = self.top_margin
        for line in lines:
            draw.text((0, y), line, font=font, fill=0)
            y += line_height + self.line_spacing
        # Thermal heads are 1-bit; threshold instead of dithering keeps glyph edges crisp
        return img.point(lambda p: 0 if p < 160 else 255).convert("1")

    async def load(self, content: str) -> None:
        if self.released:
            raise LoadFailure("Surface already released")
        try:
            img = await asyncio.to_thread(self.rasterize, content)
        except LoadFailure:
            raise
        except Exception as e:
            raise LoadFailure(f"Failed to load print content: {e}") from e
        with self._lock:
            if self.released:
                raise LoadFailure("Surface released while loading")
            self.image = img
        logger.debug("Surface loaded: %dx%d", img.width, img.height)

    def print(self, options: PrintOptions, callback: CompletionCallback) -> None:
        with self._lock:
            img = self.image
        if img is None:
            callback(False, "Nothing loaded into the surface")
            return

        def _run() -> None:
            try:
                self._submit(img, options)
            except Exception as e:
                logger.warning("Print submission to %s failed: %s", options.device_name, e)
                callback(False, str(e) or type(e).__name__)
                return
            callback(True, None)

        threading.Thread(target=_run, daemon=True, name="kot-printer-submit").start()

    def _submit(self, image: Image.Image, options: PrintOptions) -> None:
        raise NotImplementedError

    def release(self) -> None:
        with self._lock:
            if self.released:
                return
            self.released = True
            img, self.image = self.image, None
        if img is not None:
            img.close()


def settings_print_options(paper_width_mm: float, dpi: int) -> PrintOptions:
    return PrintOptions(page_width_microns=int(round(paper_width_mm * MICRONS_PER_MM)), dpi=int(dpi))


__all__ = [
    "CompletionCallback",
    "PrintOptions",
    "RasterSurface",
    "RenderSurface",
    "fit_font_size",
    "resolve_font",
    "settings_print_options",
]

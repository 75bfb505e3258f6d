"""
Device registry for KOT Printer.

This module owns:
- The Device snapshot type and the platform status table
- A TTL-bounded cache slot with a single writer path (DeviceRegistry.refresh)
- A daemon preloader that warms the cache at startup and optionally refreshes it

Platform enumeration itself is delegated to a backend (see printing.backends);
the registry only adds caching and error normalization on top of it.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from kot_printer.printing.errors import DeviceQueryError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class DeviceStatus(str, Enum):
    IDLE = "idle"
    BUSY = "busy"
    PROCESSING = "processing"
    PAUSED = "paused"
    ERROR = "error"
    UNKNOWN = "unknown"


# Platform-reported integer status codes. Anything not listed is treated as
# an error; platforms report these unreliably, so selection never rejects a
# device on status alone (see selection.STATUS_USABILITY).
STATUS_CODES: Dict[int, DeviceStatus] = {
    0: DeviceStatus.IDLE,
    1: DeviceStatus.BUSY,
    2: DeviceStatus.PROCESSING,
    3: DeviceStatus.PAUSED,
}

# Phrases found in CUPS `lpstat -p` lines, checked in order.
STATUS_PHRASES: Tuple[Tuple[str, DeviceStatus], ...] = (
    ("is idle", DeviceStatus.IDLE),
    ("now printing", DeviceStatus.BUSY),
    ("processing", DeviceStatus.PROCESSING),
    ("disabled", DeviceStatus.PAUSED),
    ("paused", DeviceStatus.PAUSED),
    ("stopped", DeviceStatus.PAUSED),
)


def parse_status(raw: Any) -> DeviceStatus:
    """
    Normalize a platform status report (int code, status name or lpstat
    phrase) into a DeviceStatus. Unrecognized input maps to UNKNOWN, and
    unlisted integer codes map to ERROR.
    """
    if isinstance(raw, DeviceStatus):
        return raw
    if isinstance(raw, bool) or raw is None:
        return DeviceStatus.UNKNOWN
    if isinstance(raw, int):
        return STATUS_CODES.get(raw, DeviceStatus.ERROR)
    text = str(raw).strip().lower()
    if text.isdigit():
        return STATUS_CODES.get(int(text), DeviceStatus.ERROR)
    try:
        return DeviceStatus(text)
    except ValueError:
        pass
    for phrase, status in STATUS_PHRASES:
        if phrase in text:
            return status
    return DeviceStatus.UNKNOWN


@dataclass(frozen=True)
class Device:
    name: str
    status: DeviceStatus = DeviceStatus.UNKNOWN
    is_default: bool = False
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "status": self.status.value, "is_default": self.is_default}


@dataclass(frozen=True)
class _CacheEntry:
    snapshot: Tuple[Device, ...]
    captured_at: float


class DeviceCache:
    """
    A single slot holding the last device snapshot and when it was captured.

    Readers get the snapshot only while it is younger than the TTL. The slot
    is swapped under a lock so a refresh never exposes a half-written state.
    """

    def __init__(self, ttl: float = 60.0, clock: Clock = time.monotonic):
        self.ttl = float(ttl)
        self._clock = clock
        self._entry: Optional[_CacheEntry] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[List[Device]]:
        with self._lock:
            entry = self._entry
        if entry is None:
            return None
        if self._clock() - entry.captured_at >= self.ttl:
            return None
        return list(entry.snapshot)

    def store(self, devices: List[Device]) -> None:
        entry = _CacheEntry(snapshot=tuple(devices), captured_at=self._clock())
        with self._lock:
            self._entry = entry

    def age(self) -> Optional[float]:
        """Seconds since the slot was last written, or None when empty."""
        with self._lock:
            entry = self._entry
        if entry is None:
            return None
        return self._clock() - entry.captured_at

    def clear(self) -> None:
        with self._lock:
            self._entry = None


class DeviceRegistry:
    """
    Enumerates output devices through a backend and caches the result.

    The backend only needs a `query_devices() -> list[Device]` method.
    """

    def __init__(self, backend: Any, cache: Optional[DeviceCache] = None):
        self._backend = backend
        self.cache = cache or DeviceCache()

    def list_devices(self) -> List[Device]:
        """
        Query the platform for devices. Does not touch the cache.

        Raises:
            DeviceQueryError if the query cannot complete.
        """
        try:
            devices = list(self._backend.query_devices())
        except DeviceQueryError:
            raise
        except Exception as e:
            raise DeviceQueryError(f"Device query failed: {e}") from e
        logger.debug("Device query returned %d device(s): %s", len(devices), [d.name for d in devices])
        return devices

    def refresh(self) -> List[Device]:
        """
        Force a fresh query and replace the cache slot. This is the only
        method that writes the cache.

        An empty result is never cached: the slot is cleared instead, so a
        printer plugged in after startup is picked up by the next job.
        """
        devices = self.list_devices()
        if not devices:
            self.cache.clear()
            logger.info("Device query found no devices; cache cleared")
            return devices
        self.cache.store(devices)
        logger.info("Device cache refreshed (%d device(s))", len(devices))
        return devices

    def get_cached_or_fresh(self) -> List[Device]:
        cached = self.cache.get()
        if cached is not None:
            return cached
        return self.refresh()


class DevicePreloader:
    """
    Daemon thread that warms the device cache shortly after startup and,
    when an interval is configured, keeps refreshing it.
    """

    def __init__(self, registry: DeviceRegistry, delay: float = 2.0, interval: float = 0.0):
        self._registry = registry
        self._delay = max(0.0, float(delay))
        self._interval = max(0.0, float(interval))
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def alive(self) -> bool:
        return bool(self._thread) and self._thread.is_alive()  # type: ignore[union-attr]

    def start(self) -> None:
        """Start the preload thread (idempotent)."""
        if self.alive:
            return
        self._stop.clear()
        t = threading.Thread(target=self._run, daemon=True, name="kot-printer-device-preload")
        t.start()
        self._thread = t
        logger.info("Device preloader started (delay=%.1fs interval=%.1fs)", self._delay, self._interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def _refresh_once(self) -> None:
        try:
            devices = self._registry.refresh()
            logger.info("Device preload complete: %s", ", ".join(d.name for d in devices) or "no devices")
        except DeviceQueryError as e:
            logger.warning("Device preload failed (will query on first print): %s", e)

    def _run(self) -> None:
        if self._stop.wait(self._delay):
            return
        self._refresh_once()
        while self._interval > 0 and not self._stop.wait(self._interval):
            self._refresh_once()


__all__ = [
    "STATUS_CODES",
    "STATUS_PHRASES",
    "Device",
    "DeviceCache",
    "DevicePreloader",
    "DeviceRegistry",
    "DeviceStatus",
    "parse_status",
]

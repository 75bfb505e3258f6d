# Ensure the repository root is on sys.path so `kot_printer` can be imported in tests.

import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    # This file lives at: <repo_root>/tests/conftest.py
    # We want to add <repo_root> to sys.path (if not already present).
    here = Path(__file__).resolve()
    repo_root = here.parent.parent
    repo_str = str(repo_root)
    if repo_str not in sys.path:
        sys.path.insert(0, repo_str)


_ensure_repo_root_on_syspath()

from kot_printer.core.config import PrintSettings  # noqa: E402
from kot_printer.printing.devices import Device, DeviceStatus  # noqa: E402
from kot_printer.printing.surface import RenderSurface  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSurface(RenderSurface):
    """
    Stand-in for a platform surface.

    behavior:
    - "ok": print succeeds
    - "print_fail": callback reports failure
    - "load_fail": load raises
    - "never": print is issued but the callback never fires
    - "thread": callback fires from another thread
    """

    def __init__(self, behavior: str = "ok", reason: str = "paper out"):
        self.behavior = behavior
        self.reason = reason
        self.content: Optional[str] = None
        self.print_options = None
        self.release_calls = 0
        self.loaded_at: Optional[float] = None
        self.printed_at: Optional[float] = None

    async def load(self, content: str) -> None:
        if self.behavior == "load_fail":
            raise RuntimeError("renderer crashed")
        self.content = content
        self.loaded_at = time.monotonic()

    def print(self, options, callback) -> None:
        self.print_options = options
        self.printed_at = time.monotonic()
        if self.behavior == "ok":
            callback(True, None)
        elif self.behavior == "print_fail":
            callback(False, self.reason)
        elif self.behavior == "thread":
            threading.Thread(target=callback, args=(True, None), daemon=True).start()

    def release(self) -> None:
        self.release_calls += 1
        self.released = True


class FakeBackend:
    name = "fake"

    def __init__(
        self,
        devices: Optional[List[Device]] = None,
        behavior: str = "ok",
        error: Optional[Exception] = None,
        query_delay: float = 0.0,
    ):
        self.devices = list(devices or [])
        self.query_delay = query_delay
        self.behavior = behavior
        self.error = error
        self.queries = 0
        self.surfaces: List[FakeSurface] = []

    def query_devices(self) -> List[Device]:
        self.queries += 1
        if self.query_delay:
            time.sleep(self.query_delay)
        if self.error is not None:
            raise self.error
        return list(self.devices)

    def create_surface(self, options) -> FakeSurface:
        surface = FakeSurface(self.behavior)
        self.surfaces.append(surface)
        return surface


def thermal_devices() -> List[Device]:
    return [
        Device("HP-LaserA", DeviceStatus.IDLE),
        Device("EPSON-TM88", DeviceStatus.IDLE),
    ]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_settings() -> PrintSettings:
    return PrintSettings(render_delay_seconds=0.0, job_timeout_seconds=5.0, preload_delay_seconds=0.0)


@pytest.fixture(autouse=True)
def _isolated_paths(tmp_path, monkeypatch):
    # Keep tests away from the real user config/menu and from env overrides
    monkeypatch.setenv("KOTPRINTER_CONFIG_PATH", str(tmp_path / "config.json"))
    monkeypatch.setenv("KOTPRINTER_MENU_PATH", str(tmp_path / "menu.json"))
    for key in ("KOTPRINTER_BACKEND", "KOTPRINTER_DEVICE_CACHE_TTL", "KOTPRINTER_JOB_TIMEOUT", "KOTPRINTER_RENDER_DELAY"):
        monkeypatch.delenv(key, raising=False)

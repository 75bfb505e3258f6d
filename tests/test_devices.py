import time

import pytest

from conftest import FakeBackend
from kot_printer.printing.backends import CupsBackend, create_backend, parse_lpstat
from kot_printer.core.config import PrintSettings
from kot_printer.printing.devices import (
    Device,
    DeviceCache,
    DevicePreloader,
    DeviceRegistry,
    DeviceStatus,
    parse_status,
)
from kot_printer.printing.errors import DeviceQueryError


def test_parse_status_codes_and_phrases():
    assert parse_status(0) is DeviceStatus.IDLE
    assert parse_status(1) is DeviceStatus.BUSY
    assert parse_status(2) is DeviceStatus.PROCESSING
    assert parse_status(3) is DeviceStatus.PAUSED
    assert parse_status(4) is DeviceStatus.ERROR
    assert parse_status("7") is DeviceStatus.ERROR
    assert parse_status("paused") is DeviceStatus.PAUSED
    assert parse_status("is idle.  enabled since Mon") is DeviceStatus.IDLE
    assert parse_status("now printing Office-12.") is DeviceStatus.BUSY
    assert parse_status("disabled since Mon -") is DeviceStatus.PAUSED
    assert parse_status("???") is DeviceStatus.UNKNOWN
    assert parse_status(None) is DeviceStatus.UNKNOWN


def test_cache_expires_after_ttl(fake_clock):
    cache = DeviceCache(ttl=60, clock=fake_clock)
    assert cache.get() is None
    cache.store([Device("A")])
    fake_clock.advance(59.9)
    assert [d.name for d in cache.get()] == ["A"]
    assert cache.age() == pytest.approx(59.9)
    fake_clock.advance(0.1)
    assert cache.get() is None
    cache.clear()
    assert cache.age() is None


def test_registry_serves_cache_until_ttl(fake_clock):
    backend = FakeBackend([Device("EPSON-TM88", DeviceStatus.IDLE)])
    registry = DeviceRegistry(backend, DeviceCache(ttl=60, clock=fake_clock))
    registry.get_cached_or_fresh()
    registry.get_cached_or_fresh()
    assert backend.queries == 1
    fake_clock.advance(61)
    registry.get_cached_or_fresh()
    assert backend.queries == 2


def test_list_devices_does_not_write_cache(fake_clock):
    backend = FakeBackend([Device("A")])
    registry = DeviceRegistry(backend, DeviceCache(clock=fake_clock))
    assert [d.name for d in registry.list_devices()] == ["A"]
    assert registry.cache.get() is None
    registry.refresh()
    assert registry.cache.get() is not None


def test_query_errors_are_wrapped():
    registry = DeviceRegistry(FakeBackend(error=OSError("spooler down")))
    with pytest.raises(DeviceQueryError, match="spooler down"):
        registry.list_devices()
    with pytest.raises(DeviceQueryError):
        registry.get_cached_or_fresh()
    assert registry.cache.get() is None


def test_preloader_warms_cache():
    backend = FakeBackend([Device("Thermal")])
    registry = DeviceRegistry(backend)
    preloader = DevicePreloader(registry, delay=0.0, interval=30.0)
    preloader.start()
    preloader.start()  # idempotent
    deadline = time.monotonic() + 2.0
    while registry.cache.get() is None and time.monotonic() < deadline:
        time.sleep(0.01)
    preloader.stop(timeout=1.0)
    assert [d.name for d in registry.cache.get()] == ["Thermal"]
    assert backend.queries == 1


def test_preloader_logs_failures_instead_of_raising():
    registry = DeviceRegistry(FakeBackend(error=RuntimeError("no cups")))
    preloader = DevicePreloader(registry, delay=0.0)
    preloader.start()
    preloader.stop(timeout=1.0)
    assert not preloader.alive
    assert registry.cache.get() is None


def test_parse_lpstat():
    output = (
        "printer EPSON_TM88 is idle.  enabled since Sat 18 Oct 2026 01:00:00 PM\n"
        "printer Office now printing Office-12.  enabled since Sat 18 Oct 2026\n"
        "\tWaiting for job to complete.\n"
        "printer Bar disabled since Sat 18 Oct 2026 -\n"
        "\treason unknown\n"
        "system default destination: EPSON_TM88\n"
    )
    devices = parse_lpstat(output)
    assert [d.name for d in devices] == ["EPSON_TM88", "Office", "Bar"]
    assert [d.status for d in devices] == [DeviceStatus.IDLE, DeviceStatus.BUSY, DeviceStatus.PAUSED]
    assert [d.is_default for d in devices] == [True, False, False]


def test_create_backend():
    assert isinstance(create_backend(PrintSettings(backend="cups")), CupsBackend)
    with pytest.raises(ValueError):
        create_backend(PrintSettings(backend="bluetooth"))

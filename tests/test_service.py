import asyncio
from datetime import datetime

from conftest import FakeBackend, thermal_devices
from kot_printer.printing.devices import Device, DeviceStatus
from kot_printer.printing.errors import ErrorKind
from kot_printer.printing.models import Location, Order, OrderItem, TicketKind
from kot_printer.printing.service import PrintService


def _order():
    return Order(
        items=[
            OrderItem(id=1, name="Tea", price=20, quantity=2),
            OrderItem(id=2, name="Idli", price=40, quantity=1),
        ],
        location=Location("table", 5),
        timestamp=datetime(2026, 10, 18, 13, 30, 5),
    )


def test_tea_and_idli_print_two_tickets(fast_settings):
    backend = FakeBackend(thermal_devices())
    svc = PrintService(fast_settings, backend=backend)
    summary = asyncio.run(svc.print_order_tickets(_order(), {1: "drinks", 2: "kitchen"}))

    assert summary.success is True
    assert summary.printed == 2
    assert summary.total == 2
    assert set(summary.per_group) == {"kitchen", "drinks"}
    assert summary.per_group["drinks"].kind is TicketKind.DRINKS_TICKET

    contents = sorted(s.content for s in backend.surfaces)
    drinks = next(c for c in contents if "DRINKS ORDER" in c)
    kitchen = next(c for c in contents if "KITCHEN ORDER" in c)
    assert "2x Tea" in drinks and "Idli" not in drinks
    assert "1x Idli" in kitchen and "Tea" not in kitchen
    assert "Table 5" in kitchen


def test_order_with_bill(fast_settings):
    backend = FakeBackend(thermal_devices())
    svc = PrintService(fast_settings, backend=backend)
    summary = asyncio.run(svc.print_order_tickets(_order(), {1: "drinks"}, include_bill=True))
    assert summary.total == 3
    assert summary.per_group["bill"].success is True
    assert any("TOTAL:" in s.content for s in backend.surfaces)


def test_empty_device_list_fails_every_ticket(fast_settings):
    backend = FakeBackend([])
    svc = PrintService(fast_settings, backend=backend)
    summary = asyncio.run(svc.print_order_tickets(_order(), {1: "drinks"}))
    assert summary.success is False
    assert summary.printed == 0
    assert summary.total == 2
    assert all(r.error_kind is ErrorKind.NO_DEVICE_FOUND for r in summary.per_group.values())

    report = svc.list_devices()
    assert report.available is False
    assert report.default_device is None
    assert report.to_dict()["devices"] == []


def test_failed_ticket_reported_per_group(fast_settings):
    backend = FakeBackend(thermal_devices(), behavior="print_fail")
    svc = PrintService(fast_settings, backend=backend)
    summary = asyncio.run(svc.print_order_tickets(_order(), None))
    assert summary.success is False
    assert summary.total == 1
    assert summary.per_group["kitchen"].error_kind is ErrorKind.PRINT_FAILURE


def test_empty_order_prints_nothing(fast_settings):
    backend = FakeBackend(thermal_devices())
    svc = PrintService(fast_settings, backend=backend)
    summary = asyncio.run(svc.print_order_tickets(Order(items=[]), {}))
    assert summary.success is False
    assert summary.total == 0
    assert backend.surfaces == []


def test_print_ticket_to_dict(fast_settings):
    svc = PrintService(fast_settings, backend=FakeBackend(thermal_devices()))
    out = asyncio.run(svc.print_ticket("hello\n", "Counter POS")).to_dict()
    assert out["success"] is True
    assert out["device"] == "Counter POS"

    svc = PrintService(fast_settings, backend=FakeBackend([]))
    out = asyncio.run(svc.print_ticket("hello\n")).to_dict()
    assert out["success"] is False
    assert out["error_kind"] == "NoDeviceFound"
    assert out["error"]


def test_print_bill(fast_settings):
    backend = FakeBackend(thermal_devices())
    svc = PrintService(fast_settings, backend=backend)
    result = asyncio.run(svc.print_bill(_order()))
    assert result.success is True
    assert result.kind is TicketKind.BILL
    assert "Bill No: 2610181330" in backend.surfaces[0].content


def test_list_devices_report(fast_settings):
    devices = [
        Device("Office", DeviceStatus.ERROR),
        Device("EPSON-TM88", DeviceStatus.IDLE, is_default=True),
    ]
    svc = PrintService(fast_settings, backend=FakeBackend(devices))
    report = svc.list_devices().to_dict()
    assert report["available"] is True
    assert report["default_device"] == "EPSON-TM88"
    assert report["devices"][0] == {"name": "Office", "status": "error", "is_default": False}


def test_list_devices_defaults_to_first_device(fast_settings):
    svc = PrintService(fast_settings, backend=FakeBackend(thermal_devices()))
    assert svc.list_devices().default_device == "HP-LaserA"


def test_list_devices_query_error(fast_settings):
    svc = PrintService(fast_settings, backend=FakeBackend(error=RuntimeError("cups down")))
    report = svc.list_devices()
    assert report.available is False
    assert "cups down" in report.to_dict()["error"]


def test_test_device(fast_settings):
    devices = [Device("EPSON-TM88", DeviceStatus.PAUSED), Device("Office", DeviceStatus.ERROR)]
    svc = PrintService(fast_settings, backend=FakeBackend(devices))
    assert svc.test_device("EPSON-TM88") == {"usable": False, "status": "paused"}
    assert svc.test_device("Office") == {"usable": False, "status": "error"}
    missing = svc.test_device("Nope")
    assert missing["usable"] is False
    assert "not found" in missing["error"]


def test_paused_device_is_selectable_but_not_ready(fast_settings):
    backend = FakeBackend([Device("EPSON-TM88", DeviceStatus.PAUSED)])
    svc = PrintService(fast_settings, backend=backend)
    assert svc.test_device("EPSON-TM88")["usable"] is False
    assert asyncio.run(svc.print_ticket("KITCHEN ORDER\n1x Tea\n")).device == "EPSON-TM88"


def test_refresh_and_status(fast_settings):
    backend = FakeBackend(thermal_devices())
    svc = PrintService(fast_settings, backend=backend)
    assert svc.status()["device_cache_age_seconds"] is None
    report = svc.refresh_devices()
    assert report.available is True
    status = svc.status()
    assert status["backend"] == "fake"
    assert status["device_cache_age_seconds"] is not None
    assert status["preloader_alive"] is False

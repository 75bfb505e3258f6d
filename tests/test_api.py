import json
from typing import Any, Dict

from conftest import FakeBackend, thermal_devices
from kot_printer import create_app, get_service
from kot_printer.printing.devices import Device, DeviceStatus
from kot_printer.printing.service import PrintService


def _client(fast_settings, backend=None):
    svc = PrintService(fast_settings, backend=backend or FakeBackend(thermal_devices()))
    app = create_app(service=svc, start_preloader=False)
    app.config.update(TESTING=True)
    return app, app.test_client()


def _post(client, url: str, payload: Dict[str, Any]):
    return client.post(url, data=json.dumps(payload), headers={"Content-Type": "application/json"})


def _order_payload(**over):
    payload = {
        "items": [
            {"id": 1, "name": "Tea", "price": 20, "quantity": 2},
            {"id": 2, "name": "Idli", "price": 40, "quantity": 1, "surcharge": 5},
        ],
        "location": {"type": "table", "number": 5},
        "timestamp": "2026-10-18T13:30:05",
        "catalog": {"1": "drinks", "2": "kitchen"},
    }
    payload.update(over)
    return payload


def test_app_exposes_service(fast_settings):
    app, _ = _client(fast_settings)
    with app.app_context():
        assert isinstance(get_service(), PrintService)


def test_print_order(fast_settings):
    backend = FakeBackend(thermal_devices())
    _, client = _client(fast_settings, backend)
    r = _post(client, "/api/v1/orders/print", _order_payload())
    assert r.status_code == 200, r.get_data(as_text=True)
    body = r.get_json()
    assert body["success"] is True
    assert body["printed"] == 2
    assert body["total"] == 2
    assert body["per_group"]["drinks"]["device"] == "EPSON-TM88"
    assert any("2x Tea" in s.content and "DRINKS ORDER" in s.content for s in backend.surfaces)


def test_print_order_uses_menu_file_when_catalog_omitted(fast_settings, tmp_path, monkeypatch):
    menu = tmp_path / "menu.json"
    menu.write_text(json.dumps({"items": [{"id": 1, "name": "Tea", "category": "Tea/Coffee"}]}), encoding="utf-8")
    monkeypatch.setenv("KOTPRINTER_MENU_PATH", str(menu))
    _, client = _client(fast_settings)
    payload = _order_payload()
    del payload["catalog"]
    r = _post(client, "/api/v1/orders/print", payload)
    body = r.get_json()
    assert set(body["per_group"]) == {"kitchen", "drinks"}


def test_print_order_with_bill_and_counter_label(fast_settings):
    backend = FakeBackend(thermal_devices())
    _, client = _client(fast_settings, backend)
    r = _post(client, "/api/v1/orders/print", _order_payload(location="Counter 2", include_bill=True))
    body = r.get_json()
    assert body["total"] == 3
    assert body["per_group"]["bill"]["success"] is True
    assert all("Counter 2" in s.content for s in backend.surfaces)


def test_print_order_validation(fast_settings):
    _, client = _client(fast_settings)
    r = _post(client, "/api/v1/orders/print", _order_payload(items=[]))
    assert r.status_code == 400
    assert "error" in r.get_json()

    r = _post(client, "/api/v1/orders/print", _order_payload(items=[{"id": 1, "name": "Tea", "quantity": 0}]))
    assert r.status_code == 400

    r = _post(client, "/api/v1/orders/print", _order_payload(location={"type": "patio", "number": 1}))
    assert r.status_code == 400


def test_non_json_body_is_rejected(fast_settings):
    _, client = _client(fast_settings)
    r = client.post("/api/v1/print", data="content=hi")
    assert r.status_code == 415


def test_print_ticket_reports_no_device(fast_settings):
    _, client = _client(fast_settings, FakeBackend([]))
    r = _post(client, "/api/v1/print", {"content": "KITCHEN ORDER\n1x Idli\n"})
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is False
    assert body["error_kind"] == "NoDeviceFound"


def test_print_ticket_on_named_device(fast_settings):
    _, client = _client(fast_settings)
    r = _post(client, "/api/v1/print", {"content": "hello\n", "device": "Bar POS", "kind": "drinks-ticket"})
    body = r.get_json()
    assert body["success"] is True
    assert body["device"] == "Bar POS"
    assert body["kind"] == "drinks-ticket"


def test_print_ticket_requires_content(fast_settings):
    _, client = _client(fast_settings)
    r = _post(client, "/api/v1/print", {"content": "   "})
    assert r.status_code == 400


def test_print_bill(fast_settings):
    backend = FakeBackend(thermal_devices())
    _, client = _client(fast_settings, backend)
    payload = _order_payload()
    del payload["catalog"]
    r = _post(client, "/api/v1/bills/print", payload)
    body = r.get_json()
    assert body["success"] is True
    assert body["kind"] == "bill"
    assert "Parcel Charges:" in backend.surfaces[0].content


def test_devices_endpoints(fast_settings):
    devices = [Device("EPSON-TM88", DeviceStatus.IDLE, is_default=True), Device("Office", DeviceStatus.ERROR)]
    _, client = _client(fast_settings, FakeBackend(devices))

    body = client.get("/api/v1/devices").get_json()
    assert body["available"] is True
    assert body["default_device"] == "EPSON-TM88"
    assert [d["name"] for d in body["devices"]] == ["EPSON-TM88", "Office"]

    body = client.post("/api/v1/devices/refresh").get_json()
    assert body["available"] is True

    assert client.get("/api/v1/devices/EPSON-TM88/test").get_json() == {"usable": True, "status": "idle"}
    missing = client.get("/api/v1/devices/Ghost/test").get_json()
    assert missing["usable"] is False


def test_healthz(fast_settings):
    _, client = _client(fast_settings)
    body = client.get("/healthz").get_json()
    assert body["status"] == "ok"
    assert body["devices_available"] is True
    assert body["backend"] == "fake"
    assert body["config_present"] is False


def test_healthz_degraded_without_devices(fast_settings):
    _, client = _client(fast_settings, FakeBackend([]))
    body = client.get("/healthz").get_json()
    assert body["status"] == "degraded"
    assert body["reason"] == "no_devices"

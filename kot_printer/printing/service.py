"""
Print service: the boundary the UI layer talks to.

It wires settings, backend, device registry and dispatcher together and
exposes:
- print_ticket(content, target_device)     single silent print
- print_order_tickets(order, catalog)      classify, render, dispatch concurrently, aggregate
- print_bill(order)                        customer bill
- list_devices() / test_device(name)       status queries for display and diagnostics
- refresh_devices() / start_preloader()    cache maintenance
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from kot_printer.core.config import PrintSettings, load_settings
from kot_printer.printing.backends import PrintBackend, create_backend
from kot_printer.printing.devices import Device, DeviceCache, DevicePreloader, DeviceRegistry, DeviceStatus
from kot_printer.printing.dispatcher import JobDispatcher
from kot_printer.printing.errors import DeviceQueryError
from kot_printer.printing.models import (
    JobResult,
    Order,
    OrderPrintSummary,
    TicketJob,
    TicketKind,
)
from kot_printer.printing.render import render_bill, render_ticket
from kot_printer.printing.routing import classify
from kot_printer.printing.selection import is_ready
from kot_printer.printing.surface import settings_print_options

logger = logging.getLogger(__name__)

BILL_GROUP = "bill"


@dataclass(frozen=True)
class DeviceReport:
    available: bool
    default_device: Optional[str] = None
    devices: List[Device] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "available": self.available,
            "default_device": self.default_device,
            "devices": [d.to_dict() for d in self.devices],
        }
        if self.error:
            out["error"] = self.error
        return out


def _report(devices: List[Device]) -> DeviceReport:
    # Any listed device counts as available: status codes are too unreliable to rule one out
    default = next((d for d in devices if d.is_default), devices[0] if devices else None)
    return DeviceReport(
        available=bool(devices),
        default_device=default.name if default else None,
        devices=list(devices),
    )


class PrintService:
    def __init__(
        self,
        settings: Optional[PrintSettings] = None,
        backend: Optional[PrintBackend] = None,
        registry: Optional[DeviceRegistry] = None,
        dispatcher: Optional[JobDispatcher] = None,
    ):
        self.settings = settings or PrintSettings()
        self.backend = backend or create_backend(self.settings)
        self.registry = registry or DeviceRegistry(self.backend, DeviceCache(ttl=self.settings.device_cache_ttl_seconds))
        self.dispatcher = dispatcher or JobDispatcher(
            self.backend,
            self.registry,
            options=settings_print_options(self.settings.paper_width_mm, self.settings.print_dpi),
            timeout=self.settings.job_timeout_seconds,
            render_delay=self.settings.render_delay_seconds,
            name_patterns=self.settings.device_name_patterns,
        )
        self._preloader: Optional[DevicePreloader] = None

    @classmethod
    def from_config(cls, path: Optional[str] = None) -> "PrintService":
        return cls(load_settings(path))

    # -- printing ---------------------------------------------------------

    async def print_ticket(
        self,
        content: str,
        target_device: Optional[str] = None,
        kind: TicketKind = TicketKind.BILL,
    ) -> JobResult:
        job = TicketJob(content=content, kind=kind, target_device=target_device or None)
        return await self.dispatcher.dispatch(job)

    async def print_order_tickets(
        self,
        order: Order,
        catalog: Optional[Mapping[Any, Any]],
        include_bill: bool = False,
        target_device: Optional[str] = None,
    ) -> OrderPrintSummary:
        """
        Classify the order's items, render one ticket per group and dispatch
        them concurrently. Each ticket counts on its own: the summary reports
        success when at least one of them printed.
        """
        if not order.items:
            logger.info("Order has no items; nothing to print")
            return OrderPrintSummary(success=False, printed=0, total=0, message="No items to print")

        groups = classify(order.items, catalog)
        context = order.context
        columns = self.settings.ticket_columns

        jobs: Dict[str, TicketJob] = {}
        for group, items in groups.items():
            jobs[group.value] = TicketJob(
                content=render_ticket(group, items, context, columns=columns),
                kind=TicketKind.for_group(group),
                target_device=target_device,
            )
        if include_bill:
            jobs[BILL_GROUP] = TicketJob(
                content=self.render_bill(order),
                kind=TicketKind.BILL,
                target_device=target_device,
            )

        results = await asyncio.gather(*(self.dispatcher.dispatch(job) for job in jobs.values()))
        per_group = dict(zip(jobs.keys(), results))
        printed = sum(1 for r in results if r.success)
        total = len(results)
        logger.info("Order print finished: %d/%d ticket(s) printed", printed, total)
        return OrderPrintSummary(success=printed > 0, printed=printed, total=total, per_group=per_group)

    def render_bill(self, order: Order) -> str:
        return render_bill(
            order.items,
            order.context,
            restaurant=self.settings.restaurant,
            service_charge_percent=self.settings.service_charge_percent,
            columns=self.settings.ticket_columns,
        )

    async def print_bill(self, order: Order, target_device: Optional[str] = None) -> JobResult:
        if not order.items:
            return JobResult(success=False, message="No items to print", kind=TicketKind.BILL)
        return await self.print_ticket(self.render_bill(order), target_device, kind=TicketKind.BILL)

    # -- devices ----------------------------------------------------------

    def list_devices(self) -> DeviceReport:
        try:
            devices = self.registry.list_devices()
        except DeviceQueryError as e:
            logger.warning("Printer check failed: %s", e)
            return DeviceReport(available=False, error=str(e))
        return _report(devices)

    def test_device(self, name: str) -> Dict[str, Any]:
        try:
            devices = self.registry.list_devices()
        except DeviceQueryError as e:
            return {"usable": False, "status": DeviceStatus.UNKNOWN.value, "error": str(e)}
        device = next((d for d in devices if d.name == name), None)
        if device is None:
            return {"usable": False, "status": DeviceStatus.UNKNOWN.value, "error": f'Printer "{name}" not found'}
        return {"usable": is_ready(device), "status": device.status.value}

    def refresh_devices(self) -> DeviceReport:
        try:
            devices = self.registry.refresh()
        except DeviceQueryError as e:
            return DeviceReport(available=False, error=str(e))
        return _report(devices)

    def start_preloader(self) -> DevicePreloader:
        """Start (once) the background cache warm-up."""
        if self._preloader is None:
            self._preloader = DevicePreloader(
                self.registry,
                delay=self.settings.preload_delay_seconds,
                interval=self.settings.device_refresh_interval_seconds,
            )
        self._preloader.start()
        return self._preloader

    def stop_preloader(self) -> None:
        if self._preloader is not None:
            self._preloader.stop(timeout=1.0)

    def status(self) -> Dict[str, Any]:
        age = self.registry.cache.age()
        return {
            "backend": getattr(self.backend, "name", type(self.backend).__name__),
            "device_cache_age_seconds": round(age, 3) if age is not None else None,
            "preloader_alive": bool(self._preloader and self._preloader.alive),
        }


__all__ = ["BILL_GROUP", "DeviceReport", "PrintService"]

"""
Order, ticket and job result types shared by the printing subsystem.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from kot_printer.printing.errors import ErrorKind


class RoutingGroup(str, Enum):
    """Ticket groups an order item can be routed to, in print order."""

    KITCHEN = "kitchen"
    DRINKS = "drinks"

    @classmethod
    def parse(cls, tag: Any) -> Optional["RoutingGroup"]:
        """Return the group for a catalog tag, or None when the tag is not recognized."""
        if isinstance(tag, cls):
            return tag
        if not isinstance(tag, str):
            return None
        try:
            return cls(tag.strip().lower())
        except ValueError:
            return None


class TicketKind(str, Enum):
    KITCHEN_TICKET = "kitchen-ticket"
    DRINKS_TICKET = "drinks-ticket"
    BILL = "bill"

    @classmethod
    def for_group(cls, group: RoutingGroup) -> "TicketKind":
        return cls.DRINKS_TICKET if group is RoutingGroup.DRINKS else cls.KITCHEN_TICKET


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a number: {value!r}")


@dataclass
class OrderItem:
    """
    A line item of the active order. Mutable until the order is printed.

    The routing group is deliberately absent: it is resolved from the menu
    catalog at classification time.
    """

    id: Union[int, str]
    name: str
    price: Decimal = Decimal("0")
    quantity: int = 1
    surcharge: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        self.price = _to_decimal(self.price)
        self.surcharge = _to_decimal(self.surcharge)
        self.quantity = int(self.quantity)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OrderItem":
        return cls(
            id=data["id"],
            name=str(data.get("name", "")),
            price=data.get("price", 0),
            quantity=data.get("quantity", data.get("qty", 1)),
            surcharge=data.get("surcharge", data.get("parcelCharge", 0)),
        )


@dataclass(frozen=True)
class Location:
    """Where the order is served: a table or a counter."""

    kind: str = "table"
    number: Union[int, str] = ""

    @property
    def label(self) -> str:
        prefix = "Counter" if self.kind == "counter" else "Table"
        return f"{prefix} {self.number or 'Unknown'}"

    @classmethod
    def coerce(cls, value: Union["Location", Mapping[str, Any], str, None]) -> "Location":
        if isinstance(value, Location):
            return value
        if isinstance(value, Mapping):
            return cls(kind=str(value.get("type", value.get("kind", "table"))), number=value.get("number", ""))
        if isinstance(value, str) and value.strip():
            # "Table 4" / "Counter 2" style labels
            head, _, tail = value.strip().partition(" ")
            if head.lower() in ("table", "counter") and tail:
                return cls(kind=head.lower(), number=tail.strip())
            return cls(kind="table", number=value.strip())
        return cls()


@dataclass(frozen=True)
class TicketContext:
    location: Location
    timestamp: datetime


@dataclass
class Order:
    items: List[OrderItem]
    location: Location = field(default_factory=Location)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def context(self) -> TicketContext:
        return TicketContext(location=self.location, timestamp=self.timestamp)


@dataclass(frozen=True)
class TicketJob:
    """One dispatch request. Built per call and discarded once a result exists."""

    content: str
    kind: TicketKind = TicketKind.BILL
    target_device: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    # Monotonic instant the timeout is measured from
    created_monotonic: float = field(default_factory=time.monotonic)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


@dataclass(frozen=True)
class JobResult:
    success: bool
    device: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    kind: Optional[TicketKind] = None
    job_id: Optional[str] = None

    @classmethod
    def ok(cls, job: TicketJob, device: str) -> "JobResult":
        return cls(
            success=True,
            device=device,
            message=f"Printed {job.kind.value} on {device}",
            kind=job.kind,
            job_id=job.id,
        )

    @classmethod
    def failed(
        cls,
        job: TicketJob,
        error_kind: ErrorKind,
        message: str,
        device: Optional[str] = None,
    ) -> "JobResult":
        return cls(success=False, device=device, error_kind=error_kind, message=message, kind=job.kind, job_id=job.id)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "device": self.device}
        if self.kind is not None:
            out["kind"] = self.kind.value
        if not self.success:
            out["error_kind"] = self.error_kind.value if self.error_kind else None
            out["error"] = self.message
        elif self.message:
            out["message"] = self.message
        return out


@dataclass(frozen=True)
class OrderPrintSummary:
    success: bool
    printed: int
    total: int
    per_group: Dict[str, JobResult] = field(default_factory=dict)
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "printed": self.printed,
            "total": self.total,
            "per_group": {k: v.to_dict() for k, v in self.per_group.items()},
        }
        if self.message:
            out["message"] = self.message
        return out


__all__ = [
    "JobResult",
    "Location",
    "Order",
    "OrderItem",
    "OrderPrintSummary",
    "RoutingGroup",
    "TicketContext",
    "TicketJob",
    "TicketKind",
]

from __future__ import annotations

"""
Pydantic schemas for the KOT Printer API (v1).

These models validate incoming print requests and convert them into the
printing subsystem's own types (Order, OrderItem, Location). Limits are
applied via the validation context passed at runtime, allowing env-driven
constraints without circular imports.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from kot_printer.printing.models import Location, Order, OrderItem, TicketKind


def _has_control_chars(s: str) -> bool:
    return any((ord(c) < 32 and c not in "\n\r\t") or ord(c) == 127 for c in s)


def _limit(info: ValidationInfo, key: str, default: int) -> int:
    limits = (info.context or {}).get("limits", {})
    return int(limits.get(key, default))


class OrderItemIn(BaseModel):
    """A single order line as sent by the POS UI."""
    id: Union[int, str] = Field(description="Menu item id", examples=[1, "42"])
    name: str = Field(description="Item name printed on the ticket", min_length=1, examples=["Masala Tea", "Idli"])
    price: Decimal = Field(default=Decimal("0"), ge=0, description="Unit price")
    quantity: int = Field(default=1, ge=1, description="Number of units", examples=[1, 2])
    surcharge: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Per-line parcel charge, added once regardless of quantity",
    )

    @field_validator("name")
    @classmethod
    def _name_rules(cls, v: str, info: ValidationInfo) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("item name required")
        max_len = _limit(info, "MAX_ITEM_NAME_LEN", 120)
        if len(v) > max_len:
            raise ValueError(f"item name too long (max {max_len})")
        if _has_control_chars(v):
            raise ValueError("control characters not allowed")
        return v

    def to_item(self) -> OrderItem:
        return OrderItem(id=self.id, name=self.name, price=self.price, quantity=self.quantity, surcharge=self.surcharge)


class LocationIn(BaseModel):
    """Table or counter the order is served at."""
    type: str = Field(default="table", description="'table' or 'counter'", examples=["table", "counter"])
    number: Union[int, str] = Field(description="Table or counter number", examples=[5, "2A"])

    @field_validator("type")
    @classmethod
    def _type_norm(cls, v: str) -> str:
        v = (v or "table").strip().lower()
        if v not in ("table", "counter"):
            raise ValueError(f"invalid location type: {v}")
        return v

    def to_location(self) -> Location:
        return Location(kind=self.type, number=self.number)


class PrintTicketRequest(BaseModel):
    """Print preformatted ticket text on one device."""
    content: str = Field(description="Fixed-width ticket text", min_length=1)
    device: Optional[str] = Field(default=None, description="Target device name; omitted for automatic selection")
    kind: TicketKind = Field(default=TicketKind.BILL, description="Ticket kind, used for logs and results")

    @field_validator("content")
    @classmethod
    def _content_rules(cls, v: str, info: ValidationInfo) -> str:
        if not v or not v.strip():
            raise ValueError("content required")
        max_len = _limit(info, "MAX_CONTENT_CHARS", 20000)
        if len(v) > max_len:
            raise ValueError(f"content too long (max {max_len})")
        return v

    @field_validator("device")
    @classmethod
    def _device_norm(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None


class BillPrintRequest(BaseModel):
    """Print the customer bill for an order."""
    items: List[OrderItemIn] = Field(description="Order lines", min_length=1)
    location: Union[LocationIn, str] = Field(description="Where the order is served")
    timestamp: Optional[datetime] = Field(default=None, description="Order time; defaults to now")
    device: Optional[str] = Field(default=None, description="Target device name; omitted for automatic selection")

    @field_validator("items")
    @classmethod
    def _items_rules(cls, v: List[OrderItemIn], info: ValidationInfo) -> List[OrderItemIn]:
        max_items = _limit(info, "MAX_ORDER_ITEMS", 200)
        if len(v) > max_items:
            raise ValueError(f"too many items (max {max_items})")
        return v

    @field_validator("device")
    @classmethod
    def _device_norm(cls, v: Optional[str]) -> Optional[str]:
        v = (v or "").strip()
        return v or None

    def to_order(self) -> Order:
        location = self.location.to_location() if isinstance(self.location, LocationIn) else Location.coerce(self.location)
        return Order(
            items=[i.to_item() for i in self.items],
            location=location,
            timestamp=self.timestamp or datetime.now(),
        )


class OrderPrintRequest(BillPrintRequest):
    """Print kitchen/drinks tickets for an order, optionally with its bill."""
    catalog: Optional[Dict[str, Optional[str]]] = Field(
        default=None,
        description="Menu item id -> routing tag; when omitted the menu file is used",
        examples=[{"1": "drinks", "2": "kitchen"}],
    )
    include_bill: bool = Field(default=False, description="Also print the customer bill")

    @field_validator("catalog", mode="before")
    @classmethod
    def _catalog_keys(cls, v: Any) -> Any:
        # JSON object keys are strings; accept numeric keys from Python callers too
        if isinstance(v, dict):
            return {str(k): val for k, val in v.items()}
        return v


__all__ = [
    "BillPrintRequest",
    "LocationIn",
    "OrderItemIn",
    "OrderPrintRequest",
    "PrintTicketRequest",
]

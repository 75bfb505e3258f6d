"""
Ticket text rendering for KOT Printer.

Tickets are plain fixed-width text sized for thermal stock: 48 columns is the
Font A width of 80mm paper. Every emitted line fits within the column budget,
so the printed layout never depends on the rendering surface's text flow.
Rasterizing the text for a printer happens later, in printing.surface.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from kot_printer.core.config import RestaurantInfo
from kot_printer.printing.models import OrderItem, RoutingGroup, TicketContext

logger = logging.getLogger(__name__)

DEFAULT_COLUMNS = 48
MIN_COLUMNS = 24


def format_date(ts: datetime) -> str:
    return ts.strftime("%d %b %Y")


def format_time(ts: datetime) -> str:
    return ts.strftime("%I:%M:%S %p")


def bill_number(ts: datetime) -> str:
    """Bill numbers are the print minute as YYMMDDHHMM."""
    return ts.strftime("%y%m%d%H%M")


def _money(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def wrap_line(text: str, width: int, indent: int = 0) -> List[str]:
    """
    Greedy word wrap to a fixed column width.

    Continuation lines are prefixed with `indent` spaces. Words longer than
    the available width are hard-split. Whitespace runs collapse to a single
    space, so the output depends only on the words and the width.
    """
    width = max(1, width)
    indent = min(max(0, indent), width - 1)
    words = text.split()
    if not words:
        return [""]

    lines: List[str] = []
    current = ""
    for word in words:
        avail = width - (indent if lines else 0)
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= avail:
            current = candidate
            continue
        if current:
            lines.append(current)
            current = ""
            avail = width - indent
        if len(word) <= avail:
            current = word
            continue
        # Hard-split: the first chunk fills this line, the rest continue indented
        lines.append(word[:avail])
        rest = word[avail:]
        cont = width - indent
        while len(rest) > cont:
            lines.append(rest[:cont])
            rest = rest[cont:]
        current = rest
    if current:
        lines.append(current)

    return [lines[0]] + [" " * indent + ln for ln in lines[1:]]


def truncate(text: str, width: int) -> str:
    """Cut text to width, marking the cut with '...' when there is room."""
    text = " ".join(text.split())
    if len(text) <= width:
        return text
    if width <= 3:
        return text[:width]
    return text[: width - 3] + "..."


def _center(text: str, width: int) -> str:
    return truncate(text, width).center(width).rstrip()


def _columns(columns: Optional[int]) -> int:
    return max(MIN_COLUMNS, int(columns or DEFAULT_COLUMNS))


def render_ticket(
    group: RoutingGroup,
    items: Sequence[OrderItem],
    context: TicketContext,
    columns: int = DEFAULT_COLUMNS,
) -> str:
    """
    Render one kitchen/drinks ticket.

    Layout:
      header  - centered "<GROUP> ORDER", location, date and time
      body    - "{quantity}x {name}" per item, input order, wrapped under the name
      footer  - total item count (sum of quantities)
    """
    width = _columns(columns)
    rule = "-" * width
    double = "=" * width
    label = group.value if isinstance(group, RoutingGroup) else str(group)

    lines: List[str] = [
        double,
        _center(f"{label.upper()} ORDER", width),
        double,
        truncate(context.location.label, width),
        f"Date: {format_date(context.timestamp)}",
        f"Time: {format_time(context.timestamp)}",
        rule,
    ]
    for item in items:
        prefix = f"{item.quantity}x "
        lines.extend(wrap_line(f"{prefix}{item.name}", width, indent=len(prefix)))
    lines.extend(
        [
            rule,
            f"Total Items: {sum(item.quantity for item in items)}",
            double,
        ]
    )
    return "\n".join(lines) + "\n"


def render_bill(
    items: Sequence[OrderItem],
    context: TicketContext,
    restaurant: Optional[RestaurantInfo] = None,
    service_charge_percent: float = 0.0,
    columns: int = DEFAULT_COLUMNS,
) -> str:
    """
    Render the customer bill: restaurant header, bill number, item table,
    subtotal, parcel charges, optional service charge and total.

    Parcel charges (item surcharges) are added once per line, not per unit.
    """
    width = _columns(columns)
    restaurant = restaurant or RestaurantInfo()
    rule = "-" * width
    double = "=" * width

    qty_w, rate_w, amount_w = 4, 9, 10
    name_w = width - qty_w - rate_w - amount_w - 3

    subtotal = sum((item.line_total for item in items), Decimal("0"))
    parcel = sum((item.surcharge for item in items), Decimal("0"))
    service = (subtotal * Decimal(str(service_charge_percent)) / Decimal("100")) if service_charge_percent else Decimal("0")
    total = subtotal + parcel + service

    lines: List[str] = [double, _center(restaurant.name, width), double]
    lines.extend(_center(line, width) for line in restaurant.address)
    lines.extend(
        [
            rule,
            f"Bill No: {bill_number(context.timestamp)}",
            truncate(context.location.label, width),
            f"Date: {format_date(context.timestamp)}  {format_time(context.timestamp)}",
            double,
            f"{'ITEM':<{name_w}} {'QTY':>{qty_w}} {'RATE':>{rate_w}} {'AMOUNT':>{amount_w}}",
            rule,
        ]
    )
    for item in items:
        qty, rate, amount = str(item.quantity), _money(item.price), _money(item.line_total)
        if len(qty) <= qty_w and len(rate) <= rate_w and len(amount) <= amount_w:
            lines.append(
                f"{truncate(item.name, name_w):<{name_w}} {qty:>{qty_w}} {rate:>{rate_w}} {amount:>{amount_w}}"
            )
            continue
        # Figures too wide for the table: name on its own line, figures wrapped below it
        lines.append(truncate(item.name, width))
        lines.extend("  " + ln for ln in wrap_line(f"{qty} x {rate} = {amount}", width - 2))
    lines.append(rule)

    def _total_line(label: str, value: Decimal) -> List[str]:
        money = _money(value)
        if len(label) + 1 + len(money) <= width:
            return [f"{label}{money:>{width - len(label)}}"]
        return [truncate(label, width), money[-width:].rjust(width)]

    lines.extend(_total_line("Subtotal:", subtotal))
    if parcel:
        lines.extend(_total_line("Parcel Charges:", parcel))
    if service:
        lines.extend(_total_line(f"Service Charge ({service_charge_percent:g}%):", service))
    lines.append(double)
    lines.extend(_total_line("TOTAL:", total))
    lines.append(double)
    if restaurant.footer:
        lines.append(_center(restaurant.footer, width))
    logger.debug("Rendered bill %s: %d line(s), total=%s", bill_number(context.timestamp), len(items), _money(total))
    return "\n".join(lines) + "\n"


__all__ = [
    "DEFAULT_COLUMNS",
    "bill_number",
    "format_date",
    "format_time",
    "render_bill",
    "render_ticket",
    "truncate",
    "wrap_line",
]

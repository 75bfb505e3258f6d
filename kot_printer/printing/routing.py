"""
Routing of order items into ticket groups.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Dict, List, Optional

from kot_printer.printing.catalog import MenuCatalog
from kot_printer.printing.models import OrderItem, RoutingGroup

logger = logging.getLogger(__name__)

FALLBACK_GROUP = RoutingGroup.KITCHEN


def _lookup_tag(catalog: Optional[Mapping[Any, Any]], item: OrderItem) -> Any:
    if catalog is None:
        return None
    if isinstance(catalog, MenuCatalog):
        return catalog.lookup(item.id, item.name)
    tag = catalog.get(item.id)
    if tag is None and not isinstance(item.id, str):
        tag = catalog.get(str(item.id))
    return tag


def classify(
    items: Sequence[OrderItem],
    catalog: Optional[Mapping[Any, Any]],
) -> Dict[RoutingGroup, List[OrderItem]]:
    """
    Partition items into routing groups using the catalog's per-item tags.

    Every item lands in exactly one group. Items whose tag is missing or not
    recognized go to the kitchen. Only non-empty groups are returned, ordered
    as RoutingGroup declares them.
    """
    buckets: Dict[RoutingGroup, List[OrderItem]] = {g: [] for g in RoutingGroup}
    for item in items:
        tag = _lookup_tag(catalog, item)
        group = RoutingGroup.parse(tag)
        if group is None:
            if tag is None:
                logger.debug("Item %r (%s) not in catalog; routing to %s", item.id, item.name, FALLBACK_GROUP.value)
            else:
                logger.warning("Item %r (%s) has unknown group %r; routing to %s", item.id, item.name, tag, FALLBACK_GROUP.value)
            group = FALLBACK_GROUP
        buckets[group].append(item)

    groups = {g: lst for g, lst in buckets.items() if lst}
    logger.info(
        "Classified %d item(s): %s",
        len(items),
        ", ".join(f"{g.value}={len(lst)}" for g, lst in groups.items()) or "none",
    )
    return groups


__all__ = ["FALLBACK_GROUP", "classify"]

"""
Menu catalog lookups used for ticket routing.

The menu file is owned by the order/menu store; this module only reads it.
Expected shape:

{
  "items": [
    {"id": 1, "name": "Tea", "category": "Tea/Coffee", "kotGroup": "drinks"},
    ...
  ]
}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from kot_printer.core.config import get_menu_path

logger = logging.getLogger(__name__)

# Group for menu entries that carry a category but no explicit kotGroup.
# Categories not listed here go to the kitchen.
CATEGORY_GROUPS: Dict[str, str] = {
    "Tea/Coffee": "drinks",
}

ItemId = Union[int, str]


def _key(item_id: ItemId) -> str:
    # JSON files mix numeric and string ids; "1" and 1 are the same item
    return str(item_id).strip()


class MenuCatalog(Mapping):
    """
    Read-only mapping of menu item id -> routing tag, with a name index for
    order items whose id no longer matches the menu.
    """

    def __init__(self, by_id: Optional[Mapping[ItemId, Optional[str]]] = None, by_name: Optional[Mapping[str, Optional[str]]] = None):
        self._by_id: Dict[str, Optional[str]] = {_key(k): v for k, v in (by_id or {}).items()}
        self._by_name: Dict[str, Optional[str]] = dict(by_name or {})

    def __getitem__(self, item_id: ItemId) -> Optional[str]:
        return self._by_id[_key(item_id)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def lookup(self, item_id: ItemId, name: Optional[str] = None) -> Optional[str]:
        """
        Return the routing tag for an item by id, falling back to an exact
        name match. Returns None when the item is not in the catalog.
        """
        key = _key(item_id)
        if key in self._by_id:
            return self._by_id[key]
        if name and name in self._by_name:
            logger.debug("Catalog matched %r by name fallback", name)
            return self._by_name[name]
        return None

    @classmethod
    def from_menu(cls, data: Mapping[str, Any]) -> "MenuCatalog":
        """Build a catalog from a parsed menu document."""
        by_id: Dict[str, Optional[str]] = {}
        by_name: Dict[str, Optional[str]] = {}
        entries: List[Mapping[str, Any]] = list(data.get("items") or [])
        for entry in entries:
            if not isinstance(entry, Mapping) or "id" not in entry:
                continue
            tag = entry.get("kotGroup")
            if not tag and entry.get("category") is not None:
                tag = CATEGORY_GROUPS.get(str(entry["category"]), "kitchen")
            by_id[_key(entry["id"])] = tag
            name = entry.get("name")
            if isinstance(name, str) and name and name not in by_name:
                by_name[name] = tag
        return cls(by_id, by_name)


def load_catalog(path: Optional[str] = None) -> MenuCatalog:
    """
    Load the menu catalog from disk. A missing file yields an empty catalog
    (every item then routes to the kitchen).

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    menu_path = Path(path or get_menu_path())
    if not menu_path.exists():
        logger.warning("Menu catalog not found at %s; routing everything to kitchen", menu_path)
        return MenuCatalog()
    with menu_path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    catalog = MenuCatalog.from_menu(data if isinstance(data, Mapping) else {"items": data})
    logger.info("Loaded menu catalog with %d item(s) from %s", len(catalog), menu_path)
    return catalog


__all__ = ["CATEGORY_GROUPS", "MenuCatalog", "load_catalog"]

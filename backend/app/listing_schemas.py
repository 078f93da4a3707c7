"""
Per-listing-type field schemas.

Each listing type may require extra "dynamic" fields (e.g. an event needs a
date, a vehicle needs a brand and model). The schemas live in a JSON file so
they can be edited without a redeploy:

    {"<listing_type_id>": [{"name", "label", "type", "required", "options"?}, ...]}
"""

from __future__ import annotations

import copy
import json
import logging
import os
from threading import Lock
from typing import Any

from app.config import listing_schemas_path

logger = logging.getLogger(__name__)

FieldDescriptor = dict[str, Any]


def _clean_descriptor(raw: Any) -> FieldDescriptor | None:
    if not isinstance(raw, dict):
        return None
    name = str(raw.get("name") or "").strip()
    if not name:
        return None
    out: FieldDescriptor = {
        "name": name,
        "label": str(raw.get("label") or name),
        "type": str(raw.get("type") or "text"),
        "required": bool(raw.get("required", False)),
    }
    options = raw.get("options")
    if isinstance(options, list):
        out["options"] = [str(o) for o in options]
    return out


def _parse_schema_table(data: Any) -> dict[str, list[FieldDescriptor]]:
    if not isinstance(data, dict):
        raise ValueError("listing schema file must contain a JSON object")
    table: dict[str, list[FieldDescriptor]] = {}
    for key, fields in data.items():
        if not isinstance(fields, list):
            continue
        cleaned = [d for d in (_clean_descriptor(f) for f in fields) if d is not None]
        table[str(key).strip()] = cleaned
    return table


class ListingSchemaRegistry:
    """
    Lookup `listing_type_id -> ordered field descriptors`.

    The backing file is re-read whenever its mtime changes. Unknown ids, a
    missing file and a corrupt file all resolve to an empty schema.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = Lock()
        self._mtime: float | None = None
        self._table: dict[str, list[FieldDescriptor]] = {}
        self._missing = False

    def _current_mtime(self) -> float | None:
        try:
            return os.path.getmtime(self.path)
        except OSError:
            return None

    def _reload_if_changed(self) -> None:
        mtime = self._current_mtime()
        with self._lock:
            if mtime is not None and mtime == self._mtime:
                return
            if mtime is None:
                if not self._missing:
                    logger.warning("Listing schema file not found: %s", self.path)
                self._missing = True
                self._mtime = None
                self._table = {}
                return
            self._missing = False
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    self._table = _parse_schema_table(json.load(f))
            except (OSError, ValueError) as exc:
                logger.warning("Failed to load listing schema file %s (%s)", self.path, exc.__class__.__name__)
                self._table = {}
            self._mtime = mtime

    def fields_for(self, listing_type_id: Any) -> list[FieldDescriptor]:
        key = str(listing_type_id if listing_type_id is not None else "").strip()
        if not key:
            return []
        self._reload_if_changed()
        return copy.deepcopy(self._table.get(key, []))

    def required_fields(self, listing_type_id: Any) -> list[FieldDescriptor]:
        return [f for f in self.fields_for(listing_type_id) if f.get("required")]


_registry: ListingSchemaRegistry | None = None


def get_listing_schemas() -> ListingSchemaRegistry:
    """FastAPI dependency; one registry per configured path."""
    global _registry
    path = listing_schemas_path()
    if _registry is None or _registry.path != path:
        _registry = ListingSchemaRegistry(path)
    return _registry

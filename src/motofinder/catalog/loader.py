"""
Shop catalog loader.

The catalog is a local JSON file (default: `data/catalogs/shops.json`): a list of
shop objects, each with an optional nested `services` list. It is validated into
typed Pydantic models so repositories and the importer can assume a consistent
shape. Offerings inherit `shop_id` from their parent entry.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from motofinder.core.env import resolve_project_path
from motofinder.domain.models import Shop, ShopServiceOffering

logger = logging.getLogger(__name__)

_SHOPS_ADAPTER = TypeAdapter(list[Shop])
_OFFERINGS_ADAPTER = TypeAdapter(list[ShopServiceOffering])


@dataclass(frozen=True)
class ShopCatalog:
    shops: list[Shop]
    offerings: list[ShopServiceOffering]


def parse_catalog(payload: Any) -> ShopCatalog:
    """Validate a decoded catalog payload.

    Raises:
        ValueError: If the root is not a list or an entry fails validation.
    """
    if not isinstance(payload, list):
        raise ValueError("Shop catalog root must be a JSON list.")

    raw_offerings: list[dict[str, Any]] = []
    raw_shops: list[dict[str, Any]] = []
    for entry in payload:
        if not isinstance(entry, dict):
            raise ValueError("Shop catalog entries must be JSON objects.")
        entry = dict(entry)
        services = entry.pop("services", None) or []
        raw_shops.append(entry)
        for svc in services:
            if isinstance(svc, dict):
                raw_offerings.append({**svc, "shop_id": entry.get("id")})

    shops = _SHOPS_ADAPTER.validate_python(raw_shops)
    offerings = _OFFERINGS_ADAPTER.validate_python(raw_offerings)

    seen: set[str] = set()
    for shop in shops:
        if shop.id in seen:
            raise ValueError(f"Duplicate shop id in catalog: {shop.id}")
        seen.add(shop.id)
    return ShopCatalog(shops=shops, offerings=offerings)


def load_catalog(path: str | Path) -> ShopCatalog:
    """Load and validate a shop catalog JSON file."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    catalog = parse_catalog(payload)
    logger.info("Loaded %d shops (%d offerings) from %s", len(catalog.shops), len(catalog.offerings), resolved)
    return catalog

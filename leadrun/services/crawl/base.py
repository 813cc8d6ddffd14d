from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from leadrun.models.run import ItemResult, PageResult, Pagination


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def sha256_hexdigest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def candidate_id(item: Optional[Dict[str, Any]]) -> Optional[str]:
    """Usable identifier of a search candidate: its id, else its public identifier."""
    if not item:
        return None
    for key in ("id", "publicIdentifier"):
        value = item.get(key)
        if value:
            return str(value)
    return None


@dataclass
class ScrapedItem:
    """An item the engine hands to `on_item_scraped` after a successful fetch."""

    item: Dict[str, Any]
    payments: List[str] = field(default_factory=list)
    pagination: Optional[Pagination] = None


OnPageFetched = Callable[[PageResult], Awaitable[None]]
FetchItem = Callable[[Dict[str, Any]], Awaitable[ItemResult]]
OnItemScraped = Callable[[ScrapedItem], Awaitable[None]]

"""Per-candidate fetch decision.

Every candidate with a usable identifier takes one unit of the shared item
budget before any lookup starts, whether or not it is emitted later. Once the
budget is spent the candidate is answered skipped-and-done, which tells the
paged engine to stop starting new work for the group.

The budget never goes below zero: an exhausted budget is detected at the
point of decision rather than by overdrawing it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

from leadrun.models.run import CrawlState, ItemResult, ProfileScraperMode

from ..crawl.base import candidate_id
from .state import RunFlags

logger = logging.getLogger(__name__)

PROFILE_URL = "https://www.linkedin.com/in/{}"


class ProfileClient(Protocol):
    async def get_profile(self, *, url: str, find_email: bool = False) -> ItemResult:
        ...


class ItemFetchGate:
    def __init__(
        self,
        state: CrawlState,
        flags: RunFlags,
        mode: ProfileScraperMode,
        profiles: ProfileClient,
    ) -> None:
        self.state = state
        self._flags = flags
        self._mode = mode
        self._profiles = profiles
        self._budget_lock = asyncio.Lock()
        self.enrichment_calls = 0

    async def take_budget(self) -> Optional[int]:
        """Atomically take one item from the budget.

        Returns the items left after taking one, or None when nothing was left.
        """
        async with self._budget_lock:
            if self._flags.suspended or self.state.left_items <= 0:
                return None
            self.state.left_items -= 1
            return self.state.left_items

    async def fetch_item(self, item: Dict[str, Any]) -> ItemResult:
        entity_id = candidate_id(item)
        if entity_id is None:
            return ItemResult(skipped=True)

        if await self.take_budget() is None:
            logger.debug("Item budget spent, skipping %s", entity_id)
            return ItemResult(skipped=True, done=True)

        if self._mode is ProfileScraperMode.SHORT:
            return ItemResult(status=200, entity_id=entity_id, element=item)

        self.enrichment_calls += 1
        slug = item.get("publicIdentifier") or item.get("id")
        return await self._profiles.get_profile(
            url=PROFILE_URL.format(slug),
            find_email=self._mode is ProfileScraperMode.EMAIL,
        )

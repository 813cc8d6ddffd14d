"""Reaction to each fetched search page of a group.

Page 1 carries the signals that matter for the whole group: upstream rate
limiting and the pagination summary that triggers the one-time start charge.
Any page with results moves the group's resume point forward.

Pages of one group may be handled concurrently; per-group locks make the
check-charge-persist sequence and the resume-point update indivisible.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict

from leadrun.config import ACTOR_START_EVENT
from leadrun.models.run import CrawlState, PageResult, RunStatus

from ..billing import ChargingManager
from .errors import RunExit
from .group_key import GroupKey
from .state import CrawlStateStore, RunFlags

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKER = "No available resource"


def is_rate_limited(page: PageResult) -> bool:
    return isinstance(page.error, str) and RATE_LIMIT_MARKER in page.error


class PageEventHandler:
    def __init__(
        self,
        state: CrawlState,
        store: CrawlStateStore,
        charging: ChargingManager,
        flags: RunFlags,
        *,
        start_event: str = ACTOR_START_EVENT,
    ) -> None:
        self.state = state
        self._store = store
        self._charging = charging
        self._flags = flags
        self._start_event = start_event
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: GroupKey) -> asyncio.Lock:
        lock = self._locks.get(key.value)
        if lock is None:
            lock = self._locks[key.value] = asyncio.Lock()
        return lock

    def bind(self, key: GroupKey, query: Dict[str, Any]) -> Callable[[PageResult], Awaitable[None]]:
        async def on_page_fetched(page: PageResult) -> None:
            await self.handle(key, query, page)

        return on_page_fetched

    async def handle(self, key: GroupKey, query: Dict[str, Any], page: PageResult) -> None:
        if page.page == 1:
            if page.status == 429:
                logger.error("Too many requests")
            elif page.pagination is not None:
                await self.charge_start_once(key)
                logger.info(
                    "Found %s profiles total for input %s",
                    page.total_elements, json.dumps(query, ensure_ascii=False),
                )

            if is_rate_limited(page):
                self._flags.mark_rate_limited()
                logger.error(
                    "We've hit LinkedIn rate limits due to the active usage from our users. "
                    "Rate limits reset hourly. Please continue at the beginning of the next hour."
                )

        if page.elements:
            await self.record_page(key, page.page)
        logger.info("Scraped search page %d. Found %d profiles on the page.", page.page, len(page.elements))

    async def charge_start_once(self, key: GroupKey) -> bool:
        """Charge the start event for a group unless it was already charged.

        Returns True when this call charged. Raises `RunExit` when the billing
        ceiling is reached.
        """
        async with self._lock_for(key):
            progress = self.state.group(key.value)
            if progress.charged:
                return False
            result = await self._charging.charge(self._start_event)
            if result.accepted:
                progress.charged = True
                await self._store.save(self.state)
            if result.event_charge_limit_reached:
                raise RunExit(RunStatus.CHARGE_LIMIT_REACHED)
            return result.accepted

    async def record_page(self, key: GroupKey, page_number: int) -> None:
        # pages can finish out of order; keep the furthest page seen
        async with self._lock_for(key):
            progress = self.state.group(key.value)
            if page_number <= progress.last_page:
                return
            progress.last_page = page_number
            await self._store.save(self.state)

"""Crawl state persistence.

One `CrawlState` record lives under a fixed key and is owned by one run: a
record written by another run is ignored on load, so every new run starts
from a fresh state while a restarted run picks its own record back up.
Callers save after every change that must survive a restart; saves are
serialized so the record always reflects a complete snapshot, and `flush()`
lets a restart handler wait for the save in flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from leadrun.models.run import CrawlState

from ..kv_store import KeyValueStore

logger = logging.getLogger(__name__)

CRAWL_STATE_KEY = "crawling-state"


@dataclass
class RunFlags:
    """Run-scoped advisory flags checked between groups."""

    hit_rate_limit: bool = False
    suspended: bool = False

    def mark_rate_limited(self) -> None:
        self.hit_rate_limit = True


class CrawlStateStore:
    def __init__(self, store: KeyValueStore, key: str = CRAWL_STATE_KEY, *, run_id: Optional[str] = None) -> None:
        self._store = store
        self._key = key
        self.run_id = run_id
        self._save_lock = asyncio.Lock()
        self.saves = 0

    def owns(self, raw: dict) -> bool:
        # without a run id every record is accepted
        return self.run_id is None or raw.get("runId") == self.run_id

    async def load(self, *, default_left_items: int) -> CrawlState:
        """Return this run's persisted state, or a fresh one with the given budget."""
        raw = await self._store.get_value(self._key)
        if raw is not None and not self.owns(raw):
            logger.info("Crawl state under %r belongs to run %r, starting fresh", self._key, raw.get("runId"))
            raw = None
        if raw is None:
            logger.debug("No crawl state under %r, starting fresh", self._key)
            return CrawlState(run_id=self.run_id, left_items=max(0, default_left_items))
        state = CrawlState.model_validate(raw)
        logger.info(
            "Resuming crawl state: %d items left, %d companies processed",
            state.left_items, len(state.processed_companies),
        )
        return state

    async def save(self, state: CrawlState) -> None:
        async with self._save_lock:
            # snapshot inside the lock so a later save never writes older data
            await self._store.set_value(self._key, state.to_record())
            self.saves += 1

    async def flush(self) -> None:
        async with self._save_lock:
            return

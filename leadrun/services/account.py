"""Hosting account context and the per-account run counter."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Dict, Optional

from leadrun.config import DEFAULT_MAX_PAID_ITEMS, Settings

from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountContext:
    user_id: Optional[str] = None
    is_paying: bool = False
    max_paid_dataset_items: Optional[int] = None
    run_id: Optional[str] = None
    username: Optional[str] = None

    @property
    def item_ceiling(self) -> int:
        return self.max_paid_dataset_items or DEFAULT_MAX_PAID_ITEMS

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccountContext":
        return cls(
            user_id=settings.user_id,
            is_paying=settings.user_is_paying,
            max_paid_dataset_items=settings.max_paid_dataset_items,
            run_id=settings.run_id,
        )

    def request_headers(self, *, total_runs: int, left_items: int, max_items: Optional[int]) -> Dict[str, str]:
        """Headers identifying the calling account to the search API."""
        return {
            "x-apify-userid": self.user_id or "",
            "x-apify-actor-run-id": self.run_id or "",
            "x-apify-username": self.username or "",
            "x-apify-user-is-paying": str(self.is_paying).lower(),
            "x-apify-user-runs": str(total_runs),
            "x-apify-user-left-items": str(left_items),
            "x-apify-user-max-items": str(max_items) if max_items is not None else "undefined",
        }


async def increment_run_counter(
    store: KeyValueStore,
    account: AccountContext,
    *,
    jitter_s: float = 0.0,
) -> int:
    """Increment and persist the account's run counter; returns the new value.

    Returns 0 without touching the store when the account is anonymous. Free
    accounts wait a random jitter first so that simultaneous starts are less
    likely to interleave their read-modify-write.
    """
    if not account.user_id:
        return 0
    if not account.is_paying and jitter_s > 0:
        await asyncio.sleep(random.random() * jitter_s)
    raw = await store.get_value(account.user_id)
    try:
        total = int(raw or 0)
    except (TypeError, ValueError):
        total = 0
    total += 1
    await store.set_value(account.user_id, total)
    logger.debug("Run counter for %s is now %d", account.user_id, total)
    return total

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from leadrun.models.run import Pagination, ProfileScraperMode, RunStatus

from ..dataset import OutputSink
from .errors import RunExit
from .scrape_mode import EMAIL_PAYMENT, FULL_PROFILE, FULL_PROFILE_WITH_EMAIL, SHORT_PROFILE

logger = logging.getLogger(__name__)


def item_category(mode: ProfileScraperMode, payments: Optional[List[str]]) -> str:
    """Dataset event for an emitted item; email mode pays out only when the email search did."""
    if mode is ProfileScraperMode.SHORT:
        return SHORT_PROFILE
    if mode is ProfileScraperMode.EMAIL and EMAIL_PAYMENT in (payments or []):
        return FULL_PROFILE_WITH_EMAIL
    return FULL_PROFILE


async def push_item(
    sink: OutputSink,
    *,
    item: Dict[str, Any],
    payments: Optional[List[str]],
    pagination: Optional[Pagination],
    mode: ProfileScraperMode,
    query: Dict[str, Any],
) -> Dict[str, Any]:
    """Emit one profile with its `_meta` and charge its category event.

    Returns the emitted record. Raises `RunExit` when the billing ceiling is
    reached by this push.
    """
    logger.info("Scraped profile %s", item.get("linkedinUrl") or item.get("publicIdentifier") or item.get("id"))
    record = {
        **item,
        "_meta": {
            "pagination": pagination.model_dump(mode="json", by_alias=True) if pagination is not None else None,
            "query": query,
        },
    }
    result = await sink.push_data(record, item_category(mode, payments))
    if result.event_charge_limit_reached:
        raise RunExit(RunStatus.CHARGE_LIMIT_REACHED)
    return record

"""Query-group scheduling.

- all_at_once: one group with every company, capped at
  `ALL_AT_ONCE_MAX_COMPANIES`; runs once.
- one_by_one: one group per company in input order, sequentially. Companies
  already in `processed_companies` are skipped; a company is recorded as
  processed only when its group finished without a rate limit. Iteration
  stops once the shared budget is spent or a rate limit was seen.

Both modes draw from the one `left_items` counter in the crawl state.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from leadrun.models.run import BatchMode, CrawlState, ProfileScraperMode, RunStatus

from ..account import AccountContext
from ..crawl.base import ScrapedItem
from ..crawl.engine import DEFAULT_ITEM_CONCURRENCY, DEFAULT_PAGE_CONCURRENCY, PagedScraper, ScrapeSummary
from ..dataset import OutputSink
from .budget import RunConfig
from .errors import RunExit
from .group_key import GroupKey
from .item_gate import ItemFetchGate
from .page_handler import PageEventHandler
from .push_item import push_item
from .query import group_query
from .state import CrawlStateStore, RunFlags

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_S = 360


def listing_headers(account: AccountContext, mode: ProfileScraperMode) -> Dict[str, str]:
    """Per-search headers sizing the upstream queue for the account."""
    short = mode is ProfileScraperMode.SHORT
    headers = {
        "x-sub-user": account.username or "",
        "x-request-timeout": str(REQUEST_TIMEOUT_S),
        "x-queue-size": ("3" if short else "5") if account.is_paying else "1",
    }
    if account.username:
        headers["x-concurrency"] = ("3" if short else "4") if account.is_paying else "1"
    return headers


class BatchOrchestrator:
    def __init__(
        self,
        config: RunConfig,
        account: AccountContext,
        state: CrawlState,
        store: CrawlStateStore,
        flags: RunFlags,
        pages: PageEventHandler,
        items: ItemFetchGate,
        scraper: PagedScraper,
        sink: OutputSink,
        *,
        item_concurrency: int = DEFAULT_ITEM_CONCURRENCY,
        page_concurrency: int = DEFAULT_PAGE_CONCURRENCY,
    ) -> None:
        self.config = config
        self.account = account
        self.state = state
        self._store = store
        self._flags = flags
        self._pages = pages
        self._items = items
        self._scraper = scraper
        self._sink = sink
        self._item_concurrency = item_concurrency
        self._page_concurrency = page_concurrency

    def check_group_size(self, companies: List[str]) -> None:
        cap = self.config.max_companies_per_group
        if cap is not None and len(companies) > cap:
            logger.warning(
                'You can provide up to %d companies when using "All at once" mode. Searching more companies '
                "on one page makes the search less accurate and miss profiles. To process more companies, "
                'switch to "One by one" mode, which charges the start event for each company.', cap,
            )
            raise RunExit(RunStatus.TOO_MANY_COMPANIES)

    async def run(self, query: Dict[str, Any]) -> None:
        companies: List[str] = list(query.get("companies") or [])
        if self.config.batch_mode is BatchMode.ONE_BY_ONE:
            await self.run_one_by_one(query, companies)
        else:
            self.check_group_size(companies)
            await self.run_group(query, companies)
            if not self._flags.suspended:
                await self._store.save(self.state)

    async def run_one_by_one(self, query: Dict[str, Any], companies: List[str]) -> None:
        for company in companies:
            if company in self.state.processed_companies:
                logger.debug("Skipping already processed company %r", company)
                continue

            await self.run_group(query, [company])
            if self._flags.suspended:
                return

            if not self._flags.hit_rate_limit:
                self.state.processed_companies.append(company)
            await self._store.save(self.state)

            if self.state.left_items <= 0 or self._flags.hit_rate_limit:
                break

    def group_max_items(self) -> int:
        max_items = self.state.left_items
        per_company = self.config.max_items_per_company
        if per_company and per_company < max_items:
            max_items = per_company
        return max_items

    def group_start_page(self, key: GroupKey) -> int:
        progress = self.state.groups.get(key.value)
        previous = progress.last_page if progress is not None else 0
        return previous or self.config.start_page or 1

    async def run_group(self, query: Dict[str, Any], companies: List[str]) -> ScrapeSummary:
        key = GroupKey.for_companies(companies)
        scoped = group_query(query, companies)
        mode = self.config.scrape_mode
        logger.info("Scraping query: %s", json.dumps(scoped, ensure_ascii=False))

        async def on_item_scraped(scraped: ScrapedItem) -> None:
            await push_item(
                self._sink,
                item=scraped.item,
                payments=scraped.payments,
                pagination=scraped.pagination,
                mode=mode,
                query=scoped,
            )

        take_pages: Optional[int] = self.config.take_pages if self.config.is_paying else 1
        return await self._scraper.scrape(
            query=scoped,
            max_items=self.group_max_items(),
            on_page_fetched=self._pages.bind(key, scoped),
            fetch_item=self._items.fetch_item,
            on_item_scraped=on_item_scraped,
            start_page=self.group_start_page(key),
            take_pages=take_pages,
            page_concurrency=self._page_concurrency,
            item_concurrency=self._item_concurrency,
            session_id=str(uuid.uuid4()),
            warn_page_limit=self.config.is_paying,
            listing_headers=listing_headers(self.account, mode),
        )

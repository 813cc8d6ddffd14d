"""Paged fetch engine.

Drives one paged search run: fetches pages in windows of `page_concurrency`,
hands every candidate on a page to `fetch_item` with at most
`item_concurrency` lookups in flight, and forwards each fetched item to
`on_item_scraped`.

A run ends when:
- a page comes back empty or with an error
- the last page reported by the pagination summary (or `take_pages`) was fetched
- `max_items` items were scraped
- `fetch_item` answers skipped-and-done

Stopping is cooperative: work already in flight finishes, nothing new starts.
An exception raised by a callback cancels the remaining work of the run and
propagates to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Protocol

from leadrun.models.run import PageResult, Pagination

from .base import FetchItem, OnItemScraped, OnPageFetched, ScrapedItem

logger = logging.getLogger(__name__)

DEFAULT_ITEM_CONCURRENCY = 15
DEFAULT_PAGE_CONCURRENCY = 1


class SearchClient(Protocol):
    async def search_leads(
        self,
        query: Dict[str, Any],
        *,
        page: int,
        session_id: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> PageResult:
        ...


@dataclass
class ScrapeSummary:
    pages_fetched: int = 0
    items_scraped: int = 0
    stop_reason: str = ""


class _RunState:
    def __init__(self, max_items: int) -> None:
        self.max_items = max_items
        self.reserved = 0
        self.scraped = 0
        self.pages = 0
        self.stop_reason: Optional[str] = None

    def stop(self, reason: str) -> None:
        if self.stop_reason is None:
            self.stop_reason = reason


async def _gather_or_cancel(aws: Iterable[Awaitable[Any]]) -> List[Any]:
    """Like asyncio.gather, but cancels the siblings when one of them raises."""
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    failed = next((t for t in tasks if t.done() and not t.cancelled() and t.exception() is not None), None)
    if failed is not None:
        for t in pending:
            t.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        raise failed.exception()
    return [t.result() for t in tasks]


class PagedScraper:
    def __init__(self, client: SearchClient) -> None:
        self.client = client

    async def scrape(
        self,
        *,
        query: Dict[str, Any],
        max_items: int,
        on_page_fetched: OnPageFetched,
        fetch_item: FetchItem,
        on_item_scraped: OnItemScraped,
        start_page: int = 1,
        take_pages: Optional[int] = None,
        page_concurrency: int = DEFAULT_PAGE_CONCURRENCY,
        item_concurrency: int = DEFAULT_ITEM_CONCURRENCY,
        session_id: Optional[str] = None,
        warn_page_limit: bool = False,
        listing_headers: Optional[Dict[str, str]] = None,
    ) -> ScrapeSummary:
        run = _RunState(max_items)
        if max_items <= 0:
            return ScrapeSummary(stop_reason="max_items")

        item_slots = asyncio.Semaphore(max(1, item_concurrency))
        page_window = max(1, page_concurrency)
        next_page = max(1, start_page)
        last_page: Optional[int] = None
        taken = 0

        while run.stop_reason is None:
            window: List[int] = []
            while len(window) < page_window:
                if take_pages is not None and taken >= take_pages:
                    break
                if last_page is not None and next_page > last_page:
                    break
                window.append(next_page)
                next_page += 1
                taken += 1
            if not window:
                if take_pages is not None and taken >= take_pages and (last_page is None or next_page <= last_page):
                    if warn_page_limit:
                        logger.warning("Stopped after %d pages (page limit); more results are available", taken)
                    run.stop("take_pages")
                else:
                    run.stop("last_page")
                break

            results = await _gather_or_cancel(
                self.client.search_leads(query, page=p, session_id=session_id, headers=listing_headers)
                for p in window
            )
            for res in results:
                total_pages = res.pagination.total_pages if res.pagination else None
                if total_pages:
                    last_page = total_pages if last_page is None else min(last_page, total_pages)

            await _gather_or_cancel(
                self._handle_page(run, res, item_slots, on_page_fetched, fetch_item, on_item_scraped)
                for res in results
            )

        logger.debug("Paged run finished: %d pages, %d items (%s)", run.pages, run.scraped, run.stop_reason)
        return ScrapeSummary(pages_fetched=run.pages, items_scraped=run.scraped, stop_reason=run.stop_reason or "")

    async def _handle_page(
        self,
        run: _RunState,
        res: PageResult,
        item_slots: asyncio.Semaphore,
        on_page_fetched: OnPageFetched,
        fetch_item: FetchItem,
        on_item_scraped: OnItemScraped,
    ) -> None:
        run.pages += 1
        await on_page_fetched(res)
        if res.error or not res.elements:
            run.stop("error" if res.error else "empty_page")
            return
        await _gather_or_cancel(
            self._handle_item(run, element, res.pagination, item_slots, fetch_item, on_item_scraped)
            for element in res.elements
        )
        if run.scraped >= run.max_items:
            run.stop("max_items")

    async def _handle_item(
        self,
        run: _RunState,
        element: Dict[str, Any],
        pagination: Optional[Pagination],
        item_slots: asyncio.Semaphore,
        fetch_item: FetchItem,
        on_item_scraped: OnItemScraped,
    ) -> None:
        async with item_slots:
            if run.stop_reason is not None or run.reserved >= run.max_items:
                return
            run.reserved += 1
            result = await fetch_item(element)
            if result.skipped or result.element is None:
                run.reserved -= 1
                if result.done:
                    run.stop("done")
                return
            run.scraped += 1
        await on_item_scraped(ScrapedItem(item=result.element, payments=list(result.payments), pagination=pagination))

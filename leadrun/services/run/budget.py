"""Run eligibility and the item budget.

`RunConfig` is derived once from the input and the account; `BudgetGate`
turns it into go/no-go decisions and the starting `left_items` of the crawl
state. Early exits raise `RunExit` with a distinct status and never start a
fetch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from leadrun.config import (
    ALL_AT_ONCE_MAX_COMPANIES,
    FREE_USER_EMAIL_ITEMS_LIMIT,
    FREE_USER_ITEMS_LIMIT,
    FREE_USER_RUNS_LIMIT,
    MIN_MAX_TOTAL_CHARGE_USD,
)
from leadrun.models.run import BatchMode, CrawlState, ProfileScraperMode, RunInput, RunStatus

from ..account import AccountContext, increment_run_counter
from ..kv_store import KeyValueStore
from .errors import RunExit
from .scrape_mode import parse_scrape_mode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunConfig:
    is_paying: bool
    scrape_mode: ProfileScraperMode
    batch_mode: BatchMode
    free_items_limit: int
    free_runs_limit: int = FREE_USER_RUNS_LIMIT
    requested_max_items: Optional[int] = None
    max_items_per_company: Optional[int] = None
    max_companies_per_group: Optional[int] = None
    start_page: Optional[int] = None
    take_pages: Optional[int] = None
    min_total_charge_usd: float = MIN_MAX_TOTAL_CHARGE_USD

    @classmethod
    def from_input(cls, run_input: RunInput, account: AccountContext) -> "RunConfig":
        mode = parse_scrape_mode(run_input.profile_scraper_mode)
        batch = BatchMode.ONE_BY_ONE if run_input.company_batch_mode == "one_by_one" else BatchMode.ALL_AT_ONCE
        return cls(
            is_paying=account.is_paying,
            scrape_mode=mode,
            batch_mode=batch,
            free_items_limit=FREE_USER_EMAIL_ITEMS_LIMIT if mode is ProfileScraperMode.EMAIL else FREE_USER_ITEMS_LIMIT,
            # 0 means "not set", as in the input form
            requested_max_items=run_input.max_items or None,
            max_items_per_company=run_input.max_items_per_company if batch is BatchMode.ONE_BY_ONE else None,
            max_companies_per_group=ALL_AT_ONCE_MAX_COMPANIES if batch is BatchMode.ALL_AT_ONCE else None,
            start_page=run_input.start_page,
            take_pages=run_input.take_pages,
        )


class BudgetGate:
    def __init__(
        self,
        config: RunConfig,
        account: AccountContext,
        counter_store: KeyValueStore,
        *,
        jitter_s: float = 0.0,
    ) -> None:
        self.config = config
        self.account = account
        self._counter_store = counter_store
        self._jitter_s = jitter_s

    def check_eligibility(self, run_input: RunInput, max_total_charge_usd: float) -> None:
        """Checks that need neither the run counter nor the crawl state."""
        if not [c for c in (run_input.companies or []) if c]:
            logger.error("Please provide at least one company.")
            raise RunExit(RunStatus.NO_COMPANIES)
        if max_total_charge_usd < self.config.min_total_charge_usd:
            logger.warning(
                "The maximum total charge is set to less than $%.2f, which will not be sufficient "
                "for scraping profiles.", self.config.min_total_charge_usd,
            )
            raise RunExit(RunStatus.BUDGET_TOO_LOW)
        if run_input.max_items is None and run_input.take_pages is None:
            logger.warning(
                "Neither `maxItems` nor `takePages` is set. This may lead to scraping a large number of "
                "items and consuming more credits than expected. Set at least one of these limits."
            )
            raise RunExit(RunStatus.NO_LIMITS)

    def check_query(self, query: Dict[str, Any]) -> None:
        if not query:
            logger.warning("Please provide at least one search query or filter. Nothing to search, skipping...")
            raise RunExit(RunStatus.NO_FILTERS)

    async def count_run(self, state: CrawlState) -> int:
        """Increment the account's run counter once per logical run.

        The observed value is kept in the crawl state, so a resumed run reuses
        it instead of counting itself twice.
        """
        if state.account_runs is None:
            state.account_runs = await increment_run_counter(
                self._counter_store, self.account, jitter_s=self._jitter_s,
            )
        return state.account_runs

    def check_run_limit(self, total_runs: int) -> None:
        if not self.config.is_paying and total_runs > self.config.free_runs_limit:
            logger.warning(
                "Free users are limited to %d runs. Please upgrade to a paid plan to run more.",
                self.config.free_runs_limit,
            )
            raise RunExit(RunStatus.FREE_RUN_LIMIT)

    def apply_budget(self, state: CrawlState) -> int:
        """Clamp `state.left_items` to the requested and free-tier ceilings.

        Going over the free-tier ceiling is not an error: the budget is cut down
        and `state.free_tier_exceeded` is set for a warning at the end of the run.
        """
        left = state.left_items
        if self.config.requested_max_items and self.config.requested_max_items < left:
            left = self.config.requested_max_items
        if not self.config.is_paying and left > self.config.free_items_limit:
            left = self.config.free_items_limit
            state.free_tier_exceeded = True
        state.left_items = max(0, left)
        return state.left_items

    def free_tier_warning(self) -> str:
        return (
            f"Free users are limited up to {self.config.free_items_limit} items per run. "
            "Please upgrade to a paid plan to scrape more items."
        )

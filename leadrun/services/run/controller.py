"""One lead-search run, end to end.

`run()` checks eligibility, reloads the crawl state (`resume()`), sizes the
budget and drives the orchestrator; every terminal condition comes back as a
`RunOutcome`. `suspend()` is the checkpoint half of a restart: it waits for
any save in flight, persists the state and stops new candidates from taking
budget. A fresh controller with the same run id over the same stores picks up
where this one stopped; any other run id starts from a fresh state.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, Optional

from leadrun.config import Settings
from leadrun.models.run import CrawlState, RunInput, RunOutcome, RunStatus

from ..account import AccountContext
from ..billing import ChargingManager, pricing_from_settings
from ..crawl.engine import DEFAULT_ITEM_CONCURRENCY, DEFAULT_PAGE_CONCURRENCY, PagedScraper
from ..dataset import DatasetSink, OutputSink
from ..harvest_client import HarvestClient
from ..kv_store import DEFAULT_STORE, RUN_COUNTER_STORE, KeyValueStore, open_key_value_store
from .budget import BudgetGate, RunConfig
from .errors import RunExit
from .item_gate import ItemFetchGate
from .orchestrator import BatchOrchestrator
from .page_handler import PageEventHandler
from .query import build_search_query
from .state import CrawlStateStore, RunFlags

logger = logging.getLogger(__name__)

# headers -> search/profile client
ClientFactory = Callable[[Dict[str, str]], Any]


class RunController:
    def __init__(
        self,
        run_input: RunInput,
        *,
        account: AccountContext,
        charging: ChargingManager,
        state_store: KeyValueStore,
        counter_store: KeyValueStore,
        sink: OutputSink,
        client_factory: ClientFactory,
        jitter_s: float = 0.0,
        item_concurrency: int = DEFAULT_ITEM_CONCURRENCY,
        page_concurrency: int = DEFAULT_PAGE_CONCURRENCY,
        run_id: Optional[str] = None,
    ) -> None:
        self.run_input = run_input
        self.run_id = run_id or uuid.uuid4().hex
        self.account = account
        self.charging = charging
        self.states = CrawlStateStore(state_store, run_id=self.run_id)
        self.sink = sink
        self.flags = RunFlags()
        self.config = RunConfig.from_input(run_input, account)
        self.gate = BudgetGate(self.config, account, counter_store, jitter_s=jitter_s)
        self.state: Optional[CrawlState] = None
        self.item_gate: Optional[ItemFetchGate] = None
        self._client_factory = client_factory
        self._item_concurrency = item_concurrency
        self._page_concurrency = page_concurrency

    @classmethod
    def from_settings(
        cls, run_input: RunInput, settings: Settings, run_id: Optional[str] = None,
    ) -> "RunController":
        run_id = run_id or settings.run_id or uuid.uuid4().hex
        account = AccountContext.from_settings(settings)
        charging = ChargingManager(pricing_from_settings(settings))

        def client_factory(headers: Dict[str, str]) -> HarvestClient:
            return HarvestClient(
                api_key=settings.harvest_api_token,
                base_url=settings.harvest_api_url,
                headers=headers,
            )

        return cls(
            run_input,
            account=account,
            charging=charging,
            state_store=open_key_value_store(DEFAULT_STORE, settings),
            counter_store=open_key_value_store(RUN_COUNTER_STORE, settings),
            sink=DatasetSink.for_run(settings.storage_dir, run_id, charging),
            client_factory=client_factory,
            jitter_s=settings.free_user_start_jitter_s,
            run_id=run_id,
        )

    async def resume(self) -> CrawlState:
        """Reload the persisted crawl state; must run before any group starts."""
        self.state = await self.states.load(default_left_items=self.account.item_ceiling)
        return self.state

    async def suspend(self) -> None:
        """Checkpoint for a restart: block on the pending save, then persist."""
        self.flags.suspended = True
        if self.state is not None:
            await self.states.save(self.state)
        else:
            await self.states.flush()
        logger.info("Run suspended; crawl state persisted for restart")

    async def run(self) -> RunOutcome:
        try:
            status = await self._run()
        except RunExit as exc:
            logger.info("Run stopped: %s", exc.status.value)
            status = exc.status
            if self.state is not None and not self.flags.suspended:
                await self.states.save(self.state)

        if self.state is not None and self.state.free_tier_exceeded:
            logger.warning(self.gate.free_tier_warning())
        return self.outcome(status)

    async def _run(self) -> RunStatus:
        logger.info("Starting run %s", self.run_id)
        pricing = self.charging.get_pricing_info()
        self.gate.check_eligibility(self.run_input, pricing.max_total_charge_usd)

        state = await self.resume()
        total_runs = await self.gate.count_run(state)
        await self.states.save(state)
        self.gate.check_run_limit(total_runs)
        self.gate.apply_budget(state)

        query = build_search_query(self.run_input)
        self.gate.check_query(query)

        client = self._client_factory(
            self.account.request_headers(
                total_runs=total_runs, left_items=state.left_items, max_items=self.run_input.max_items,
            )
        )
        try:
            self.item_gate = ItemFetchGate(state, self.flags, self.config.scrape_mode, client)
            orchestrator = BatchOrchestrator(
                self.config,
                self.account,
                state,
                self.states,
                self.flags,
                PageEventHandler(state, self.states, self.charging, self.flags),
                self.item_gate,
                PagedScraper(client),
                self.sink,
                item_concurrency=self._item_concurrency,
                page_concurrency=self._page_concurrency,
            )
            await orchestrator.run(query)
        finally:
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()

        return RunStatus.RATE_LIMITED if self.flags.hit_rate_limit else RunStatus.SUCCESS

    def outcome(self, status: RunStatus) -> RunOutcome:
        state = self.state
        return RunOutcome(
            status=status,
            run_id=self.run_id,
            exit_code=status.exit_code,
            left_items=state.left_items if state is not None else None,
            processed_companies=list(state.processed_companies) if state is not None else [],
            free_tier_exceeded=bool(state and state.free_tier_exceeded),
            suspended=self.flags.suspended,
        )

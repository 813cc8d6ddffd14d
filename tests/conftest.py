import asyncio
import inspect
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from leadrun.models.run import ItemResult, PageResult, RunInput
from leadrun.services.account import AccountContext
from leadrun.services.billing import ChargeResult, ChargingManager, PricingInfo
from leadrun.services.run import RunController


class MemoryStore:
    """KeyValueStore keeping JSON-encoded values, so reads never alias writes."""

    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self.data: Dict[str, str] = {k: json.dumps(v) for k, v in (data or {}).items()}
        self.writes = 0

    async def get_value(self, key: str) -> Any:
        raw = self.data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set_value(self, key: str, value: Any) -> None:
        self.data[key] = json.dumps(value)
        self.writes += 1

    def peek(self, key: str) -> Any:
        raw = self.data.get(key)
        return json.loads(raw) if raw is not None else None


def make_page(page: int, ids: List[str], *, total_pages: int = 10, total: int = 100, **extra) -> PageResult:
    return PageResult(
        page=page,
        status=200,
        elements=[{"id": i, "publicIdentifier": f"p-{i}"} for i in ids],
        pagination={"totalElements": total, "totalPages": total_pages, "pageNumber": page},
        **extra,
    )


class FakeSearchClient:
    """Serves pages from `pages_for(companies_key, page)`; every profile lookup succeeds."""

    def __init__(
        self,
        pages_for: Callable[[str, int], Any],
        *,
        payments: Optional[List[str]] = None,
        yield_first: bool = False,
    ) -> None:
        self._pages_for = pages_for
        self._payments = payments or []
        self._yield_first = yield_first
        self.searches: List[Tuple[str, int]] = []
        self.search_headers: List[Dict[str, str]] = []
        self.profile_urls: List[str] = []
        self.request_headers: Dict[str, str] = {}
        self.closed = False

    async def search_leads(self, query, *, page, session_id=None, headers=None) -> PageResult:
        key = ",".join(query.get("currentCompanies") or []) or "all"
        self.searches.append((key, page))
        self.search_headers.append(dict(headers or {}))
        result = self._pages_for(key, page)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def get_profile(self, *, url, find_email=False) -> ItemResult:
        if self._yield_first:
            await asyncio.sleep(0)
        self.profile_urls.append(url)
        slug = url.rsplit("/", 1)[-1]
        return ItemResult(
            status=200,
            entity_id=slug,
            element={"publicIdentifier": slug, "linkedinUrl": url, "full": True},
            payments=list(self._payments),
        )

    def bind_headers(self, headers: Dict[str, str]) -> "FakeSearchClient":
        self.request_headers = dict(headers)
        return self

    async def aclose(self) -> None:
        self.closed = True


class MemorySink:
    def __init__(self, charging: ChargingManager) -> None:
        self.charging = charging
        self.records: List[Tuple[Dict[str, Any], str]] = []

    async def push_data(self, record: Dict[str, Any], event_name: str) -> ChargeResult:
        self.records.append((record, event_name))
        return await self.charging.charge(event_name)


def build_controller(
    payload: Dict[str, Any],
    *,
    client: FakeSearchClient,
    state_store: MemoryStore,
    counter_store: Optional[MemoryStore] = None,
    account: Optional[AccountContext] = None,
    max_total_charge_usd: float = 100.0,
    sink: Optional[MemorySink] = None,
    charging: Optional[ChargingManager] = None,
    run_id: Optional[str] = None,
) -> RunController:
    charging = charging or ChargingManager(PricingInfo(max_total_charge_usd=max_total_charge_usd))
    return RunController(
        RunInput.model_validate(payload),
        account=account or AccountContext(user_id="u1", is_paying=True),
        charging=charging,
        state_store=state_store,
        counter_store=counter_store or MemoryStore(),
        sink=sink or MemorySink(charging),
        client_factory=lambda headers: client.bind_headers(headers),
        run_id=run_id,
    )

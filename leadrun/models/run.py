from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProfileScraperMode(str, Enum):
    SHORT = "short"
    FULL = "full"
    EMAIL = "email"


class BatchMode(str, Enum):
    ALL_AT_ONCE = "all_at_once"
    ONE_BY_ONE = "one_by_one"


class RunStatus(str, Enum):
    """Terminal status of a run; the value is the human-readable status label."""

    SUCCESS = "success"
    RATE_LIMITED = "rate limited"
    NO_COMPANIES = "no companies"
    NO_FILTERS = "no search query"
    NO_LIMITS = "no limits"
    BUDGET_TOO_LOW = "max charge too low"
    CHARGE_LIMIT_REACHED = "max charge reached"
    FREE_RUN_LIMIT = "free user run limit exceeded"
    TOO_MANY_COMPANIES = "up to 10 companies"

    @property
    def exit_code(self) -> int:
        return 1 if self is RunStatus.RATE_LIMITED else 0


class RunInput(_CamelModel):
    """Caller-supplied run input, accepted in its camelCase wire form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    profile_scraper_mode: Optional[str] = Field(None, description="Display or numeric scrape mode label")
    companies: Optional[List[Optional[str]]] = None
    locations: Optional[List[Optional[str]]] = None
    schools: Optional[List[Optional[str]]] = None
    max_items: Optional[int] = Field(None, ge=0)
    search_query: Optional[str] = None
    job_titles: Optional[List[Optional[str]]] = None
    past_job_titles: Optional[List[Optional[str]]] = None
    seniority_level_ids: Optional[List[Optional[str]]] = None
    function_ids: Optional[List[Optional[str]]] = None
    years_of_experience_ids: Optional[List[Optional[str]]] = None
    years_at_current_company_ids: Optional[List[Optional[str]]] = None
    company_headcount: Optional[List[Optional[str]]] = None

    start_page: Optional[int] = Field(None, ge=1)
    take_pages: Optional[int] = Field(None, ge=1)
    industry_ids: Optional[List[Optional[str]]] = None
    recently_changed_jobs: Optional[bool] = None

    exclude_past_companies: Optional[List[Optional[str]]] = None
    exclude_locations: Optional[List[Optional[str]]] = None
    exclude_schools: Optional[List[Optional[str]]] = None
    exclude_current_job_titles: Optional[List[Optional[str]]] = None
    exclude_past_job_titles: Optional[List[Optional[str]]] = None
    exclude_industry_ids: Optional[List[Optional[str]]] = None
    exclude_seniority_level_ids: Optional[List[Optional[str]]] = None
    exclude_function_ids: Optional[List[Optional[str]]] = None

    company_batch_mode: Optional[Literal["all_at_once", "one_by_one"]] = None
    max_items_per_company: Optional[int] = Field(None, ge=1)

    @field_validator("profile_scraper_mode", mode="before")
    @classmethod
    def _mode_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value))
        return value


class GroupProgress(_CamelModel):
    """Persisted progress of one query group."""

    last_page: int = Field(0, ge=0, description="Highest page observed with at least one result")
    charged: bool = Field(False, description="Whether the one-time start event was charged")


class CrawlState(_CamelModel):
    """Durable crawl state, one record per run.

    Older records used flat `queryScrapedPages` / `queryChargedActorStart`
    maps; they are folded into `groups` on load.
    """

    run_id: Optional[str] = Field(None, description="Run that owns this record")
    left_items: int = Field(..., ge=0)
    processed_companies: List[str] = Field(default_factory=list)
    groups: Dict[str, GroupProgress] = Field(default_factory=dict)
    account_runs: Optional[int] = Field(None, description="Run counter value observed when this run started")
    free_tier_exceeded: bool = False

    @model_validator(mode="before")
    @classmethod
    def _fold_legacy_maps(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        pages = data.get("queryScrapedPages")
        charged = data.get("queryChargedActorStart")
        if pages is None and charged is None:
            return data
        data = dict(data)
        data.pop("queryScrapedPages", None)
        data.pop("queryChargedActorStart", None)
        groups: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (data.get("groups") or {}).items()}
        for key, page in (pages or {}).items():
            groups.setdefault(key, {})["lastPage"] = max(0, int(page or 0))
        for key, flag in (charged or {}).items():
            groups.setdefault(key, {})["charged"] = bool(flag)
        data["groups"] = groups
        if "leftItems" in data:
            data["leftItems"] = max(0, int(data["leftItems"] or 0))
        return data

    def group(self, key: str) -> GroupProgress:
        progress = self.groups.get(key)
        if progress is None:
            progress = GroupProgress()
            self.groups[key] = progress
        return progress

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Pagination(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    total_elements: Optional[int] = None
    total_pages: Optional[int] = None
    page_number: Optional[int] = None
    page_size: Optional[int] = None


class PageResult(_CamelModel):
    """One fetched search page as reported by the search client."""

    page: int = Field(..., ge=1)
    status: Optional[int] = None
    elements: List[Dict[str, Any]] = Field(default_factory=list)
    pagination: Optional[Pagination] = None
    error: Optional[str] = None

    @property
    def total_elements(self) -> Optional[int]:
        return self.pagination.total_elements if self.pagination else None


class ItemResult(_CamelModel):
    """Outcome of the per-candidate fetch decision."""

    skipped: bool = False
    done: bool = False
    status: Optional[int] = None
    entity_id: Optional[str] = None
    element: Optional[Dict[str, Any]] = None
    payments: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class RunOutcome(_CamelModel):
    status: RunStatus
    run_id: Optional[str] = None
    exit_code: int
    left_items: Optional[int] = None
    processed_companies: List[str] = Field(default_factory=list)
    free_tier_exceeded: bool = False
    suspended: bool = False

"""Async client for the lead search + profile API.

- Search: paged lead search with a filter query; one call per page.
- Profile: enriched profile lookup for one candidate, optionally with email search.
- HTTP client: httpx.AsyncClient, shared for the lifetime of the client
  (`async with HarvestClient(...) as client:`).

Returned shapes are the typed `PageResult` / `ItemResult` models. HTTP and decode
failures are reported in-band (`status` / `error`) rather than raised, so the
caller decides how a failed page affects the run. Retries and backoff are the
API's business and are not attempted here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from leadrun.models.run import ItemResult, PageResult

logger = logging.getLogger(__name__)

_SEARCH_PATH = "/linkedin/lead-search"
_PROFILE_PATH = "/linkedin/profile"


def _query_params(query: Dict[str, Any]) -> Dict[str, str]:
    """Flatten a filter query into request params; list values are comma-joined."""
    params: Dict[str, str] = {}
    for key, value in query.items():
        if value is None or value == "" or value == []:
            continue
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            params[key] = ",".join(str(v) for v in value)
        else:
            params[key] = str(value)
    return params


@dataclass
class HarvestClient:
    api_key: str
    base_url: str = "https://api.harvest-api.com"
    timeout: float = 360.0
    headers: Dict[str, str] = field(default_factory=dict)
    listing_headers: Dict[str, str] = field(default_factory=dict)
    transport: Optional[httpx.AsyncBaseTransport] = None
    _http: Optional[httpx.AsyncClient] = field(default=None, init=False, repr=False)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"X-API-Key": self.api_key, "Accept": "application/json", **self.headers},
                transport=self.transport,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "HarvestClient":
        self._client()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _get_json(self, path: str, params: Dict[str, str], headers: Optional[Dict[str, str]] = None):
        resp = await self._client().get(path, params=params, headers=headers)
        try:
            data = resp.json()
        except ValueError:
            data = {"error": resp.text[:500] or None}
        if not isinstance(data, dict):
            data = {"error": f"unexpected response type {type(data).__name__}"}
        return resp.status_code, data

    async def search_leads(
        self,
        query: Dict[str, Any],
        *,
        page: int,
        session_id: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> PageResult:
        params = _query_params(query)
        params["page"] = str(page)
        if session_id:
            params["sessionId"] = session_id
        try:
            status, data = await self._get_json(_SEARCH_PATH, params, {**self.listing_headers, **(headers or {})})
        except httpx.HTTPError as exc:
            logger.error("Search page %d failed: %s", page, exc)
            return PageResult(page=page, status=None, error=str(exc))

        error = data.get("error")
        if error is not None and not isinstance(error, str):
            error = str(error)
        elements: List[Dict[str, Any]] = [e for e in (data.get("elements") or []) if isinstance(e, dict)]
        return PageResult(
            page=page,
            status=data.get("status") if isinstance(data.get("status"), int) else status,
            elements=elements if status < 400 else [],
            pagination=data.get("pagination") if status < 400 else None,
            error=error,
        )

    async def get_profile(self, *, url: str, find_email: bool = False) -> ItemResult:
        params = {"url": url}
        if find_email:
            params["findEmail"] = "true"
        try:
            status, data = await self._get_json(_PROFILE_PATH, params)
        except httpx.HTTPError as exc:
            logger.error("Profile lookup for %s failed: %s", url, exc)
            return ItemResult(skipped=True, error=str(exc))

        element = data.get("element")
        if status >= 400 or not isinstance(element, dict):
            logger.warning("Profile lookup for %s returned status %s", url, status)
            return ItemResult(skipped=True, status=status, error=str(data.get("error") or "") or None)
        return ItemResult(
            status=status,
            entity_id=str(data.get("entityId") or element.get("id") or "") or None,
            element=element,
            payments=[str(p) for p in (data.get("payments") or [])],
        )

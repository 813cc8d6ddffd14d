import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from conftest import FakeSearchClient
from leadrun.models.run import CrawlState, ProfileScraperMode
from leadrun.services.run import ItemFetchGate, RunFlags


def _gate(left, mode=ProfileScraperMode.FULL, flags=None):
    client = FakeSearchClient(lambda key, page: None, yield_first=True)
    state = CrawlState(left_items=left)
    return ItemFetchGate(state, flags or RunFlags(), mode, client), state, client


@settings(max_examples=50, deadline=None)
@given(initial=st.integers(min_value=0, max_value=40), candidates=st.integers(min_value=0, max_value=60))
def test_concurrent_decrements_are_never_lost(initial, candidates):
    async def scenario():
        gate, state, client = _gate(initial)
        results = await asyncio.gather(
            *(gate.fetch_item({"id": f"c{i}"}) for i in range(candidates))
        )
        return state, results, gate

    state, results, gate = asyncio.run(scenario())
    taken = min(initial, candidates)
    assert state.left_items == initial - taken
    assert sum(1 for r in results if not r.skipped) == taken
    assert sum(1 for r in results if r.skipped and r.done) == candidates - taken
    assert gate.enrichment_calls == taken


@pytest.mark.asyncio
async def test_exhausted_budget_skips_without_enrichment():
    gate, state, client = _gate(1)
    first = await gate.fetch_item({"id": "a"})
    second = await gate.fetch_item({"id": "b"})
    third = await gate.fetch_item({"publicIdentifier": "c"})
    assert first.skipped is False
    assert (second.skipped, second.done) == (True, True)
    assert (third.skipped, third.done) == (True, True)
    assert state.left_items == 0
    assert client.profile_urls == ["https://www.linkedin.com/in/a"]


@pytest.mark.asyncio
async def test_candidate_without_identifier_is_free():
    gate, state, client = _gate(3)
    result = await gate.fetch_item({"firstName": "Anon"})
    assert result.skipped is True
    assert result.done is False
    assert state.left_items == 3
    assert client.profile_urls == []


@pytest.mark.asyncio
async def test_short_mode_returns_listing_record():
    gate, state, client = _gate(2, ProfileScraperMode.SHORT)
    item = {"id": "x1", "firstName": "Ada"}
    result = await gate.fetch_item(item)
    assert result.element == item
    assert result.entity_id == "x1"
    assert result.status == 200
    assert state.left_items == 1
    assert client.profile_urls == []
    assert gate.enrichment_calls == 0


@pytest.mark.asyncio
async def test_enrichment_prefers_public_identifier():
    gate, _, client = _gate(2)
    await gate.fetch_item({"id": "ACwAA1", "publicIdentifier": "ada-lovelace"})
    await gate.fetch_item({"id": "ACwAA2"})
    assert client.profile_urls == [
        "https://www.linkedin.com/in/ada-lovelace",
        "https://www.linkedin.com/in/ACwAA2",
    ]


@pytest.mark.asyncio
async def test_suspended_run_takes_no_budget():
    flags = RunFlags(suspended=True)
    gate, state, _ = _gate(5, flags=flags)
    result = await gate.fetch_item({"id": "a"})
    assert (result.skipped, result.done) == (True, True)
    assert state.left_items == 5

import asyncio

import pytest

from conftest import FakeSearchClient, MemorySink, MemoryStore, build_controller, make_page
from leadrun.models.run import RunInput, RunStatus
from leadrun.services.billing import ChargingManager, PricingInfo
from leadrun.services.run import CRAWL_STATE_KEY, RunAlreadyActive, RunSupervisor


def _two_per_page(key, page):
    return make_page(page, [f"{page}-a", f"{page}-b"], total_pages=5)


@pytest.mark.asyncio
async def test_restart_resumes_from_checkpoint():
    state_store, counter_store = MemoryStore(), MemoryStore()
    charging = ChargingManager(PricingInfo())
    sink = MemorySink(charging)
    reached_page_2 = asyncio.Event()
    never = asyncio.Event()

    async def stalls_on_page_2(key, page):
        if page == 2:
            reached_page_2.set()
            await never.wait()
        return _two_per_page(key, page)

    clients = [FakeSearchClient(stalls_on_page_2), FakeSearchClient(_two_per_page)]
    controllers = []

    def factory(run_input, run_id):
        client = clients[len(controllers)]
        controller = build_controller(
            run_input.model_dump(by_alias=True, exclude_none=True),
            client=client,
            state_store=state_store,
            counter_store=counter_store,
            charging=charging,
            sink=sink,
            run_id=run_id,
        )
        controllers.append(controller)
        return controller

    supervisor = RunSupervisor(factory)
    supervisor.start(RunInput.model_validate({"companies": ["Acme"], "maxItems": 4}))
    await asyncio.wait_for(reached_page_2.wait(), timeout=5)

    assert await supervisor.migrate() is True
    assert controllers[0].flags.suspended is True
    assert clients[0].closed is True
    # checkpoint written by the suspended run, before the new run starts
    saved = state_store.peek(CRAWL_STATE_KEY)
    assert saved["leftItems"] == 2
    assert saved["groups"]["Acme"] == {"lastPage": 1, "charged": True}

    outcome = await asyncio.wait_for(supervisor.wait(), timeout=5)

    assert outcome.status is RunStatus.SUCCESS
    assert outcome.left_items == 0
    assert supervisor.restarts == 1
    assert controllers[0].run_id == controllers[1].run_id == supervisor.run_id
    # the restarted run picks up at the saved page without a second start charge or run count
    assert clients[1].searches[0] == ("Acme", 1)
    assert charging.events.count("actor-start") == 1
    assert counter_store.peek("u1") == 1
    assert supervisor.snapshot()["outcome"]["status"] == "success"


@pytest.mark.asyncio
async def test_only_one_active_run():
    gate = asyncio.Event()

    async def stalls(key, page):
        await gate.wait()
        return _two_per_page(key, page)

    def factory(run_input, run_id):
        return build_controller(
            run_input.model_dump(by_alias=True, exclude_none=True),
            client=FakeSearchClient(stalls),
            state_store=MemoryStore(),
        )

    supervisor = RunSupervisor(factory)
    run_input = RunInput.model_validate({"companies": ["Acme"], "maxItems": 1})
    supervisor.start(run_input)
    with pytest.raises(RunAlreadyActive):
        supervisor.start(run_input)
    gate.set()
    outcome = await asyncio.wait_for(supervisor.wait(), timeout=5)
    assert outcome.status is RunStatus.SUCCESS
    assert supervisor.active is False


@pytest.mark.asyncio
async def test_migrate_without_run_is_a_no_op():
    supervisor = RunSupervisor(lambda run_input, run_id: None)
    assert await supervisor.migrate() is False
    assert await supervisor.wait() is None


@pytest.mark.asyncio
async def test_store_failure_is_reported():
    class BrokenStore(MemoryStore):
        async def set_value(self, key, value):
            raise OSError("disk full")

    def factory(run_input, run_id):
        return build_controller(
            run_input.model_dump(by_alias=True, exclude_none=True),
            client=FakeSearchClient(_two_per_page),
            state_store=BrokenStore(),
        )

    supervisor = RunSupervisor(factory)
    supervisor.start(RunInput.model_validate({"companies": ["Acme"], "maxItems": 1}))
    assert await asyncio.wait_for(supervisor.wait(), timeout=5) is None
    assert supervisor.error == "disk full"


@pytest.mark.asyncio
async def test_new_run_does_not_inherit_previous_progress():
    state_store, counter_store = MemoryStore(), MemoryStore()
    clients = []

    def factory(run_input, run_id):
        clients.append(FakeSearchClient(_two_per_page))
        return build_controller(
            run_input.model_dump(by_alias=True, exclude_none=True),
            client=clients[-1],
            state_store=state_store,
            counter_store=counter_store,
            run_id=run_id,
        )

    supervisor = RunSupervisor(factory)
    run_input = RunInput.model_validate({"companies": ["Acme"], "maxItems": 4, "takePages": 2})
    first_id = supervisor.start(run_input)
    await asyncio.wait_for(supervisor.wait(), timeout=5)
    second_id = supervisor.start(run_input)
    outcome = await asyncio.wait_for(supervisor.wait(), timeout=5)

    assert first_id != second_id
    assert outcome.run_id == second_id
    assert sorted(clients[1].searches) == [("Acme", 1), ("Acme", 2)]
    assert counter_store.peek("u1") == 2
    assert state_store.peek(CRAWL_STATE_KEY)["runId"] == second_id

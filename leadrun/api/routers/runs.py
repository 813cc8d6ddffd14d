from typing import Any, Optional

from fastapi import APIRouter, HTTPException

from leadrun.config import get_settings
from leadrun.models.run import RunInput
from leadrun.services.kv_store import DEFAULT_STORE, open_key_value_store
from leadrun.services.run import CRAWL_STATE_KEY, RunAlreadyActive, RunController, RunSupervisor

router = APIRouter(tags=["runs"])

_supervisor: Optional[RunSupervisor] = None


def get_supervisor() -> RunSupervisor:
    """Process-wide supervisor; controllers are built from the current settings."""
    global _supervisor
    if _supervisor is None:
        _supervisor = RunSupervisor(
            lambda run_input, run_id: RunController.from_settings(run_input, get_settings(), run_id=run_id)
        )
    return _supervisor


async def shutdown_supervisor() -> None:
    if _supervisor is not None:
        await _supervisor.shutdown()


async def read_crawl_state() -> Any:
    store = open_key_value_store(DEFAULT_STORE, get_settings())
    return await store.get_value(CRAWL_STATE_KEY)


@router.post("/runs", status_code=202)
async def start_run(run_input: RunInput):
    """Start a run in the background. Only one run may be active at a time."""
    supervisor = get_supervisor()
    try:
        supervisor.start(run_input)
    except RunAlreadyActive as e:
        raise HTTPException(status_code=409, detail=str(e))
    return supervisor.snapshot()


@router.get("/runs/current")
async def current_run():
    supervisor = get_supervisor()
    if supervisor.run_input is None:
        raise HTTPException(status_code=404, detail="No run has been started")
    return supervisor.snapshot()


@router.post("/runs/current/migrating")
async def notify_migrating():
    """Restart notification: persist the crawl state and restart the run from it."""
    supervisor = get_supervisor()
    if not await supervisor.migrate():
        raise HTTPException(status_code=404, detail="No active run")
    return supervisor.snapshot()


@router.get("/runs/state")
async def crawl_state():
    state = await read_crawl_state()
    if state is None:
        raise HTTPException(status_code=404, detail="No crawl state stored")
    return state

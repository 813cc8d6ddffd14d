"""Background ownership of the current run and its restarts."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from leadrun.models.run import RunInput, RunOutcome

from .controller import RunController

logger = logging.getLogger(__name__)

# (run input, run id) -> controller
ControllerFactory = Callable[[RunInput, str], RunController]


class RunAlreadyActive(RuntimeError):
    pass


class RunSupervisor:
    def __init__(self, controller_factory: ControllerFactory) -> None:
        self._factory = controller_factory
        self._task: Optional[asyncio.Task] = None
        self.controller: Optional[RunController] = None
        self.run_input: Optional[RunInput] = None
        self.run_id: Optional[str] = None
        self.outcome: Optional[RunOutcome] = None
        self.error: Optional[str] = None
        self.restarts = 0
        self._finished = asyncio.Event()

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, run_input: RunInput, run_id: Optional[str] = None) -> str:
        """Start a new logical run; restarts of it keep the returned run id."""
        if self.active:
            raise RunAlreadyActive("a run is already in progress")
        self.run_input = run_input
        self.run_id = run_id or uuid.uuid4().hex
        self.outcome = None
        self.error = None
        self.restarts = 0
        self._finished.clear()
        self._launch()
        return self.run_id

    def _launch(self) -> None:
        assert self.run_input is not None and self.run_id is not None
        self.controller = self._factory(self.run_input, self.run_id)
        self._task = asyncio.create_task(self._drive(self.controller))

    async def _drive(self, controller: RunController) -> Optional[RunOutcome]:
        try:
            outcome = await controller.run()
        except Exception as exc:
            logger.exception("Run failed")
            self.error = str(exc) or type(exc).__name__
            self._finished.set()
            return None
        if controller.flags.suspended:
            # a restart takes over from the checkpoint
            return outcome
        self.outcome = outcome
        self._finished.set()
        return outcome

    async def _stop_current(self) -> None:
        task, controller = self._task, self.controller
        if task is None or controller is None or task.done():
            return
        await controller.suspend()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def migrate(self) -> bool:
        """Handle a restart notification: checkpoint, stop, start over from the saved state.

        Returns False when there is no active run.
        """
        if not self.active:
            return False
        await self._stop_current()
        self.restarts += 1
        logger.info("Restarting run from persisted state (restart #%d)", self.restarts)
        self._launch()
        return True

    async def wait(self) -> Optional[RunOutcome]:
        """Wait for the run to finish, across restarts."""
        if self._task is None:
            return None
        await self._finished.wait()
        await asyncio.wait([self._task])
        return self.outcome

    async def shutdown(self) -> None:
        await self._stop_current()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "active": self.active,
            "restarts": self.restarts,
            "input": self.run_input.model_dump(mode="json", by_alias=True, exclude_none=True) if self.run_input else None,
            "outcome": self.outcome.model_dump(mode="json", by_alias=True) if self.outcome else None,
            "error": self.error,
        }

from __future__ import annotations

from leadrun.models.run import RunStatus


class RunExit(Exception):
    """Ends the run early with a terminal status.

    Raised for eligibility failures before any fetch and for billing/output
    ceilings reached mid-run. These are orderly stops, not faults; the
    controller turns them into a `RunOutcome`.
    """

    def __init__(self, status: RunStatus, message: str = "") -> None:
        super().__init__(message or status.value)
        self.status = status
        self.message = message or status.value

    @property
    def exit_code(self) -> int:
        return self.status.exit_code

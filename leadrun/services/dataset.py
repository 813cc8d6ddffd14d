"""Output sink: JSONL dataset plus a charged event per pushed record.

Each run writes one file, `<storage>/datasets/<run id>/profiles.jsonl`. A sink
rebuilt for the same run (after a restart) reads the records already there, so
a re-read page neither duplicates nor re-charges them.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Dict, Optional, Protocol, Set

from .billing import ChargeResult, ChargingManager
from .crawl.pipeline import append_jsonl, dataset_path, load_dedupe_keys

logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    async def push_data(self, record: Dict[str, Any], event_name: str) -> ChargeResult:
        ...


class DatasetSink:
    def __init__(self, path: str, charging: ChargingManager) -> None:
        self.path = path
        self._charging = charging
        self._seen: Set[str] = load_dedupe_keys(path)
        self._lock = asyncio.Lock()
        self.pushed = 0

    @classmethod
    def for_run(cls, storage_dir: str, run_id: Optional[str], charging: ChargingManager) -> "DatasetSink":
        out_dir = os.path.join(storage_dir, "datasets", run_id or "default")
        sink = cls(dataset_path(out_dir, "profiles"), charging)
        if sink._seen:
            logger.info("Continuing dataset %s with %d records", sink.path, len(sink._seen))
        return sink

    async def push_data(self, record: Dict[str, Any], event_name: str) -> ChargeResult:
        async with self._lock:
            written = await asyncio.to_thread(append_jsonl, [record], self.path, self._seen)
            self.pushed += written
        if not written:
            logger.debug("Duplicate record not written to %s", self.path)
            return ChargeResult(event_charge_limit_reached=False)
        return await self._charging.charge(event_name)

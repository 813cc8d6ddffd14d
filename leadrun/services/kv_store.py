"""Durable key-value stores for crawl state and run counters.

Two backends share one async contract (`get_value` / `set_value` of JSON values):

- file: one JSON file per key under `<storage_dir>/key_value_stores/<namespace>/`,
  written to a temp file and atomically replaced
- neo4j: JSON string on a `(:KeyValue {store, key})` node; Neo4j node
  properties cannot hold maps, so the value is serialized

Store errors are not swallowed: a run that cannot persist its checkpoint
must not continue.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from typing import Any, Optional, Protocol

from leadrun.config import Settings
from leadrun.db.neo4j_connector import ensure_kv_constraint, run_cypher

DEFAULT_STORE = "default"
RUN_COUNTER_STORE = "run-counter-store"

_SAFE_KEY = re.compile(r"[^A-Za-z0-9._-]+")


class KeyValueStore(Protocol):
    async def get_value(self, key: str) -> Any:
        ...

    async def set_value(self, key: str, value: Any) -> None:
        ...


class FileKeyValueStore:
    def __init__(self, root_dir: str, namespace: str = DEFAULT_STORE) -> None:
        self.namespace = namespace
        self.path = os.path.join(root_dir, "key_value_stores", namespace)

    def _file(self, key: str) -> str:
        return os.path.join(self.path, _SAFE_KEY.sub("_", key) + ".json")

    def _read(self, key: str) -> Any:
        path = self._file(key)
        if not os.path.isfile(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, key: str, value: Any) -> None:
        os.makedirs(self.path, exist_ok=True)
        path = self._file(key)
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(value, f, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)

    async def get_value(self, key: str) -> Any:
        return await asyncio.to_thread(self._read, key)

    async def set_value(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, key, value)


class Neo4jKeyValueStore:
    def __init__(self, namespace: str = DEFAULT_STORE) -> None:
        self.namespace = namespace

    def _read(self, key: str) -> Any:
        res = run_cypher(
            "MATCH (kv:KeyValue {store: $store, key: $key}) RETURN kv.value_json AS value_json",
            {"store": self.namespace, "key": key},
        )
        if not res:
            return None
        raw = res[0].get("value_json")
        if raw is None:
            return None
        return json.loads(raw)

    def _write(self, key: str, value: Any) -> None:
        ensure_kv_constraint()
        run_cypher(
            "MERGE (kv:KeyValue {store: $store, key: $key}) "
            "SET kv.value_json = $value_json, kv.updated_at = datetime()",
            {"store": self.namespace, "key": key, "value_json": json.dumps(value, ensure_ascii=False)},
            write=True,
        )

    async def get_value(self, key: str) -> Any:
        return await asyncio.to_thread(self._read, key)

    async def set_value(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, key, value)


def open_key_value_store(namespace: str = DEFAULT_STORE, settings: Optional[Settings] = None) -> KeyValueStore:
    """Open a namespaced store on the configured backend."""
    backend = settings.store_backend if settings else "file"
    if backend == "neo4j":
        return Neo4jKeyValueStore(namespace)
    if backend != "file":
        raise ValueError(f"Unknown key-value store backend: {backend!r}")
    root = settings.storage_dir if settings else "storage"
    return FileKeyValueStore(root, namespace)

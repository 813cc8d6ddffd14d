from __future__ import annotations

import json
import os
from typing import Dict, Iterable, Optional, Set

from .base import canonical_json, sha256_hexdigest


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def dataset_path(out_dir: str, name: str) -> str:
    """Return the JSONL path for `name` under out_dir (directory is created)."""
    ensure_dir(out_dir)
    return os.path.join(out_dir, f"{name}.jsonl")


def record_dedupe_key(rec: Dict) -> str:
    # run metadata is excluded so the same profile found through two queries matches
    body = {k: v for k, v in rec.items() if k != "_meta"}
    return sha256_hexdigest(canonical_json(body))


def load_dedupe_keys(path: str) -> Set[str]:
    """Dedupe keys of the records already in a JSONL file; empty if it does not exist."""
    keys: Set[str] = set()
    if not os.path.isfile(path):
        return keys
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                keys.add(record_dedupe_key(json.loads(line)))
            except json.JSONDecodeError:
                # a torn last line from an interrupted write
                continue
    return keys


def append_jsonl(records: Iterable[Dict], path: str, seen: Optional[Set[str]] = None) -> int:
    """Append records to a JSONL file with coarse dedupe by content hash.

    `seen` carries dedupe keys across calls. Returns the number of lines written.
    """
    ensure_dir(os.path.dirname(path) or ".")
    seen = seen if seen is not None else set()
    written = 0
    with open(path, "a", encoding="utf-8") as f:
        for rec in records:
            key = record_dedupe_key(rec)
            if key in seen:
                continue
            seen.add(key)
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")
            written += 1
    return written

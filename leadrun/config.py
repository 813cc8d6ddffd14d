"""Runtime settings for lead runs.

Configuration via environment variables (a `.env` file at the project root is
read first; variables already present in the process environment win):

- HARVESTAPI_TOKEN / HARVESTAPI_URL: search + profile API credentials
- LEADRUN_STORE_BACKEND: `file` (default) or `neo4j`
- LEADRUN_STORAGE_DIR: root directory for file-backed stores and datasets
- APIFY_USER_ID, APIFY_USER_IS_PAYING, ACTOR_MAX_PAID_DATASET_ITEMS,
  ACTOR_MAX_TOTAL_CHARGE_USD, ACTOR_RUN_ID: hosting account environment
- LEADRUN_LOG_LEVEL: root log level for the CLI (default INFO)

Usage:
    from leadrun.config import get_settings
    settings = get_settings()
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

MIN_MAX_TOTAL_CHARGE_USD = 0.03
FREE_USER_ITEMS_LIMIT = 25
FREE_USER_EMAIL_ITEMS_LIMIT = 10
FREE_USER_RUNS_LIMIT = 10
ALL_AT_ONCE_MAX_COMPANIES = 10
DEFAULT_MAX_PAID_ITEMS = 1_000_000

ACTOR_START_EVENT = "actor-start"

DEFAULT_EVENT_PRICES: Dict[str, float] = {
    ACTOR_START_EVENT: 0.02,
    "short-profile": 0.004,
    "full-profile": 0.008,
    "full-profile-with-email": 0.012,
}


def _load_env_from_file() -> None:
    """Load environment variables from a .env file at the project root if present.

    Only sets variables that aren't already present in the process environment.
    Avoids an external dependency on python-dotenv for this small use case.
    """
    try:
        root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
        env_path = os.path.join(root_dir, ".env")
        if not os.path.isfile(env_path):
            return
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                s = line.strip()
                if not s or s.startswith("#"):
                    continue
                if "=" not in s:
                    continue
                key, val = s.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key and (key not in os.environ or not os.environ[key]):
                    os.environ[key] = val
    except OSError:
        # loading .env is best-effort
        pass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str) -> Optional[int]:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(float(raw))
    except ValueError:
        return None


def _env_float(name: str) -> Optional[float]:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class Settings:
    harvest_api_token: str = ""
    harvest_api_url: str = "https://api.harvest-api.com"
    store_backend: str = "file"
    storage_dir: str = "storage"
    user_id: Optional[str] = None
    user_is_paying: bool = False
    max_paid_dataset_items: Optional[int] = None
    max_total_charge_usd: Optional[float] = None
    run_id: Optional[str] = None
    log_level: str = "INFO"
    event_prices: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_EVENT_PRICES))
    # upper bound of the random wait free accounts take before touching the run counter
    free_user_start_jitter_s: float = 4.0


def get_settings() -> Settings:
    _load_env_from_file()
    return Settings(
        harvest_api_token=(os.getenv("HARVESTAPI_TOKEN") or "").strip(),
        harvest_api_url=(os.getenv("HARVESTAPI_URL") or "https://api.harvest-api.com").rstrip("/"),
        store_backend=(os.getenv("LEADRUN_STORE_BACKEND") or "file").strip().lower(),
        storage_dir=os.getenv("LEADRUN_STORAGE_DIR") or "storage",
        user_id=(os.getenv("APIFY_USER_ID") or "").strip() or None,
        user_is_paying=_env_bool("APIFY_USER_IS_PAYING"),
        max_paid_dataset_items=_env_int("ACTOR_MAX_PAID_DATASET_ITEMS"),
        max_total_charge_usd=_env_float("ACTOR_MAX_TOTAL_CHARGE_USD"),
        run_id=(os.getenv("ACTOR_RUN_ID") or "").strip() or None,
        log_level=(os.getenv("LEADRUN_LOG_LEVEL") or "INFO").upper(),
    )

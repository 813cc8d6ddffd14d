"""Neo4j connection for the durable key-value backend.

Crawl state and run counters are stored as JSON strings on `(:KeyValue)`
nodes; this module only owns the driver lifecycle and statement execution.
"""

import os
from typing import Any, Dict, List, Optional

from leadrun.config import _load_env_from_file

try:
    from neo4j import GraphDatabase
except Exception as _import_exc:
    GraphDatabase = None
    _neo4j_import_exc = _import_exc

_driver = None
_constraint_ready = False

_KV_CONSTRAINT = (
    "CREATE CONSTRAINT kv_store_key IF NOT EXISTS "
    "FOR (kv:KeyValue) REQUIRE (kv.store, kv.key) IS UNIQUE"
)


def _ensure_neo4j_available():
    if GraphDatabase is None:
        raise RuntimeError(
            "The 'neo4j' Python package is not installed.\n"
            "Install it with: pip install neo4j\n"
            "Or keep crawl state on disk with LEADRUN_STORE_BACKEND=file\n"
            f"Import error: {_neo4j_import_exc!r}"
        )


def get_driver():
    """Return a shared Neo4j driver, creating it from the environment on first use."""
    global _driver
    _ensure_neo4j_available()
    if _driver is None:
        uri, user, pwd = _get_neo4j_config()
        try:
            _driver = GraphDatabase.driver(uri, auth=(user, pwd))
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create Neo4j driver for URI '{uri}'. Check that the database is running "
                f"and the credentials are correct.\nError: {exc}"
            ) from exc
    return _driver


def close_driver():
    global _driver, _constraint_ready
    if _driver is not None:
        _driver.close()
        _driver = None
        _constraint_ready = False


def ensure_kv_constraint() -> None:
    """Create the (store, key) uniqueness constraint once per driver."""
    global _constraint_ready
    if _constraint_ready:
        return
    run_cypher(_KV_CONSTRAINT, write=True)
    _constraint_ready = True


def run_cypher(query: str, parameters: Optional[Dict[str, Any]] = None, *, write: bool = False) -> List[Dict[str, Any]]:
    """Run a Cypher statement in a managed transaction and return records as dicts.

    Errors from the driver propagate: a store that cannot persist crawl state
    must stop the run.
    """
    driver = get_driver()

    def _work(tx):
        result = tx.run(query, parameters or {})
        return [record.data() for record in result]

    with driver.session() as session:
        if write:
            return session.execute_write(_work)
        return session.execute_read(_work)


def _get_neo4j_config():
    """Return (uri, user, password) from the environment, loading .env first."""
    _load_env_from_file()

    uri = os.getenv("NEO4J_URI") or "bolt://localhost:7687"
    user = os.getenv("NEO4J_USER") or "neo4j"
    pwd = os.getenv("NEO4J_PASSWORD")

    if not pwd:
        raise RuntimeError(
            "NEO4J_PASSWORD is not set.\n"
            "Define it in your environment or in a .env file at the project root,\n"
            "or run with LEADRUN_STORE_BACKEND=file."
        )

    return uri, user, pwd

from contextlib import asynccontextmanager

from fastapi import FastAPI

from leadrun.db.neo4j_connector import close_driver

# Routers
from leadrun.api.routers.runs import router as runs_router, shutdown_supervisor


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Checkpoint an active run and close the Neo4j driver on shutdown."""
    try:
        yield
    finally:
        await shutdown_supervisor()
        close_driver()


app = FastAPI(title="Lead Run Controller", version="0.1", lifespan=lifespan)

app.include_router(runs_router)

# @TASK P0-T0.3 - FastAPI app entrypoint

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from vaultsearch.database import engine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: startup and shutdown events."""
    # Startup: create all database tables if they don't exist
    from vaultsearch.database import Base
    from vaultsearch import models  # noqa: F401 - Import models to register them with Base

    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)

    yield
    # Shutdown: dispose the async engine connection pool
    await engine.dispose()


app = FastAPI(
    title="Vault Search",
    description="Hybrid semantic, fuzzy and exact search over a personal content vault",
    version="0.1.0",
    lifespan=lifespan,
)

# --- Router includes ---
from vaultsearch.api.search import router as search_router

app.include_router(search_router, prefix="/api")


@app.get("/api/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.
    """
    return {"status": "ok"}

# @TASK P0-T0.3 - FastAPI app entrypoint

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from smartnotes.api.search import router as search_router
from smartnotes.config import get_settings
from smartnotes.search.ai_engine import build_ai_engine

settings = get_settings()
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: engine startup and worker shutdown."""
    engine = build_ai_engine(settings)
    await engine.initialize()
    app.state.ai_engine = engine

    optimizer = asyncio.create_task(
        engine.metrics.run_auto_optimization(engine.lifecycle, settings.AUTO_OPTIMIZE_INTERVAL_SECONDS)
    )

    yield

    optimizer.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await optimizer
    await engine.aclose()


app = FastAPI(
    title="SmartNotes AI",
    description="Hybrid semantic and text search for notes",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Router includes ---
app.include_router(search_router, prefix="/api")


@app.get("/api/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns a simple status response to verify the API is running.
    """
    return {"status": "ok"}

import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import router
from app.config import get_settings
from app.dependencies import build_services

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

START_TIME = time.time()


# =============================================================================
# LIFESPAN: Startup and Shutdown Logic
# =============================================================================
#
# Everything BEFORE 'yield' runs once on startup, everything AFTER on shutdown.
#
# Startup:
# - build the service graph (session tables, streaming jobs, HTTP client)
#   unless one was installed already
# - start the sweeper that evicts streaming jobs nobody opened
#
# Shutdown:
# - stop the sweeper
# - close the shared HTTP client
#
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""

    # === STARTUP ===
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()
    services = app.state.services
    sweeper = asyncio.create_task(services.relay.run_sweeper(
        services.settings.stream_sweep_interval_seconds
    ))
    logger.info(f"Serving {len(services.catalog)} agents: {', '.join(services.catalog.names)}")

    # === YIELD (server is now running and handling requests) ===
    yield

    # === SHUTDOWN ===
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await services.coze.close()


app = FastAPI(
    title="Art Appreciation Agents",
    description="Chat, debate and dialogue with art appreciation agents about paintings",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "uptime": round(time.time() - START_TIME, 2),
    }

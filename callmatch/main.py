import logging
import logging.config
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict

from fastapi import Depends, FastAPI, Request, Response
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from callmatch.config import (
    APP_ADDR,
    APP_PORT,
    COMMIT_HASH,
    ENV,
    ENV_IS_PROD,
    SWEEP_SCHEDULER_ENABLED,
)
from callmatch.database import close_db, get_db, init_db
from callmatch.routers.blocks import router as blocks_router
from callmatch.routers.ops import router as ops_router
from callmatch.routers.participants import router as participants_router
from callmatch.routers.queue import router as queue_router
from callmatch.routers.rooms import router as rooms_router
from callmatch.services.sweep_scheduler import SweepScheduler

LOGGING_CONFIG: Dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
    "loggers": {
        "sqlalchemy.engine": {
            "level": "WARNING",
        },
    },
}

logging.config.dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)

if not COMMIT_HASH and ENV_IS_PROD:
    raise ValueError("COMMIT_HASH is required for production environments")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown."""
    # Startup
    await init_db()
    scheduler = SweepScheduler()
    if SWEEP_SCHEDULER_ENABLED:
        scheduler.start()
    app.state.sweep_scheduler = scheduler
    yield
    # Shutdown
    await scheduler.stop()
    await close_db()


app = FastAPI(
    title="Callmatch",
    description="One-to-one voice call matching, room lifecycle and reconciliation",
    version=COMMIT_HASH or "dev",
    lifespan=lifespan,
)


@app.middleware("http")
async def request_logging(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every request with an id and log its outcome."""
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Request-Id"] = request_id
    logger.info(
        "rid=%s %s %s -> %s (%.1fms)",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


# Include routers
app.include_router(queue_router, prefix="/api/queue", tags=["queue"])
app.include_router(participants_router, prefix="/api", tags=["participants"])
app.include_router(rooms_router, prefix="/api/rooms", tags=["rooms"])
app.include_router(blocks_router, prefix="/api/blocks", tags=["blocks"])
app.include_router(ops_router, prefix="/api/ops", tags=["ops"])


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Health check endpoint with database connectivity."""
    try:
        # Test database connection
        result = await db.execute(text("SELECT 1"))
        db_status = "connected" if result.scalar() == 1 else "error"
    except Exception:
        logger.warning("Health check could not reach the database", exc_info=True)
        db_status = "disconnected"

    scheduler = getattr(app.state, "sweep_scheduler", None)
    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
        "sweeps": "running" if scheduler is not None and scheduler.running else "stopped",
        "environment": ENV,
        "version": COMMIT_HASH,
    }


# If run directly, start the server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=APP_ADDR, port=APP_PORT)

"""plurules API: FastAPI application for zoning ruleset resolution.

Run:
    uvicorn plurules.api.main:app --reload
    # or
    plurules-api
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from plurules.api.routes import router
from plurules.config import settings
from plurules.observability.logging import correlation_id, setup_logging
from plurules.observability.tracing import init_tracing
from plurules.storage.db import get_session, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize tracing and DB on startup."""
    setup_logging(json_format=settings.log_json, level=settings.log_level)
    init_tracing()

    parsed = urlparse(settings.database_url)
    redacted_host = f"{parsed.hostname}:{parsed.port}" if parsed.port else parsed.hostname
    logger.info("Connecting to database at %s/%s", redacted_host, parsed.path.lstrip("/"))
    try:
        await asyncio.wait_for(init_db(), timeout=15)
    except asyncio.TimeoutError:
        logger.error("Database initialization timed out after 15s, API starts in degraded mode")
    except Exception as e:
        logger.error("Database initialization failed: %s, API starts in degraded mode", e)
    logger.info("plurules API ready")
    yield
    logger.info("Shutting down")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Set correlation ID from X-Request-ID header or generate a new one."""

    async def dispatch(self, request: Request, call_next):
        cid = request.headers.get("x-request-id", str(uuid.uuid4()))
        token = correlation_id.set(cid)
        try:
            response = await call_next(request)
            response.headers["x-request-id"] = cid
            return response
        finally:
            correlation_id.reset(token)


app = FastAPI(
    title="plurules",
    description="Resolves setbacks, footprint, height and parking rules for a zoning-plan zone "
    "from structured records, automated extraction and user corrections.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/health")
async def health():
    """Health check: verifies DB connectivity."""
    checks = {}

    session = None
    try:
        session = await get_session()
        await session.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"
    finally:
        if session:
            await session.close()

    status = "healthy" if checks.get("database") == "ok" else "degraded"
    return {"status": status, "checks": checks}


def run():
    """Entry point for plurules-api console script."""
    uvicorn.run("plurules.api.main:app", host="0.0.0.0", port=8000, reload=True)

"""FastAPI application: Notion webhook receiver and admin token endpoint.

Run with: uvicorn aqueduct.serve:app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.concurrency import run_in_threadpool

from aqueduct.config import settings
from aqueduct.logging_setup import setup_logging
from aqueduct.ratelimit import get_rate_limiter
from aqueduct.redis_client import check_redis
from aqueduct.webhooks.handlers import limiter
from aqueduct.webhooks.handlers import router as webhook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.aqueduct_log_level, settings.aqueduct_log_json)
    if not get_rate_limiter().enabled:
        logger.warning("Running without shared rate limiting (REDIS_URL not set)")
    logger.info("Aqueduct started")
    yield
    logger.info("Aqueduct stopped")


def create_app() -> FastAPI:
    app = FastAPI(title="Aqueduct", lifespan=lifespan)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.include_router(webhook_router)

    @app.get("/health")
    async def health():
        """Liveness plus Redis reachability."""
        redis_ok = await run_in_threadpool(check_redis)
        return {"status": "ok", "redis": redis_ok}

    return app


app = create_app()

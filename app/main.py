"""
Main entry point for FastAPI application.
"""
from contextlib import asynccontextmanager
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.errors import PlayerError
from app.routes import players
from app.services.job_dispatcher import JobRunner
from app.services.player_jobs import register_player_jobs
from app.services.player_service import build_player_service
from app.utils.db_async import (
    DATABASE_URL,
    SessionLocal,
    describe_database_url,
    dispose_engine,
    init_db,
)

from app.logging_config import setup_logging
from app.config import settings

import logging
logger = logging.getLogger(__name__)

setup_logging(
    level=settings.log_level,
    access_log=settings.access_log,
    upstream_level=settings.upstream_log_level,
)

job_runner = JobRunner(
    max_attempts=settings.job_max_attempts,
    retry_delay=settings.job_retry_delay_seconds,
)
player_service = build_player_service()
register_player_jobs(job_runner, player_service, SessionLocal)


@asynccontextmanager
async def lifespan(app: FastAPI):
    should_init_db = (
        settings.is_dev
        and settings.auto_init_db
        and not os.getenv("FLY_APP_NAME")
    )

    if should_init_db:
        logger.info("Running init_db()…")
        logger.info(f"DB target: {describe_database_url(DATABASE_URL)}")
        try:
            await init_db()
            logger.info("DB ready.")
        except Exception:
            logger.exception("init_db failed")
            raise
    else:
        logger.info("Skipping init_db(); auto_init_db disabled or managed deployment detected")

    yield

    try:
        logger.info("Disposing DB engine…")
        await dispose_engine()
        logger.info("DB engine disposed.")
    except Exception:
        logger.exception("Failed to dispose DB engine")

app = FastAPI(title="Hiscores Tracker", lifespan=lifespan)
app.state.player_service = player_service
app.state.job_runner = job_runner
app.include_router(players.router)


@app.exception_handler(PlayerError)
async def player_error_handler(request: Request, exc: PlayerError) -> JSONResponse:
    """Map typed core failures to their status code and a message body."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.get("/health")
async def health_check():
    """Health Check Endpoint"""
    return {"status": "ok"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)

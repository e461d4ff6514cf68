"""
NestQuarter API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Logging
- Database and Redis connections
- Background job scheduler
- CORS middleware
- API routing
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from nestquarter.api import api_router
from nestquarter.core.config import settings
from nestquarter.core.database import async_session_maker, close_db, init_db
from nestquarter.core.redis import close_redis, get_redis, init_redis
from nestquarter.core.scheduler import (
    list_registered_jobs,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from nestquarter.modules.student_verification import register_student_verification_jobs

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Redis connection
    - Database connection
    - Background job scheduler
    """
    # Startup
    logger.info(f"Starting NestQuarter API in {settings.python_env} mode...")

    # Initialize Redis (rate limiting falls back to memory without it)
    try:
        await init_redis()
        logger.info("[OK] Redis connected")
    except Exception as e:
        logger.error(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    # Initialize Database
    try:
        await init_db()
        logger.info("[OK] Database connected")
    except Exception as e:
        logger.error(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    # Initialize Background Job Scheduler
    try:
        register_student_verification_jobs()
        await start_scheduler()
        logger.info("[OK] Background scheduler started")
    except Exception as e:
        logger.error(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down NestQuarter API...")

    await stop_scheduler()
    logger.info("[OK] Background scheduler stopped")

    await close_redis()
    await close_db()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="NestQuarter API",
    description="NestQuarter student housing API",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to NestQuarter API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    return {"status": "ready"}


# ============================================
# Debug Endpoints (development only)
# ============================================


def _development_only() -> None:
    if not settings.is_development:
        raise HTTPException(status_code=404, detail="Not Found")


@app.get("/debug/db", tags=["Debug"], dependencies=[Depends(_development_only)])
async def debug_db():
    """Test database connection."""
    try:
        async with async_session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            return {"database": "connected", "result": result.scalar()}
    except Exception as e:
        logger.error(f"Database check failed: {e}")
        return {"database": "error", "message": str(e)}


@app.get("/debug/redis", tags=["Debug"], dependencies=[Depends(_development_only)])
async def debug_redis():
    """Test Redis connection."""
    client = get_redis()
    if not client:
        return {"redis": "not initialized"}

    try:
        await client.ping()
        return {"redis": "connected"}
    except Exception as e:
        logger.error(f"Redis check failed: {e}")
        return {"redis": "error", "message": str(e)}


@app.get("/debug/jobs", tags=["Debug"], dependencies=[Depends(_development_only)])
async def list_jobs():
    """List all registered background jobs and their next run time."""
    return {"jobs": list_registered_jobs()}


@app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"], dependencies=[Depends(_development_only)])
async def trigger_job(job_id: str):
    """
    Manually trigger a background job, bypassing the schedule.

    Args:
        job_id: The ID of the job to trigger. Available jobs:
            - student_verification_review_backlog

    Raises:
        HTTPException 400: If job_id is not found.
    """
    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

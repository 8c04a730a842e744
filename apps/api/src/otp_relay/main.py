"""
Verification API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database and Redis connections
- Delivery gateway (SMS tunnel and email)
- Background job scheduler
- CORS middleware
- API routing
- Health check endpoints
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from otp_relay.api import api_router
from otp_relay.core import redis as redis_state
from otp_relay.core.config import settings
from otp_relay.core.database import async_session_maker, close_db, init_db
from otp_relay.core.delivery import (
    close_delivery_gateway,
    get_delivery_gateway,
    init_delivery_gateway,
)
from otp_relay.core.redis import close_redis, init_redis
from otp_relay.core.scheduler import (
    list_registered_jobs,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from otp_relay.modules.verification import register_verification_jobs


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Startup: Redis, database, delivery gateway, scheduler.
    Shutdown: the same in reverse.
    """
    print(f"Starting Verification API in {settings.python_env} mode...")

    try:
        await init_redis()
        print("[OK] Redis connected")
    except Exception as e:
        print(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    try:
        await init_db()
        print("[OK] Database connected")
    except Exception as e:
        print(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    # A malformed SSH key is a deployment defect, not a transient failure
    try:
        init_delivery_gateway(settings)
        sms_mode = "live" if settings.has_sms_config else "mock"
        email_mode = "live" if settings.has_email_config else "mock"
        print(f"[OK] Delivery gateway ready (sms: {sms_mode}, email: {email_mode})")
    except Exception as e:
        print(f"[FAIL] Delivery gateway configuration invalid: {e}")
        if settings.is_production:
            raise

    try:
        register_verification_jobs()
        await start_scheduler()
        print("[OK] Background scheduler started")
    except Exception as e:
        print(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    print("Shutting down Verification API...")

    await stop_scheduler()
    print("[OK] Background scheduler stopped")

    await close_delivery_gateway()
    await close_redis()
    await close_db()
    print("[OK] Cleanup complete")


app = FastAPI(
    title="Verification API",
    description="Verification code delivery and checking for student identity verification",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_development() -> None:
    if not settings.is_development:
        raise HTTPException(status_code=404, detail="Not Found")


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to the Verification API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check endpoint."""
    return {"status": "ready"}


# ============================================
# Debug Endpoints (development only)
# ============================================


@app.get("/debug/db", tags=["Debug"])
async def debug_db():
    """Test database connection."""
    _require_development()
    try:
        async with async_session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            return {"database": "connected", "result": result.scalar()}
    except Exception as e:
        return {"database": "error", "message": str(e)}


@app.get("/debug/redis", tags=["Debug"])
async def debug_redis():
    """Test Redis connection."""
    _require_development()
    client = redis_state.get_redis()
    if client is None:
        return {"redis": "not initialized"}
    try:
        await client.ping()
        return {"redis": "connected"}
    except Exception as e:
        return {"redis": "error", "message": str(e)}


@app.get("/debug/tunnel", tags=["Debug"])
async def debug_tunnel():
    """Report the SMS tunnel state without connecting."""
    _require_development()
    gateway = get_delivery_gateway()
    return {
        "sms_mode": "live" if gateway.config.has_sms_config else "mock",
        "email_mode": "live" if gateway.config.has_email_config else "mock",
        "tunnel_state": gateway.tunnel_state.value,
        "jump_server": gateway.tunnel.host,
    }


@app.get("/debug/jobs", tags=["Debug"])
async def list_jobs():
    """List registered background jobs and their next run time."""
    _require_development()
    return {"jobs": list_registered_jobs()}


@app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
async def trigger_job(job_id: str):
    """
    Run a background job immediately.

    Raises:
        HTTPException 400: If job_id is not registered
    """
    _require_development()
    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

"""
Health Check Router

Provides health check endpoints for monitoring application status: process
liveness, package storage and the progress database.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import os
import sys
import time
from datetime import datetime

from scorm_bridge.db.config import check_connection, get_session
from scorm_bridge.models.health import HealthCheckResponse
from scorm_bridge.utils.settings import Settings, get_settings

# Initialize router
router = APIRouter()

# Application start time for uptime calculation
_start_time = time.time()


def _storage_status(settings: Settings) -> dict:
    root = settings.upload_root
    return {
        "upload_root": str(root),
        "exists": root.is_dir(),
        "writable": root.is_dir() and os.access(root, os.W_OK),
        "scorm_root_exists": settings.scorm_root.is_dir(),
    }


@router.get("/health", response_model=HealthCheckResponse, summary="Basic Health Check")
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Basic health check endpoint

    Returns application status, version, and environment information.
    """
    return HealthCheckResponse(
        status="healthy",
        version=os.getenv("APP_VERSION", "1.0.0"),
        environment=settings.environment,
        timestamp=datetime.utcnow(),
        uptime=time.time() - _start_time,
    )


@router.get("/health/detailed", summary="Detailed Health Check")
async def detailed_health_check(
    settings: Settings = Depends(get_settings),
    session: AsyncSession = Depends(get_session),
):
    """
    Detailed health check with dependency validation

    Checks package storage and the progress database.
    """
    storage = _storage_status(settings)
    database = {"connected": await check_connection(session)}
    is_healthy = storage["exists"] and storage["writable"] and database["connected"]

    return {
        "status": "healthy" if is_healthy else "degraded",
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "environment": settings.environment,
        "timestamp": datetime.utcnow().isoformat(),
        "uptime": time.time() - _start_time,
        "components": {
            "storage": storage,
            "database": database,
        },
        "details": {
            "cors_origins": settings.cors_origins,
            "python_version": sys.version,
            "startup_time": datetime.fromtimestamp(_start_time).isoformat(),
        },
    }


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check(
    settings: Settings = Depends(get_settings),
    session: AsyncSession = Depends(get_session),
):
    """
    Kubernetes-style readiness check

    Returns 200 when packages can be stored and progress can be saved,
    503 otherwise.
    """
    if not settings.upload_root.is_dir():
        raise HTTPException(
            status_code=503,
            detail="Application not ready: upload directory missing",
        )
    if not await check_connection(session):
        raise HTTPException(
            status_code=503,
            detail="Application not ready: database unavailable",
        )
    return {"status": "ready", "timestamp": datetime.utcnow().isoformat()}


@router.get("/health/live", summary="Liveness Check")
async def liveness_check():
    """
    Kubernetes-style liveness check
    """
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
        "pid": os.getpid(),
    }

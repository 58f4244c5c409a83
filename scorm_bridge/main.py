"""Main FastAPI application entry point.

Provides CORS, health endpoints, the SCORM launch/progress API and static
serving of extracted SCORM content.
"""

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
import logging
import os
from datetime import datetime

# Import routers
from scorm_bridge.routers import health, scorm
from scorm_bridge.db.config import close_db, init_db
from scorm_bridge.services.archive import ExtractionFailed
from scorm_bridge.services.package_resolver import InvalidPackage
from scorm_bridge.utils.settings import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Application metadata
APP_NAME = "SCORM Bridge API"
VERSION = "1.0.0"
DESCRIPTION = """
SCORM Bridge Backend API

## Features

* **Launch**: Extract, validate and launch SCORM 1.2/2004 packages
* **Runtime Bridge**: Wrapper page exposing the LMS API to packaged content
* **Progress**: Per-learner CMI snapshot persistence
* **Health Check**: Monitor application status
"""

settings = get_settings()

# Initialize FastAPI app
app = FastAPI(
    title=APP_NAME,
    description=DESCRIPTION,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Global exception handlers


def _error_body(request, error, **extra) -> dict:
    body = {
        "success": False,
        "error": error,
        "timestamp": datetime.utcnow().isoformat(),
        "path": str(request.url)
    }
    body.update(extra)
    return body


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions with consistent error format"""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.detail)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    """Reject malformed request bodies and parameters"""
    return JSONResponse(
        status_code=400,
        content=_error_body(
            request, "Invalid request", details=jsonable_encoder(exc.errors())
        )
    )


@app.exception_handler(InvalidPackage)
async def invalid_package_handler(request, exc):
    logger.warning(f"SCORM package unavailable: {exc}")
    return JSONResponse(
        status_code=404,
        content=_error_body(request, str(exc), status="unavailable")
    )


@app.exception_handler(ExtractionFailed)
async def extraction_failed_handler(request, exc):
    return JSONResponse(
        status_code=422,
        content=_error_body(request, str(exc), status="unavailable")
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=_error_body(request, "Internal server error")
    )

# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(scorm.router, prefix="/api/v1")

# Extracted packages, referenced by the wrapper's iframe
app.mount(
    "/scorm",
    StaticFiles(directory=str(settings.scorm_root), check_dir=False),
    name="scorm-content",
)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "name": APP_NAME,
        "version": VERSION,
        "status": "running",
        "environment": settings.environment,
        "timestamp": datetime.utcnow().isoformat(),
        "docs": "/docs",
        "health": "/api/v1/health"
    }


def _run_migrations() -> None:
    import subprocess
    logger.info("AUTO_MIGRATE enabled: running 'alembic upgrade head'")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=os.path.join(os.path.dirname(__file__), ".."),
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        logger.error(
            "Alembic not found - ensure it's installed in the environment"
        )
        return
    if result.returncode != 0:
        logger.error(
            "Alembic upgrade failed (code %s): %s\n%s",
            result.returncode,
            result.stdout,
            result.stderr,
        )
    else:
        logger.info("Alembic migration applied successfully")


@app.on_event("startup")
async def startup_event():
    """Application startup tasks"""
    logger.info(f"Starting {APP_NAME} v{VERSION}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"CORS Origins: {settings.cors_origins}")
    settings.scorm_root.mkdir(parents=True, exist_ok=True)
    logger.info(f"Serving SCORM content from {settings.scorm_root}")

    if os.getenv("AUTO_MIGRATE", "false").lower() in {"1", "true", "yes"}:
        _run_migrations()
    else:
        await init_db()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown tasks"""
    logger.info(f"Shutting down {APP_NAME}")
    await close_db()

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")

    uvicorn.run(
        "scorm_bridge.main:app",
        host=host,
        port=port,
        reload=settings.environment == "development",
        log_level="info"
    )

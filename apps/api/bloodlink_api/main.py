"""BloodLink API - Main FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from bloodlink_api.errors import BloodLinkError
from bloodlink_api.middleware.correlation import (
    CorrelationIDMiddleware,
    CorrelationIdFilter,
    get_correlation_id,
)
from bloodlink_api.routes import certificates, verify
from bloodlink_api.settings import get_settings

# Configure logging
_handler = logging.StreamHandler(sys.stdout)
_handler.addFilter(CorrelationIdFilter())
logging.basicConfig(
    level=get_settings().log_level,
    format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "module": "%(name)s", "correlation_id": "%(correlation_id)s"}',
    handlers=[_handler],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting BloodLink API...")
    try:
        settings.validate_production_settings()

        from bloodlink_api.ledger.client import get_ledger_client
        ledger = get_ledger_client()
        logger.info(f"Ledger client initialized: {ledger.contract_address}")

        from bloodlink_api.storage.service import get_file_store
        get_file_store()
        logger.info("File store initialized")
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    yield
    logger.info("Shutting down BloodLink API...")


# Create FastAPI app
app = FastAPI(
    title="BloodLink API",
    description="Donor certificate review and ledger verification",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(CorrelationIDMiddleware)

# Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Register routers
app.include_router(certificates.router)
app.include_router(verify.router)


@app.exception_handler(BloodLinkError)
async def bloodlink_error_handler(request: Request, exc: BloodLinkError):
    """Render workflow errors with their error code."""
    correlation_id = get_correlation_id()
    log = logger.error if exc.http_status >= 500 else logger.info
    log(
        f"{exc.error_code}: {exc.detail}",
        extra={"correlation_id": correlation_id, "path": request.url.path},
    )
    content = exc.to_dict()
    if correlation_id:
        content["correlation_id"] = correlation_id
    return JSONResponse(status_code=exc.http_status, content=content)


@app.get("/health")
async def health_check():
    """Health check endpoint (basic liveness)."""
    return {
        "status": "healthy",
        "service": "bloodlink-api",
        "version": "0.1.0",
    }


@app.get("/ready")
def readiness_check():
    """Readiness check endpoint (verifies dependencies)."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from bloodlink_api.db.session import SessionLocal
    from bloodlink_api.ledger.client import get_ledger_client
    from bloodlink_api.storage.service import get_file_store

    checks = {
        "database": False,
        "ledger": False,
        "object_storage": False,
    }

    # Check database connectivity
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        logger.error(f"Database check failed: {e}")
    finally:
        db.close()

    try:
        checks["ledger"] = get_ledger_client().is_available()
    except (BloodLinkError, ValueError) as e:
        logger.error(f"Ledger check failed: {e}")

    try:
        checks["object_storage"] = get_file_store().is_available()
    except ValueError as e:
        logger.error(f"Object storage check failed: {e}")

    all_ready = all(checks.values())
    return JSONResponse(
        content={
            "status": "ready" if all_ready else "not_ready",
            "checks": checks,
        },
        status_code=200 if all_ready else 503,
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "BloodLink API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }

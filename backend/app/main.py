"""
RCFA Tracker - Root Cause Failure Analysis lifecycle service.

FastAPI application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.core.config import get_settings
from backend.app.core.database import engine, async_session_maker
from backend.app.core.errors import LifecycleError
from backend.app.core.init_db import create_schema
from backend.app.core.logging import setup_logging, get_logger
from backend.app.api import auth, findings, health, records
from backend.app.middleware.trace import TracingMiddleware
from backend.app.services.auth_service import seed_admin_user

settings = get_settings()

# Initialize logging
setup_logging(level=settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"🚀 Starting {settings.app_name} v{settings.app_version}")
    await create_schema(engine)
    async with async_session_maker() as session:
        await seed_admin_user(session, settings.admin_email, settings.admin_password)

    yield
    # Shutdown
    logger.info(f"👋 Shutting down {settings.app_name}")
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Failure investigation tracking: intake, investigation, action tracking and closure",
    version=settings.app_version,
    lifespan=lifespan,
)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    """Render typed lifecycle failures; the transaction has already rolled back."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc!r}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Add Middleware
app.add_middleware(TracingMiddleware)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(
    auth.router,
    prefix=f"{settings.api_prefix}/auth",
    tags=["Authentication"]
)
app.include_router(
    records.router,
    prefix=f"{settings.api_prefix}/records",
    tags=["Records"]
)
app.include_router(
    findings.router,
    prefix=f"{settings.api_prefix}/records",
    tags=["Findings"]
)
app.include_router(
    findings.action_items_router,
    prefix=f"{settings.api_prefix}/action-items",
    tags=["Action Items"]
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }

"""FastAPI application entry point"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.config import Settings, get_settings
from app.core.exceptions import AppException, TransientError
from app.database import create_all
from app.engine import AggregationEngine

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging once from settings"""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    The application owns one AggregationEngine, created on startup and
    closed on shutdown; routes reach it through the get_engine dependency.

    Args:
        settings: Settings to use (defaults to the environment)

    Returns:
        FastAPI application
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = AggregationEngine.from_settings(settings)
        if settings.create_tables_on_startup:
            await create_all(engine.db_engine)
        app.state.engine = engine
        logger.info(f"{settings.app_name} started")
        try:
            yield
        finally:
            await engine.close()
            logger.info(f"{settings.app_name} stopped")

    # Create FastAPI application
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        description="Balance and activity aggregation engine for shared expenses",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add CORS middleware
    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[origin.strip() for origin in settings.allowed_origins],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Exception handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):
        """Handle custom application exceptions"""
        if exc.status_code >= 500:
            logger.error(f"{exc.error_type} on {request.url.path}: {exc.message}")

        headers = None
        if isinstance(exc, TransientError):
            headers = {"Retry-After": "1"}

        error = {
            "message": exc.message,
            "type": exc.error_type,
            "path": str(request.url.path),
        }
        if exc.details is not None:
            error["details"] = exc.details

        return JSONResponse(status_code=exc.status_code, content={"error": error}, headers=headers)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions"""
        logger.exception(f"Unhandled exception on {request.url.path}")

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {"message": "Internal server error", "type": "InternalServerError"}
            },
        )

    # Include API v1 router
    app.include_router(api_router, prefix=settings.api_prefix)

    # Root endpoint
    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint - redirects to docs"""
        return {
            "message": f"Welcome to {settings.app_name}",
            "docs_url": "/docs",
            "version": "1.0.0",
        }

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint"""
        engine: AggregationEngine = request.app.state.engine
        cache_ok = await engine.cache.health_check()
        return {
            "status": "healthy",
            "cache": "up" if cache_ok else ("disabled" if not engine.cache.enabled else "down"),
        }

    return app

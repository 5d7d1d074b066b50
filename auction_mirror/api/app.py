#!/usr/bin/env python3
"""
FastAPI application for the auction mirror.
Serves mirrored NFT/auction state and admin sale operations; optionally runs
the contract event listener in the background for the life of the app.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config import Settings, load_settings, setup_logging
from ..context import ServiceContext, build_context
from ..errors import (
    AuctionMirrorError, ContractOperationError, ForbiddenOperationError, InvalidInputError,
    PersistenceError, ProviderConnectionError,
)
from .routes import MSG_MISSING_FIELD, router as contract_router

logger = logging.getLogger(__name__)

# Most specific first; anything unmatched is a 500
ERROR_STATUS = (
    (InvalidInputError, 400),
    (ContractOperationError, 400),
    (ForbiddenOperationError, 403),
    (ProviderConnectionError, 503),
    (PersistenceError, 500),
)


def status_for(exc: Exception) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "statusCode": status_code,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def _log_listener_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"❌ Event listener stopped: {error}")


def create_app(context: Optional[ServiceContext] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the app. A supplied context is used as-is and not closed on shutdown."""
    if context is not None:
        settings = context.settings
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = context is None
        ctx = context or build_context(settings)
        app.state.context = ctx

        listener_task = None
        if settings.listener_enabled:
            logger.info("🚀 Starting contract event listener")
            listener_task = asyncio.create_task(ctx.run_listener())
            listener_task.add_done_callback(_log_listener_exit)

        try:
            yield
        finally:
            if listener_task is not None and not listener_task.done():
                listener_task.cancel()
                try:
                    await listener_task
                except asyncio.CancelledError:
                    pass
            if owned:
                await ctx.close()

    app = FastAPI(
        title="Auction Mirror API",
        description="Mirrored NFT ownership and auction state, plus admin sale operations",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Rejected request body on {request.url.path}: {exc.errors()}")
        return error_response(400, MSG_MISSING_FIELD)

    @app.exception_handler(AuctionMirrorError)
    @app.exception_handler(Exception)
    async def service_exception_handler(request: Request, exc: Exception):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path} failed: {exc}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
        return error_response(status_code, str(exc) or "Internal server error")

    app.include_router(contract_router, prefix="/contract", tags=["contract"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        status = {
            "status": "healthy",
            "listener_enabled": settings.listener_enabled,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        database = getattr(app.state.context, "database", None)
        if database is not None and not await database.check_connection():
            status["status"] = "unhealthy"
            status["database"] = "unhealthy"
            return JSONResponse(status_code=503, content=status)
        status["database"] = "healthy"
        return status

    return app


def main():
    """Run the API server with uvicorn"""
    settings = load_settings()
    setup_logging(settings.log_level)
    logger.info(f"🚀 Starting Auction Mirror API on {settings.api_host}:{settings.api_port}")
    uvicorn.run(create_app(settings=settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()

"""FastAPI application factory for BookedSolid."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookedsolid.common.config import get_settings
from bookedsolid.common.exceptions import BookedSolidError
from bookedsolid.common.logging import setup_logging
from bookedsolid.common.schemas import HealthResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from bookedsolid.deps import get_db, get_plan_catalog
        db = get_db()
        await db.init()
        await db.create_all()
        if settings.stripe_configured:
            try:
                get_plan_catalog().validate_price_ids()
            except BookedSolidError as e:
                logger.warning("Stripe price configuration incomplete: %s", e.message)
        yield
        # Shutdown
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BookedSolidError)
    async def bookedsolid_error_handler(request: Request, exc: BookedSolidError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from bookedsolid.admin.router import router as admin_router
    from bookedsolid.audit.router import router as audit_router
    from bookedsolid.billing.router import (
        analytics_router,
        router as billing_router,
        webhook_router as stripe_webhook_router,
    )
    from bookedsolid.calls.router import (
        router as calls_router,
        webhook_router as voice_webhook_router,
    )
    from bookedsolid.clients.router import router as clients_router
    from bookedsolid.users.router import router as auth_router

    prefix = settings.api_prefix
    app.include_router(stripe_webhook_router, prefix=prefix)
    app.include_router(voice_webhook_router, prefix=prefix)
    app.include_router(billing_router, prefix=prefix)
    app.include_router(analytics_router, prefix=prefix)
    app.include_router(calls_router, prefix=prefix)
    app.include_router(auth_router, prefix=prefix)
    app.include_router(clients_router, prefix=prefix)
    app.include_router(audit_router, prefix=prefix)
    app.include_router(admin_router, prefix=prefix)

    return app

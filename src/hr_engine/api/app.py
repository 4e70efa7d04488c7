"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hr_engine.api.routes import (
    accounts_router,
    auth_router,
    employees_router,
    health_router,
    leave_policies_router,
    leave_requests_router,
    timesheets_router,
)
from hr_engine.config import Settings, get_settings
from hr_engine.database import dispose_db, init_db
from hr_engine.errors import HREngineError, UnexpectedError
from hr_engine.identity import IdentityProvider, LocalIdentityProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app(
    settings: Settings | None = None,
    identity_provider: IdentityProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    if identity_provider is None:
        identity_provider = LocalIdentityProvider(
            settings.secret_key,
            algorithm=settings.token_algorithm,
            token_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        )

    app = FastAPI(
        title="HR Engine API",
        description="Leave lifecycle, timesheets and account provisioning",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.identity_provider = identity_provider

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.site_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(HREngineError)
    async def domain_error_handler(request: Request, exc: HREngineError) -> JSONResponse:
        """Render domain errors with their status and code."""
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report malformed request bodies as 400 validation errors."""
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": "Invalid request",
                "code": "VALIDATION_ERROR",
                "details": {"errors": jsonable_encoder(exc.errors())},
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        error = UnexpectedError()
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error.to_dict(),
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(leave_policies_router, prefix="/api")
    app.include_router(leave_requests_router, prefix="/api")
    app.include_router(employees_router, prefix="/api")
    app.include_router(timesheets_router, prefix="/api")
    app.include_router(accounts_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")

    return app


# Default app instance for uvicorn
app = create_app()

"""
FastAPI application factory for the Guardian sync server.

This module creates the app with:
- CORS configuration for the desktop, web and extension clients
- VaultService lifecycle management (start on startup, stop on shutdown)
- Error mapping from the Guardian taxonomy to HTTP status codes
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..config import ServerConfig
from ..errors import (
    ConflictError,
    ForbiddenError,
    GuardianError,
    NotFoundError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from ..service import VaultService
from .auth import Authenticator, HeaderAuthenticator
from .config import Settings
from .routes import router

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[GuardianError], int]] = [
    (NotFoundError, 404),
    (ConflictError, 409),
    (UnauthorizedError, 401),
    (ForbiddenError, 403),
    (ValidationError, 400),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage VaultService lifecycle."""
    service: VaultService = app.state.service
    await service.start()

    yield

    await service.stop()


async def guardian_error_handler(request: Request, exc: GuardianError) -> JSONResponse:
    """Map Guardian errors to HTTP responses.

    Storage and unexpected errors become a generic 500; engine messages
    are logged but never returned to the client.
    """
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return JSONResponse(
                {"error": exc.message, "error_code": exc.code},
                status_code=status,
            )

    if isinstance(exc, StorageError):
        logger.error(
            f"Storage error on {request.method} {request.url.path}: {exc.message}",
            extra={"location": exc.location},
        )
    else:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse({"error": "Internal error", "error_code": "INTERNAL"}, status_code=500)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        {"error": "Invalid request", "error_code": "VALIDATION_ERROR", "details": errors},
        status_code=400,
    )


def create_app(
    service: VaultService | None = None,
    settings: Settings | None = None,
    authenticator: Authenticator | None = None,
    config: ServerConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Vault service (built from config when omitted)
        settings: HTTP settings (loaded from environment when omitted)
        authenticator: Identity resolver (header-based when omitted)
        config: Server configuration used to build the service
    """
    settings = settings or Settings()
    if service is None:
        service = VaultService.from_config(config or ServerConfig.from_env())

    app = FastAPI(
        title="Guardian Sync Server",
        description="Multi-tenant sync backend for encrypted vaults.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.settings = settings
    app.state.authenticator = authenticator or HeaderAuthenticator(settings.tenant_header)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GuardianError, guardian_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(router)

    return app

"""FastAPI application for hookrelay."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hookrelay import __version__
from hookrelay.config import Settings
from hookrelay.exceptions import HookRelayError, PayloadTooLargeError, RateLimitError
from hookrelay.logging import bind_context, clear_context, configure_logging, get_logger
from hookrelay.service import HookRelayService

from .auth import TokenValidator
from .rate_limit import build_rate_limiter
from .router import router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Initializes the HookRelayService on startup and drops pending retries
    and closes storage on shutdown.
    """
    settings: Settings = app.state.settings

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "Starting hookrelay API", log_level=settings.log_level, log_format=settings.log_format
    )

    service: HookRelayService | None = getattr(app.state, "service", None)
    if service is None:
        service = HookRelayService.create(settings)
        app.state.service = service
    await service.initialize()

    yield

    await service.close()
    app.state.service = None
    logger.info("hookrelay API stopped")


def create_app(
    settings: Settings | None = None,
    service: HookRelayService | None = None,
) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.
        service: Optional pre-built service (e.g. with in-memory storage).

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from hookrelay.api import create_app

        app = create_app()
        # Run with: uvicorn hookrelay.api:app --reload
        ```
    """
    if settings is None:
        settings = service.settings if service is not None else Settings()

    app = FastAPI(
        title="hookrelay",
        description="Webhook subscriptions with signed, retried delivery.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = settings
    app.state.service = service
    app.state.token_validator = TokenValidator(settings.effective_auth_secret_key)
    app.state.rate_limiter = build_rate_limiter(settings) if settings.rate_limit_enabled else None

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    @app.middleware("http")
    async def bind_request_context(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Tag every log line of a request with its request ID."""
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        clear_context()
        bind_context(request_id=request_id, path=request.url.path)
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    @app.middleware("http")
    async def limit_request_size(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Reject bodies larger than max_request_bytes with 413."""
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                size = 0
            if size > settings.max_request_bytes:
                exc = PayloadTooLargeError(settings.max_request_bytes)
                logger.warning("Request too large", size=size, path=request.url.path)
                return JSONResponse(status_code=exc.http_status, content=exc.to_dict())
        return await call_next(request)

    @app.exception_handler(HookRelayError)
    async def hookrelay_error_handler(request: Request, exc: HookRelayError) -> JSONResponse:
        """Answer with the status the error class declares."""
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            "Request failed",
            code=exc.code,
            status=exc.http_status,
            error=exc.message,
            path=request.url.path,
        )
        headers = None
        if isinstance(exc, RateLimitError):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()

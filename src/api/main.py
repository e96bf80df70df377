"""FastAPI application for the Infraflow orchestration API.

Provides the application factory with routers, middleware, and
exception handlers configured. The lifespan builds the orchestration
runtime against the HTTP backend unless a coordinator is injected
(tests inject one wired to scripted backends).
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as _pkg_version

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.middleware.auth import maybe_require_api_key, validate_api_key_strength
from src.api.routes import conversations, plans, recoveries
from src.config import InfraflowConfig, load_config
from src.errors import ConflictError, DomainError, NotFoundError, ValidationError
from src.services.backend_client import HttpBackendClient
from src.services.conversation_coordinator import OrchestrationCoordinator
from src.services.runtime import build_coordinator

logger = logging.getLogger(__name__)

_startup_time: float = 0.0


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _package_version() -> str:
    try:
        return _pkg_version("infraflow")
    except PackageNotFoundError:
        return "unknown"


def _make_lifespan(config: InfraflowConfig | None, coordinator: OrchestrationCoordinator | None):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Async lifespan: build the runtime, then shut it down cleanly."""
        global _startup_time

        _startup_time = _time.time()
        validate_api_key_strength()

        if coordinator is not None:
            app.state.coordinator = coordinator
            try:
                yield
            finally:
                await coordinator.shutdown()
            return

        cfg = config or load_config(os.environ.get("INFRAFLOW_CONFIG_PATH"))
        logging.getLogger("src").setLevel(cfg.daemon.log_level.upper())
        async with HttpBackendClient(cfg.backend) as client:
            app.state.coordinator = build_coordinator(cfg, client, client, client)
            logger.info("Backend chat endpoint: %s", cfg.backend.chat_url)
            try:
                yield
            finally:
                await app.state.coordinator.shutdown()
                app.state.coordinator = None

    return lifespan


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Handle domain errors that escaped a route with a consistent format.

    Args:
        request: The incoming request.
        exc: The domain exception.

    Returns:
        JSONResponse with the mapped status code.
    """
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, ConflictError):
        status_code = 409
    elif isinstance(exc, ValidationError):
        status_code = 400
    else:
        status_code = 502
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "message": str(exc),
            "category": getattr(exc, "category", None),
        },
    )


def create_app(
    config: InfraflowConfig | None = None,
    coordinator: OrchestrationCoordinator | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Configuration; loaded from the standard locations when omitted.
        coordinator: Pre-built coordinator. When given, the lifespan uses it
            instead of connecting to the HTTP backend.

    Returns:
        Configured FastAPI app.
    """
    application = FastAPI(
        title="Infraflow API",
        description="Conversational infrastructure orchestration",
        version=_package_version(),
        lifespan=_make_lifespan(config, coordinator),
    )

    # Optional API auth for /api/* when INFRAFLOW_API_KEY is configured.
    application.middleware("http")(maybe_require_api_key)

    # CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
    allowed_origins = _parse_allowed_origins()
    if allowed_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization", "X-API-Key"],
        )

    application.add_exception_handler(DomainError, domain_error_handler)

    application.include_router(conversations.router, prefix="/api")
    application.include_router(plans.router, prefix="/api")
    application.include_router(recoveries.router, prefix="/api")

    @application.get("/health")
    def health_check(request: Request) -> dict:
        """Health check endpoint with runtime status.

        Returns:
            Dictionary with health status and counters.
        """
        uptime = int(_time.time() - _startup_time) if _startup_time else 0
        runtime = getattr(request.app.state, "coordinator", None)
        return {
            "status": "healthy" if runtime is not None else "starting",
            "version": _package_version(),
            "uptime_seconds": uptime,
            "conversations": len(runtime.store) if runtime is not None else 0,
            "events": runtime.notifications.stats() if runtime is not None else {},
        }

    return application


app = create_app()

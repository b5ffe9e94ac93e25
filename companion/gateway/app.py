"""
FastAPI gateway for the companion.

Serves the chat turn endpoint plus the user-scoped conversation, memory and
task endpoints, behind CORS, security headers, rate limiting, request size
limits and bearer-token authentication.
"""

from __future__ import annotations

import os

from fastapi import FastAPI

from companion.agent.orchestrator import TurnOrchestrator
from companion.constants import PROJECT_DISPLAY_NAME, PROJECT_VERSION
from companion.gateway.auth import AuthManager
from companion.gateway.config import CompanionConfig, load_config
from companion.gateway.middleware import (
    AuthenticationMiddleware,
    CORSMiddleware,
    RateLimitMiddleware,
    RequestSizeLimitMiddleware,
    SecurityHeadersMiddleware,
)
from companion.storage.store import Store
from companion.utils.logging import get_logger, setup_logging

logger = get_logger("gateway")


def create_app(
    config: CompanionConfig | None = None,
    orchestrator: TurnOrchestrator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or load_config()

    setup_logging(
        level=config.logging.level,
        json_format=config.logging.format == "json",
    )

    app = FastAPI(
        title=f"{PROJECT_DISPLAY_NAME} API",
        version=PROJECT_VERSION,
        description="AI companion chat service",
        docs_url="/docs" if os.getenv("COMPANION_DEV") else None,
        redoc_url=None,
    )

    auth_manager = AuthManager(token_ttl_seconds=config.auth.token_ttl_seconds)
    app.state.config = config
    app.state.auth_manager = auth_manager
    app.state.orchestrator = orchestrator or TurnOrchestrator(
        config=config, auth_manager=auth_manager
    )

    # Apply middleware (order matters — outermost last)
    _add_middleware(app, config)

    _register_routes(app)

    @app.on_event("startup")
    async def on_startup() -> None:
        # Create the database and schema before the first request
        store = Store(config.database_path)
        store.open()
        store.close()
        logger.info(
            "gateway_started",
            host=config.gateway.host,
            port=config.gateway.port,
            version=PROJECT_VERSION,
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("gateway_stopped")

    return app


def _add_middleware(app: FastAPI, config: CompanionConfig) -> None:
    # Authentication (innermost — runs last on request, first on response)
    app.add_middleware(AuthenticationMiddleware)

    app.add_middleware(
        RequestSizeLimitMiddleware,
        max_size_bytes=config.gateway.max_request_bytes,
    )

    app.add_middleware(
        RateLimitMiddleware,
        max_requests=config.gateway.rate_limit_per_minute,
        window=60,
    )

    app.add_middleware(SecurityHeadersMiddleware)

    # CORS outermost so preflight never reaches auth or rate limiting
    app.add_middleware(CORSMiddleware)


def _register_routes(app: FastAPI) -> None:
    from companion.gateway.health import health_router
    from companion.gateway.router import api_router

    app.include_router(health_router)
    app.include_router(api_router, prefix="/api/v1")

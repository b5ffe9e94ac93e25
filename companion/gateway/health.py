"""Health check endpoints. Only the basic check is public; the detailed one needs a token."""

from __future__ import annotations

from fastapi import APIRouter, Request

from companion.constants import PROJECT_DISPLAY_NAME, PROJECT_VERSION

health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health_check(request: Request) -> dict:
    """Basic health check. No auth required."""
    return {
        "status": "ok",
        "service": PROJECT_DISPLAY_NAME,
        "version": PROJECT_VERSION,
    }


@health_router.get("/health/detailed")
async def detailed_health(request: Request) -> dict:
    """Detailed health check with component status. Requires a token."""
    config = request.app.state.config
    orchestrator = request.app.state.orchestrator

    return {
        "status": "ok",
        "version": PROJECT_VERSION,
        "components": {
            "gateway": "ok",
            "llm_provider": config.llm.provider,
            "llm_model": config.llm.model,
            "persona": config.context.persona_name,
            "tools": orchestrator.registry.names(),
        },
    }

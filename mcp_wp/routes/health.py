import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

router = APIRouter()

logger = logging.getLogger("mcp_wp.health")

HEALTH_RESPONSE = {"ok": True, "status": "ok"}


@router.get("/", include_in_schema=False)
async def root():
    return PlainTextResponse("mcp-wp: MCP gateway for the WordPress REST API. POST JSON-RPC to /mcp\n")


@router.get(
    "/health",
    tags=["Monitoring"],
    summary="Health check endpoint",
    include_in_schema=False,
)
@router.get(
    "/healthz",
    tags=["Monitoring"],
    summary="Kubernetes style health check endpoint",
    include_in_schema=False,
)
async def health_check():
    # Liveness only; the WordPress backend is reported by /ready.
    logger.debug("Health probe received")
    return JSONResponse(content=HEALTH_RESPONSE, status_code=status.HTTP_200_OK)


@router.get(
    "/ready",
    tags=["Monitoring"],
    summary="Readiness check endpoint",
)
async def readiness_check(request: Request):
    """
    Readiness probe.

    Reports whether a WordPress backend is configured and how many MCP
    sessions are live. Returns 503 while no backend is configured.
    """
    content_service = request.app.state.content_service
    dispatcher = request.app.state.dispatcher
    ready = content_service.configured
    body = {
        "ok": ready,
        "status": "ready" if ready else "wordpress_not_configured",
        "sessions": len(dispatcher.sessions),
        "tools": len(dispatcher.registry),
    }
    return JSONResponse(
        content=body,
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
    )

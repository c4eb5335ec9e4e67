from contextlib import asynccontextmanager
import asyncio
import logging
from typing import Optional

from fastapi import FastAPI, Request, status, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .routes.health import router as health_router
from .routes.mcp import router as mcp_router
from .services.content_tools import build_registry
from .services.dispatcher import McpDispatcher
from .services.sessions import SessionManager
from .services.wordpress import WordPressService
from .utils.errors import GatewayError
from .utils.logging_middleware import LoggingMiddleware
from .utils.negotiation import ResponseMode

# Setup module logger once at top
logger = logging.getLogger(__name__)


def _loop_exception_handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    # Stray task failures are logged and the process keeps serving.
    exc = context.get("exception")
    logger.error(
        "Unhandled error in event loop: %s",
        context.get("message", "unknown"),
        exc_info=exc if isinstance(exc, BaseException) else None,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(_loop_exception_handler)

    dispatcher: McpDispatcher = app.state.dispatcher
    content_service: WordPressService = app.state.content_service

    if not content_service.configured:
        logger.warning("WORDPRESS_URL/WORDPRESS_USER/WORDPRESS_PASSWORD not set; content tools will report unavailable")

    dispatcher.sessions.start_sweeper()
    logger.info("MCP gateway ready with %d tools", len(dispatcher.registry))

    yield

    # Clean up resources on shutdown
    await dispatcher.sessions.stop_sweeper()
    await dispatcher.drain()
    dispatcher.sessions.close_all()
    await content_service.close()
    loop.set_exception_handler(previous_handler)


def create_app(
    settings: Optional[Settings] = None,
    content_service: Optional[WordPressService] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    app = FastAPI(
        title="MCP WordPress Gateway",
        lifespan=lifespan,
        redirect_slashes=False  # /mcp/ must not 307 to /mcp
    )

    content_service = content_service or WordPressService.from_settings(settings)
    sessions = SessionManager(
        idle_timeout=settings.mcp_session_idle_timeout,
        sweep_interval=settings.mcp_session_sweep_interval,
    )
    try:
        default_mode = ResponseMode(settings.mcp_default_response_mode.lower())
    except ValueError:
        logger.warning("Unknown MCP_DEFAULT_RESPONSE_MODE %r, using json", settings.mcp_default_response_mode)
        default_mode = ResponseMode.JSON

    # One dispatcher per process; every request shares its session table.
    app.state.settings = settings
    app.state.content_service = content_service
    app.state.dispatcher = McpDispatcher(
        build_registry(content_service),
        sessions,
        bearer_token=settings.mcp_bearer_token,
        default_mode=default_mode,
        sse_heartbeat=settings.mcp_sse_heartbeat,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error("Request validation error: %s", exc.errors())
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.errors()},
        )

    @app.exception_handler(GatewayError)
    async def gateway_exception_handler(request: Request, exc: GatewayError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.to_dict()},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.detail,
                headers=exc.headers,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Global Unhandled Exception on {request.url.path}: {exc}")

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal Server Error",
                "error": {
                    "code": "internal_error",
                    "message": "An unexpected error occurred."
                }
            }
        )

    app.add_middleware(LoggingMiddleware)

    # Only add CORS middleware if origins are configured
    # If empty, assume nginx/reverse proxy handles CORS
    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_credentials="*" not in settings.allowed_origins,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["Mcp-Session-Id"],
        )

    app.include_router(health_router, tags=["Monitoring"])
    app.include_router(mcp_router, tags=["MCP"])

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("mcp_wp.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


# Uvicorn Entry
app = create_app()

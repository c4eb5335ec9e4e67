import logging
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp

from .negotiation import extract_session_id

logger = logging.getLogger("mcp_wp.access")

class LoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id
        start_time = time.time()

        response = await call_next(request)
        response.headers.setdefault("X-Correlation-ID", correlation_id)

        # Only the id prefix is logged.
        session_id = extract_session_id(response.headers) or extract_session_id(request.headers)
        session_tag = session_id[:8] if session_id else "-"

        process_time = (time.time() - start_time) * 1000
        logger.info(
            f"Request: {request.method} {request.url.path} | "
            f"Status: {response.status_code} | "
            f"Latency: {process_time:.2f}ms | "
            f"Session: {session_tag} | "
            f"Correlation-ID: {correlation_id}",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_ms": f"{process_time:.2f}",
                "session": session_tag,
            }
        )
        return response

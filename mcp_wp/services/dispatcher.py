"""
MCP Dispatcher - Streamable HTTP request pipeline

One instance per process handles every request to the MCP endpoint:

1. read the session id (either header spelling)
2. negotiate the response mode (JSON body or event stream)
3. check the optional bearer token
4. parse and validate the JSON-RPC envelope
5. resolve or create the session
6. dispatch each message (initialize, ping, tools/list, tools/call, ...)
7. write the responses in the negotiated mode, tagged with the session id

Errors are caught here exactly once and turned into well-formed responses.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import ValidationError

from .. import __version__
from ..schemas.jsonrpc import JsonRpcMessage, ToolCallParams, error_envelope, parse_messages, result_envelope
from ..utils.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    TOOL_ERRORS,
    GatewayError,
    InvalidArgumentError,
    InvalidRequestError,
    NotAcceptableError,
    ParseError,
    UnauthorizedError,
    UnknownSessionError,
    sanitize_error_message,
)
from ..utils.mcp_auth import WWW_AUTHENTICATE, require_mcp_auth
from ..utils.negotiation import ResponseMode, extract_session_id, negotiate_response_mode, session_headers
from .sessions import Session, SessionManager
from .tool_registry import ToolInvocation, ToolRegistry

logger = logging.getLogger("mcp_wp.mcp")

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")
LATEST_PROTOCOL_VERSION = SUPPORTED_PROTOCOL_VERSIONS[0]

SERVER_INFO = {"name": "mcp-wp", "version": __version__}

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def sse_event(payload: Dict[str, Any]) -> str:
    return f"event: message\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


def tool_result(result: Any) -> Dict[str, Any]:
    if isinstance(result, str):
        return {"content": [{"type": "text", "text": result}], "isError": False}
    return {
        "content": [{"type": "text", "text": json.dumps(result, ensure_ascii=False, default=str)}],
        "structuredContent": result,
        "isError": False,
    }


def tool_error_result(exc: GatewayError) -> Dict[str, Any]:
    error = exc.to_dict()
    return {
        "content": [{"type": "text", "text": f"Error: {error['message']}"}],
        "structuredContent": {"error": error},
        "isError": True,
    }


class McpDispatcher:
    def __init__(
        self,
        registry: ToolRegistry,
        sessions: SessionManager,
        *,
        bearer_token: Optional[str] = None,
        default_mode: ResponseMode = ResponseMode.JSON,
        sse_heartbeat: float = 15.0,
    ) -> None:
        self.registry = registry
        self.sessions = sessions
        self.bearer_token = bearer_token
        self.default_mode = default_mode
        self.sse_heartbeat = sse_heartbeat
        self._pending: Set[asyncio.Task] = set()
        self._methods: Dict[str, Callable[[Dict[str, Any], Session], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "prompts/list": self._empty("prompts"),
            "resources/list": self._empty("resources"),
            "resources/templates/list": self._empty("resourceTemplates"),
        }

    # ------------------------------------------------------------------
    # HTTP entry points
    # ------------------------------------------------------------------

    async def handle_post(self, request: Request) -> Response:
        session_id = extract_session_id(request.headers)
        mode: Optional[ResponseMode] = None
        try:
            mode = negotiate_response_mode(request.headers.get("accept"), self.default_mode)
            require_mcp_auth(request, self.bearer_token)
            messages, is_batch = parse_messages(await self._read_json(request))
            session, _ = self.sessions.resolve_or_create(session_id)
        except GatewayError as exc:
            return self.error_response(exc, session_id, mode)

        session_id = session.session_id
        self.sessions.activate(session_id)
        headers = session_headers(session_id)

        if not any(message.is_request for message in messages):
            for message in messages:
                await self._run_detached(self.process_message(message, session))
            return Response(status_code=status.HTTP_202_ACCEPTED, headers=headers)

        if mode == ResponseMode.SSE:
            return StreamingResponse(
                self._event_stream(messages, session),
                media_type=mode.media_type,
                headers={**SSE_HEADERS, **headers},
            )

        responses: List[Dict[str, Any]] = []
        for message in messages:
            response = await self._run_detached(self.process_message(message, session))
            if response is not None:
                responses.append(response)
        if not responses:
            return Response(status_code=status.HTTP_202_ACCEPTED, headers=headers)
        return JSONResponse(content=responses if is_batch else responses[0], headers=headers)

    async def handle_get(self, request: Request) -> Response:
        """Open the server-to-client event stream for an existing session."""
        session_id = extract_session_id(request.headers)
        try:
            if negotiate_response_mode(request.headers.get("accept"), ResponseMode.SSE) != ResponseMode.SSE:
                raise NotAcceptableError(request.headers.get("accept", ""))
            require_mcp_auth(request, self.bearer_token)
            if not session_id:
                raise InvalidRequestError("Missing Mcp-Session-Id header")
            session, _ = self.sessions.resolve_or_create(session_id)
        except GatewayError as exc:
            return self.error_response(exc, session_id, None)

        return StreamingResponse(
            self._heartbeat_stream(request, session.session_id),
            media_type=ResponseMode.SSE.media_type,
            headers={**SSE_HEADERS, **session_headers(session.session_id)},
        )

    async def handle_delete(self, request: Request) -> Response:
        """Explicitly terminate a session."""
        session_id = extract_session_id(request.headers)
        try:
            require_mcp_auth(request, self.bearer_token)
            if not session_id:
                raise InvalidRequestError("Missing Mcp-Session-Id header")
            if not self.sessions.close(session_id):
                raise UnknownSessionError(session_id)
        except GatewayError as exc:
            return self.error_response(exc, session_id, None)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @staticmethod
    async def _read_json(request: Request) -> Any:
        body = await request.body()
        if not body.strip():
            raise ParseError("Parse error: empty body")
        try:
            return json.loads(body)
        except ValueError as exc:
            raise ParseError("Parse error: body is not valid JSON") from exc

    def error_response(self, exc: GatewayError, session_id: Optional[str], mode: Optional[ResponseMode]) -> Response:
        logger.info("MCP request rejected: %s (%s)", exc.code, exc.message)
        headers: Dict[str, str] = {}
        if session_id and not isinstance(exc, UnknownSessionError):
            headers.update(session_headers(session_id))
        if isinstance(exc, UnauthorizedError):
            headers["WWW-Authenticate"] = WWW_AUTHENTICATE
        envelope = error_envelope(None, exc.rpc_code, sanitize_error_message(exc.message), exc.to_dict())
        if mode == ResponseMode.SSE:
            return Response(
                content=sse_event(envelope),
                status_code=exc.status_code,
                media_type=ResponseMode.SSE.media_type,
                headers=headers,
            )
        return JSONResponse(content=envelope, status_code=exc.status_code, headers=headers)

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def process_message(self, message: JsonRpcMessage, session: Session) -> Optional[Dict[str, Any]]:
        """Handle one JSON-RPC message; never raises."""
        if message.method is None:
            # Client replies to server-initiated requests; nothing to do.
            return None

        method = message.method
        start_time = time.time()
        try:
            if method.startswith("notifications/"):
                logger.debug("MCP notification %s session=%s", method, session.session_id[:8])
                return None
            handler = self._methods.get(method)
            if handler is None:
                return self._reply_error(message, METHOD_NOT_FOUND, f"Method '{method}' not found")
            if isinstance(message.params, list):
                return self._reply_error(message, INVALID_PARAMS, "Invalid params: by-position params are not supported")
            result = await handler(message.params or {}, session)
        except GatewayError as exc:
            return self._reply_error(message, exc.rpc_code, sanitize_error_message(exc.message), exc.to_dict())
        except Exception:
            logger.exception("Unhandled error in MCP method %s", method)
            return self._reply_error(message, INTERNAL_ERROR, "Internal error")

        latency_ms = (time.time() - start_time) * 1000
        logger.info("MCP %s session=%s latency=%.1fms", method, session.session_id[:8], latency_ms)
        if not message.is_request:
            return None
        return result_envelope(message.id, result)

    def _reply_error(self, message: JsonRpcMessage, code: int, text: str, data: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        if not message.is_request:
            return None
        return error_envelope(message.id, code, text, data)

    async def _initialize(self, params: Dict[str, Any], session: Session) -> Dict[str, Any]:
        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        client_info = params.get("clientInfo")
        self.sessions.activate(session.session_id, client_info if isinstance(client_info, dict) else None)
        return {
            "protocolVersion": version,
            "serverInfo": SERVER_INFO,
            "capabilities": {
                "tools": {"listChanged": False},
                "prompts": {"listChanged": False},
                "resources": {"listChanged": False},
            },
        }

    async def _ping(self, params: Dict[str, Any], session: Session) -> Dict[str, Any]:
        return {}

    async def _tools_list(self, params: Dict[str, Any], session: Session) -> Dict[str, Any]:
        return {"tools": [descriptor.to_mcp() for descriptor in self.registry.descriptors()]}

    async def _tools_call(self, params: Dict[str, Any], session: Session) -> Dict[str, Any]:
        try:
            call = ToolCallParams.model_validate(params)
        except ValidationError as exc:
            raise InvalidArgumentError("arguments", "must be an object") from exc

        tool = self.registry.resolve(call.tool_name)
        name = tool.descriptor.name
        try:
            invocation = ToolInvocation(
                tool=name,
                arguments=self.registry.validate(name, call.arguments),
                session_id=session.session_id,
            )
            result = await tool.handler(invocation.arguments)
        except TOOL_ERRORS as exc:
            logger.info("Tool %s failed: %s", name, exc.message)
            return tool_error_result(exc)
        return tool_result(result)

    @staticmethod
    def _empty(key: str) -> Callable[[Dict[str, Any], Session], Awaitable[Dict[str, Any]]]:
        async def handler(params: Dict[str, Any], session: Session) -> Dict[str, Any]:
            return {key: []}
        return handler

    # ------------------------------------------------------------------
    # Streaming helpers
    # ------------------------------------------------------------------

    async def _event_stream(self, messages: List[JsonRpcMessage], session: Session) -> AsyncIterator[str]:
        for message in messages:
            response = await self._run_detached(self.process_message(message, session))
            if response is not None:
                yield sse_event(response)

    async def _heartbeat_stream(self, request: Request, session_id: str) -> AsyncIterator[str]:
        yield ": connected\n\n"
        while session_id in self.sessions:
            await asyncio.sleep(self.sse_heartbeat)
            if await request.is_disconnected():
                break
            yield ": heartbeat\n\n"

    async def _run_detached(self, coro: Awaitable[Any]) -> Any:
        # A client disconnect cancels the waiter only; the remote call keeps
        # running to completion and its result is dropped.
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return await asyncio.shield(task)

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Detached MCP task failed", exc_info=exc)

    async def drain(self) -> None:
        """Wait for in-flight detached calls (used at shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

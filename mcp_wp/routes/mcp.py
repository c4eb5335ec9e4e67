"""
MCP Streamable HTTP endpoint

Endpoints:
- POST /mcp    - JSON-RPC messages (single or batch), answered as JSON or SSE
- GET /mcp     - server-to-client event stream for an existing session
- DELETE /mcp  - terminate a session
- OPTIONS /mcp - CORS preflight

Any other method on /mcp is answered with 405 by the router.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response, status

from ..services.dispatcher import McpDispatcher

router = APIRouter(tags=["MCP"])

MCP_PATH = "/mcp"


def get_dispatcher(request: Request) -> McpDispatcher:
    return request.app.state.dispatcher


@router.options(MCP_PATH, include_in_schema=False)
async def mcp_preflight() -> Response:
    return Response(
        status_code=status.HTTP_204_NO_CONTENT,
        headers={
            "Allow": "GET, POST, DELETE, OPTIONS",
            "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Accept, Authorization, Mcp-Session-Id",
            "Access-Control-Expose-Headers": "Mcp-Session-Id",
        },
    )


@router.post(MCP_PATH, summary="MCP JSON-RPC endpoint")
async def mcp_post(request: Request) -> Response:
    return await get_dispatcher(request).handle_post(request)


@router.get(MCP_PATH, summary="MCP server-to-client event stream")
async def mcp_stream(request: Request) -> Response:
    return await get_dispatcher(request).handle_get(request)


@router.delete(MCP_PATH, summary="Terminate an MCP session")
async def mcp_delete(request: Request) -> Response:
    return await get_dispatcher(request).handle_delete(request)

"""MCP tools backed by the WordPress content adapter."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..schemas.tools import (
    CreateContentArguments,
    DeleteContentArguments,
    GetContentArguments,
    ListContentArguments,
    PingArguments,
    UpdateContentArguments,
)
from .tool_registry import ToolDescriptor, ToolRegistry
from .wordpress import WordPressService

PING = ToolDescriptor(
    name="ping",
    title="Ping",
    description="Health check tool",
    arguments=PingArguments,
)

LIST_CONTENT = ToolDescriptor(
    name="list_content",
    title="List content",
    description="List posts or pages with paging, optional search and status filter",
    arguments=ListContentArguments,
)

GET_CONTENT = ToolDescriptor(
    name="get_content",
    title="Get content",
    description="Fetch a single post or page by id",
    arguments=GetContentArguments,
)

CREATE_CONTENT = ToolDescriptor(
    name="create_content",
    title="Create content",
    description="Create a post or page (drafts by default)",
    arguments=CreateContentArguments,
)

UPDATE_CONTENT = ToolDescriptor(
    name="update_content",
    title="Update content",
    description="Update title, content, status or slug of a post or page; at least one field is required",
    arguments=UpdateContentArguments,
)

DELETE_CONTENT = ToolDescriptor(
    name="delete_content",
    title="Delete content",
    description="Delete a post or page; force=false moves it to the trash instead",
    arguments=DeleteContentArguments,
)


async def ping(args: Dict[str, Any]) -> str:
    msg: Optional[str] = args.get("msg")
    return f"pong: {msg}" if msg else "pong"


def build_registry(content: WordPressService) -> ToolRegistry:
    """Register the ping tool and the content CRUD tools, then freeze."""

    async def list_content(args: Dict[str, Any]) -> Dict[str, Any]:
        page = await content.list(
            args["type"],
            page=args["page"],
            per_page=args["per_page"],
            search=args.get("search"),
            status=args.get("status"),
        )
        return page.model_dump()

    async def get_content(args: Dict[str, Any]) -> Dict[str, Any]:
        entity = await content.get(args["type"], args["id"])
        return entity.model_dump()

    async def create_content(args: Dict[str, Any]) -> Dict[str, Any]:
        fields = {key: args.get(key) for key in ("title", "content", "status", "slug")}
        entity = await content.create(args["type"], fields)
        return entity.model_dump()

    async def update_content(args: Dict[str, Any]) -> Dict[str, Any]:
        patch = {key: args[key] for key in ("title", "content", "status", "slug") if key in args}
        entity = await content.update(args["type"], args["id"], patch)
        return entity.model_dump()

    async def delete_content(args: Dict[str, Any]) -> Dict[str, Any]:
        result = await content.delete(args["type"], args["id"], force=args["force"])
        return result.model_dump()

    registry = ToolRegistry()
    registry.register(PING, ping)
    registry.register(LIST_CONTENT, list_content)
    registry.register(GET_CONTENT, get_content)
    registry.register(CREATE_CONTENT, create_content)
    registry.register(UPDATE_CONTENT, update_content)
    registry.register(DELETE_CONTENT, delete_content)
    return registry.freeze()

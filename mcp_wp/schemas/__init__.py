"""Pydantic schema exports."""

from .content import ContentEntity, ContentPage, DeleteResult
from .jsonrpc import JsonRpcMessage, ToolCallParams
from .tools import ToolArguments

__all__ = [
    "ContentEntity",
    "ContentPage",
    "DeleteResult",
    "JsonRpcMessage",
    "ToolArguments",
    "ToolCallParams",
]

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..utils.errors import InvalidRequestError

JSONRPC_VERSION = "2.0"

RequestId = Union[str, int]


class JsonRpcMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"]
    method: Optional[str] = None
    params: Optional[Union[Dict[str, Any], List[Any]]] = None
    id: Optional[RequestId] = None
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def is_request(self) -> bool:
        return self.method is not None and "id" in self.model_fields_set and self.id is not None

    @property
    def is_notification(self) -> bool:
        return self.method is not None and not self.is_request


class ToolCallParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    tool: Optional[str] = None
    arguments: Dict[str, Any] = Field(default_factory=dict)

    @property
    def tool_name(self) -> Optional[str]:
        return self.name or self.tool


def parse_messages(body: Any) -> Tuple[List[JsonRpcMessage], bool]:
    """Validate a JSON-RPC body; returns ``(messages, is_batch)``."""
    is_batch = isinstance(body, list)
    items = body if is_batch else [body]
    if not items:
        raise InvalidRequestError("Empty batch")
    messages = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidRequestError("Invalid Request")
        try:
            messages.append(JsonRpcMessage.model_validate(item))
        except ValidationError as exc:
            raise InvalidRequestError(f"Invalid Request: {exc.errors()[0].get('msg', 'malformed envelope')}") from exc
    return messages, is_batch


def result_envelope(req_id: Optional[RequestId], result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "result": result, "id": req_id}


def error_envelope(req_id: Optional[RequestId], code: int, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "error": error, "id": req_id}

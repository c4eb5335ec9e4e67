"""
Tool Registry

Maps tool names to a descriptor (title, description, argument model) and an
async handler. Tools are registered once at startup; after ``freeze()`` the
registry is read-only, so lookups need no locking.

Arguments are validated with the descriptor's pydantic model and the first
validation error is reported as an InvalidArgumentError naming the field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from ..schemas.tools import ToolArguments
from ..utils.errors import DuplicateNameError, InvalidArgumentError, UnknownToolError

logger = logging.getLogger("mcp_wp.tools")

ToolHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


def _first_error(exc: ValidationError) -> InvalidArgumentError:
    error = exc.errors()[0]
    loc = error.get("loc") or ("arguments",)
    if error.get("type") == "missing":
        return InvalidArgumentError(str(loc[0]), "is required")
    return InvalidArgumentError(str(loc[0]), error.get("msg", "is invalid"))


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    title: str
    description: str
    arguments: Type[BaseModel] = ToolArguments

    def input_schema(self) -> Dict[str, Any]:
        schema = self.arguments.model_json_schema()
        schema.setdefault("properties", {})
        return schema

    def to_mcp(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }


@dataclass(frozen=True)
class RegisteredTool:
    descriptor: ToolDescriptor
    handler: ToolHandler


@dataclass(frozen=True)
class ToolInvocation:
    tool: str
    arguments: Dict[str, Any]
    session_id: str


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: Dict[str, RegisteredTool] = {}
        self._frozen = False

    def register(self, descriptor: ToolDescriptor, handler: ToolHandler) -> None:
        if self._frozen:
            raise RuntimeError("Tool registry is frozen; register tools at startup")
        if descriptor.name in self._tools:
            raise DuplicateNameError(descriptor.name)
        self._tools[descriptor.name] = RegisteredTool(descriptor, handler)
        logger.debug("Registered tool %s", descriptor.name)

    def freeze(self) -> "ToolRegistry":
        self._frozen = True
        return self

    def resolve(self, name: Optional[str]) -> RegisteredTool:
        tool = self._tools.get(name) if isinstance(name, str) else None
        if tool is None:
            raise UnknownToolError(name)
        return tool

    def validate(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """Validate ``args`` against the tool's argument model and apply defaults.

        Raises InvalidArgumentError on the first violation. A ``None`` value
        counts as absent; arguments the model does not declare are dropped.
        """
        model = self.resolve(name).descriptor.arguments
        supplied = {key: value for key, value in args.items() if value is not None}
        try:
            parsed = model.model_validate(supplied)
        except ValidationError as exc:
            raise _first_error(exc) from exc

        unknown = set(supplied) - set(model.model_fields)
        if unknown:
            logger.debug("Dropping undeclared arguments for %s: %s", name, sorted(unknown))
        return parsed.model_dump(exclude_none=True)

    def descriptors(self) -> List[ToolDescriptor]:
        return [tool.descriptor for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

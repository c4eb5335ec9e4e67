"""
Tool argument models.

Each MCP tool declares its arguments as a pydantic model; the registry
validates incoming ``arguments`` with it and publishes its JSON schema as
the tool's ``inputSchema``. Undeclared arguments are ignored.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictBool, StrictInt, StrictStr, StringConstraints

from .content import MAX_PER_PAGE

ContentKind = Literal["post", "page"]
ContentStatus = Literal["publish", "future", "draft", "pending", "private"]
StatusFilter = Literal["publish", "future", "draft", "pending", "private", "any"]


def _no_bool(value: Any) -> Any:
    # bool is an int subclass; reject it before lax int parsing accepts it.
    if isinstance(value, bool):
        raise ValueError("expected an integer")
    return value


Integer = Annotated[int, BeforeValidator(_no_bool)]

ContentId = Annotated[
    Union[StrictInt, Annotated[str, StringConstraints(strict=True, pattern=r"^\s*[0-9]+\s*$")]],
    Field(description="Numeric id of the post or page"),
]


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PingArguments(ToolArguments):
    msg: Optional[StrictStr] = Field(None, description="Optional text echoed back")


class ListContentArguments(ToolArguments):
    type: ContentKind = Field(description="Content type")
    page: Integer = Field(1, ge=1, description="Page number")
    per_page: Integer = Field(10, ge=1, le=MAX_PER_PAGE, description="Items per page")
    search: Optional[StrictStr] = Field(None, description="Full-text search term")
    status: Optional[StatusFilter] = Field(None, description="Status filter")


class GetContentArguments(ToolArguments):
    type: ContentKind = Field(description="Content type")
    id: ContentId


class CreateContentArguments(ToolArguments):
    type: ContentKind = Field(description="Content type")
    title: StrictStr = Field(description="Title")
    content: StrictStr = Field(description="Body (HTML allowed)")
    status: ContentStatus = Field("draft", description="Publication status")
    slug: Optional[StrictStr] = Field(None, description="URL slug")


class UpdateContentArguments(ToolArguments):
    type: ContentKind = Field(description="Content type")
    id: ContentId
    title: Optional[StrictStr] = Field(None, description="New title")
    content: Optional[StrictStr] = Field(None, description="New body")
    status: Optional[ContentStatus] = Field(None, description="Publication status")
    slug: Optional[StrictStr] = Field(None, description="New slug")


class DeleteContentArguments(ToolArguments):
    type: ContentKind = Field(description="Content type")
    id: ContentId
    force: StrictBool = Field(True, description="Bypass the trash")

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

CONTENT_KINDS = ("post", "page")
PATCH_FIELDS = ("title", "content", "status", "slug")
MAX_PER_PAGE = 100


def _rendered(value: Any) -> Optional[str]:
    # WordPress wraps title/content/excerpt as {"rendered": "...", "raw": "..."}
    if isinstance(value, dict):
        value = value.get("rendered", value.get("raw"))
    if value is None:
        return None
    return str(value)


class ContentEntity(BaseModel):
    id: int
    type: Optional[str] = None
    title: Optional[str] = None
    slug: Optional[str] = None
    status: Optional[str] = None
    link: Optional[str] = None
    date: Optional[str] = None
    modified: Optional[str] = None
    content: Optional[str] = None
    excerpt: Optional[str] = None

    @classmethod
    def from_wordpress(cls, data: Dict[str, Any]) -> "ContentEntity":
        return cls(
            id=data["id"],
            type=data.get("type"),
            title=_rendered(data.get("title")),
            slug=data.get("slug"),
            status=data.get("status"),
            link=data.get("link"),
            date=data.get("date"),
            modified=data.get("modified"),
            content=_rendered(data.get("content")),
            excerpt=_rendered(data.get("excerpt")),
        )


class ContentPage(BaseModel):
    items: List[ContentEntity] = Field(default_factory=list)
    total: int = 0
    total_pages: int = 0
    page: int = 1
    per_page: int = 10


class DeleteResult(BaseModel):
    id: int
    deleted: bool
    trashed: bool = False
    previous: Optional[ContentEntity] = None

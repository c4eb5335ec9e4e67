from __future__ import annotations

import base64
import logging
import re
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..schemas.content import CONTENT_KINDS, MAX_PER_PAGE, PATCH_FIELDS, ContentEntity, ContentPage, DeleteResult
from ..utils.errors import ContentUnavailableError, EmptyUpdateError, InvalidArgumentError, RemoteAPIError
from ..utils.http import extract_http_error
from ..utils.http_client import HttpClient

logger = logging.getLogger("mcp_wp.wordpress")

COLLECTIONS = {"post": "posts", "page": "pages"}
_DIGITS = re.compile(r"[0-9]+")

T = TypeVar("T")


def coerce_id(value: Any, param: str = "id") -> int:
    """Coerce an int or numeric string to a strict positive int."""
    if isinstance(value, bool):
        raise InvalidArgumentError(param, "must be a numeric identifier")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and _DIGITS.fullmatch(value.strip()):
        number = int(value.strip())
    else:
        raise InvalidArgumentError(param, "must be a numeric identifier")
    if number < 1:
        raise InvalidArgumentError(param, "must be a positive integer")
    return number


def _collection(kind: str) -> str:
    try:
        return COLLECTIONS[kind]
    except KeyError:
        raise InvalidArgumentError("type", f"must be one of {', '.join(CONTENT_KINDS)}") from None


def _header_int(response: httpx.Response, name: str, fallback: int) -> int:
    value = response.headers.get(name)
    try:
        return int(value) if value is not None else fallback
    except ValueError:
        return fallback


def _entities(data: Any) -> List[ContentEntity]:
    if not isinstance(data, list):
        raise TypeError(f"expected a JSON array, got {type(data).__name__}")
    return [ContentEntity.from_wordpress(item) for item in data]


def _parse(response: httpx.Response, build: Callable[[Any], T]) -> T:
    """Decode a 2xx body and normalize it; malformed bodies become RemoteAPIError."""
    try:
        return build(response.json())
    except (ValueError, KeyError, TypeError, AttributeError, ValidationError) as exc:
        logger.warning(
            "WordPress %s %s returned an unexpected body: %s",
            response.request.method, response.request.url.path, exc,
        )
        raise RemoteAPIError(
            response.status_code,
            "WordPress returned an unexpected response",
            remote_code="invalid_response",
        ) from exc


class WordPressService:
    """Content adapter for the WordPress REST API.

    Every public operation issues exactly one basic-auth request and keeps no
    state between calls apart from the pooled HTTP client.
    """

    def __init__(
        self,
        base_url: Optional[str],
        username: Optional[str],
        password: Optional[str],
        *,
        api_path: str = "/wp-json/wp/v2",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client: Optional[HttpClient] = None
        self._wordpress_url = base_url
        self._api_path = api_path
        self._username = username
        self._password = password
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "WordPressService":
        return cls(
            str(settings.wordpress_url) if settings.wordpress_url else None,
            settings.wordpress_user,
            settings.wordpress_password,
            api_path=settings.wordpress_api_path,
            timeout=settings.request_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self._wordpress_url and self._username and self._password)

    def _ensure_client(self) -> HttpClient:
        if self._client:
            return self._client

        if not self.configured:
            raise ContentUnavailableError("WordPress credentials/url are not configured")

        base_url = str(self._wordpress_url).rstrip("/") + "/" + self._api_path.strip("/")
        self._client = HttpClient(
            base_url=base_url,
            timeout=self._timeout,
            headers=self._get_auth_headers(),
            transport=self._transport,
        )
        return self._client

    def _get_auth_headers(self) -> Dict[str, str]:
        credentials = f"{self._username}:{self._password}"
        encoded_credentials = base64.b64encode(credentials.encode()).decode("ascii")
        return {"Authorization": f"Basic {encoded_credentials}"}

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None

    async def _call(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = self._ensure_client()
        try:
            send = getattr(client, method.lower())
            return await send(path, **kwargs)
        except httpx.HTTPStatusError as exc:
            message, code = extract_http_error(exc.response, default_message="WordPress request failed")
            logger.warning(
                "WordPress %s %s failed: status=%s code=%s",
                method, path, exc.response.status_code, code,
            )
            raise RemoteAPIError(
                exc.response.status_code,
                f"WordPress API error ({exc.response.status_code}): {message}",
                remote_code=code,
            ) from exc
        except httpx.RequestError as exc:
            logger.warning("WordPress %s %s unreachable: %s", method, path, exc)
            raise RemoteAPIError(
                502,
                "WordPress API is unreachable",
                remote_code="remote_unreachable",
            ) from exc

    async def list(
        self,
        kind: str,
        page: int = 1,
        per_page: int = 10,
        search: Optional[str] = None,
        status: Optional[str] = None,
    ) -> ContentPage:
        collection = _collection(kind)
        if page < 1:
            raise InvalidArgumentError("page", "must be >= 1")
        if not 1 <= per_page <= MAX_PER_PAGE:
            raise InvalidArgumentError("per_page", f"must be between 1 and {MAX_PER_PAGE}")

        params: Dict[str, Any] = {"page": page, "per_page": per_page}
        if search:
            params["search"] = search
        if status:
            params["status"] = status

        response = await self._call("GET", f"/{collection}", params=params)
        items = _parse(response, _entities)
        return ContentPage(
            items=items,
            total=_header_int(response, "X-WP-Total", len(items)),
            total_pages=_header_int(response, "X-WP-TotalPages", 1 if items else 0),
            page=page,
            per_page=per_page,
        )

    async def get(self, kind: str, content_id: Any) -> ContentEntity:
        collection = _collection(kind)
        number = coerce_id(content_id)
        response = await self._call("GET", f"/{collection}/{number}", params={"context": "edit"})
        return _parse(response, ContentEntity.from_wordpress)

    async def create(self, kind: str, fields: Dict[str, Any]) -> ContentEntity:
        collection = _collection(kind)
        data = {key: value for key, value in fields.items() if key in PATCH_FIELDS and value is not None}
        response = await self._call("POST", f"/{collection}", json=data)
        return _parse(response, ContentEntity.from_wordpress)

    async def update(self, kind: str, content_id: Any, patch: Dict[str, Any]) -> ContentEntity:
        collection = _collection(kind)
        data = {key: value for key, value in patch.items() if key in PATCH_FIELDS and value is not None}
        if not data:
            raise EmptyUpdateError()
        number = coerce_id(content_id)
        response = await self._call("POST", f"/{collection}/{number}", json=data)
        return _parse(response, ContentEntity.from_wordpress)

    async def delete(self, kind: str, content_id: Any, force: bool = True) -> DeleteResult:
        collection = _collection(kind)
        number = coerce_id(content_id)
        response = await self._call(
            "DELETE",
            f"/{collection}/{number}",
            params={"force": "true" if force else "false"},
        )

        def build(data: Dict[str, Any]) -> DeleteResult:
            if force:
                previous = data.get("previous")
                return DeleteResult(
                    id=number,
                    deleted=bool(data.get("deleted")),
                    previous=ContentEntity.from_wordpress(previous) if previous else None,
                )
            # Without force WordPress moves the entity to the trash and returns it.
            return DeleteResult(id=number, deleted=False, trashed=True, previous=ContentEntity.from_wordpress(data))

        return _parse(response, build)

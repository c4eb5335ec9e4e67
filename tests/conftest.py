"""
Test configuration and fixtures for the MCP WordPress gateway tests.

This file provides shared fixtures, a fake WordPress backend served through
``httpx.MockTransport`` and a controllable clock for session expiry tests.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from mcp_wp.config import Settings
from mcp_wp.main import create_app
from mcp_wp.services.wordpress import WordPressService

WP_URL = "https://blog.example.com"
WP_USER = "editor"
WP_PASSWORD = "app-pass 1234"

_ITEM_PATH = re.compile(r"^/wp-json/wp/v2/(posts|pages)(?:/(\d+))?$")


class FakeClock:
    """Monotonic clock the tests move forward by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWordPress:
    """In-memory stand-in for the WordPress REST API.

    Records every request in ``calls``. Set ``fail_with`` to a
    ``(status, body)`` tuple to answer every request with it; a ``str`` body
    is sent as plain text.
    """

    def __init__(self):
        self.calls: List[httpx.Request] = []
        self.fail_with: Optional[tuple] = None
        self.raise_error: Optional[Exception] = None
        self.items: Dict[int, Dict[str, Any]] = {}
        self._next_id = 1
        self.seed("post", "Hello world", "<p>Welcome</p>", status="publish")

    def seed(self, kind: str, title: str, content: str, status: str = "draft") -> Dict[str, Any]:
        item_id = self._next_id
        self._next_id += 1
        item = {
            "id": item_id,
            "type": kind,
            "title": {"rendered": title},
            "content": {"rendered": content},
            "excerpt": {"rendered": ""},
            "slug": title.lower().replace(" ", "-"),
            "status": status,
            "link": f"{WP_URL}/?p={item_id}",
            "date": "2025-01-02T12:00:00",
            "modified": "2025-01-02T12:00:00",
        }
        self.items[item_id] = item
        return item

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail_with is not None:
            status, body = self.fail_with
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)

        match = _ITEM_PATH.match(request.url.path)
        if not match:
            return self._error(404, "rest_no_route", "No route was found matching the URL and request method.")
        kind = "post" if match.group(1) == "posts" else "page"
        item_id = int(match.group(2)) if match.group(2) else None

        if item_id is None:
            if request.method == "GET":
                return self._list(kind, request)
            if request.method == "POST":
                data = json.loads(request.content)
                item = self.seed(kind, data.get("title", ""), data.get("content", ""), data.get("status", "draft"))
                if data.get("slug"):
                    item["slug"] = data["slug"]
                return httpx.Response(201, json=item)
            return self._error(405, "rest_no_route", "Method not allowed")

        item = self.items.get(item_id)
        if item is None or item["type"] != kind:
            return self._error(404, f"rest_{kind}_invalid_id", f"Invalid {kind} ID.")
        if request.method == "GET":
            return httpx.Response(200, json=item)
        if request.method == "POST":
            data = json.loads(request.content)
            for key, value in data.items():
                item[key] = {"rendered": value} if key in ("title", "content") else value
            return httpx.Response(200, json=item)
        if request.method == "DELETE":
            if request.url.params.get("force") == "true":
                del self.items[item_id]
                return httpx.Response(200, json={"deleted": True, "previous": item})
            item["status"] = "trash"
            return httpx.Response(200, json=item)
        return self._error(405, "rest_no_route", "Method not allowed")

    def _list(self, kind: str, request: httpx.Request) -> httpx.Response:
        items = [item for item in self.items.values() if item["type"] == kind]
        status = request.url.params.get("status")
        if status and status != "any":
            items = [item for item in items if item["status"] == status]
        search = request.url.params.get("search")
        if search:
            items = [item for item in items if search.lower() in item["title"]["rendered"].lower()]
        page = int(request.url.params.get("page", "1"))
        per_page = int(request.url.params.get("per_page", "10"))
        total = len(items)
        total_pages = (total + per_page - 1) // per_page
        chunk = items[(page - 1) * per_page: page * per_page]
        return httpx.Response(
            200,
            json=chunk,
            headers={"X-WP-Total": str(total), "X-WP-TotalPages": str(total_pages)},
        )

    @staticmethod
    def _error(status: int, code: str, message: str) -> httpx.Response:
        return httpx.Response(status, json={"code": code, "message": message, "data": {"status": status}})


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def wordpress():
    """Fake WordPress backend."""
    return FakeWordPress()


@pytest.fixture
def content_service(wordpress):
    """WordPressService wired to the fake backend."""
    return WordPressService(
        WP_URL,
        WP_USER,
        WP_PASSWORD,
        timeout=5.0,
        transport=httpx.MockTransport(wordpress),
    )


@pytest.fixture
def test_settings():
    """Override settings for testing."""
    mock_settings = Settings()
    mock_settings.wordpress_url = WP_URL
    mock_settings.wordpress_user = WP_USER
    mock_settings.wordpress_password = WP_PASSWORD
    mock_settings.request_timeout = 5.0  # Short timeout for tests
    mock_settings.mcp_bearer_token = None
    mock_settings.mcp_default_response_mode = "json"
    mock_settings.mcp_session_idle_timeout = 1800.0
    mock_settings.mcp_session_sweep_interval = 3600.0
    mock_settings.mcp_sse_heartbeat = 0.01
    mock_settings.cors_allowed_origins = "*"
    mock_settings.log_level = "INFO"

    yield mock_settings


@pytest.fixture(autouse=True)
def patch_settings(test_settings, monkeypatch):
    """Automatically patch settings for all tests."""
    import mcp_wp.main

    monkeypatch.setattr(mcp_wp.main, "get_settings", lambda: test_settings)
    yield


@pytest.fixture
def app(test_settings, content_service):
    """Create FastAPI app instance for testing."""
    return create_app(test_settings, content_service)


@pytest.fixture
def client(app):
    """Create test client for HTTP requests."""
    with TestClient(app) as test_client:
        yield test_client

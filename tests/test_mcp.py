"""
End-to-end tests for the MCP Streamable HTTP endpoint.

The WordPress backend is the in-memory fake from conftest; every request
goes through the real app, middleware and dispatcher.
"""

import json

import pytest
from fastapi.testclient import TestClient

from mcp_wp.main import create_app

ACCEPT_BOTH = "application/json, text/event-stream"


def rpc(method, params=None, req_id=1):
    message = {"jsonrpc": "2.0", "id": req_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def call_tool(client, name, arguments=None, session_id=None, req_id=1):
    headers = {"Accept": "application/json"}
    if session_id:
        headers["Mcp-Session-Id"] = session_id
    return client.post(
        "/mcp",
        json=rpc("tools/call", {"name": name, "arguments": arguments or {}}, req_id),
        headers=headers,
    )


def parse_sse(text):
    events = []
    for block in text.strip().split("\n\n"):
        lines = block.splitlines()
        if lines and lines[0] == "event: message":
            events.append(json.loads(lines[1][len("data: "):]))
    return events


@pytest.fixture
def session_id(client):
    response = client.post(
        "/mcp",
        json=rpc("initialize", {"protocolVersion": "2025-03-26", "clientInfo": {"name": "pytest", "version": "1"}}),
        headers={"Accept": ACCEPT_BOTH},
    )
    assert response.status_code == 200
    return response.headers["mcp-session-id"]


class TestSessionLifecycle:
    def test_initialize_mints_session(self, client, app):
        response = client.post(
            "/mcp",
            json=rpc("initialize", {"protocolVersion": "2025-03-26", "clientInfo": {"name": "pytest"}}),
        )

        assert response.status_code == 200
        session_id = response.headers["mcp-session-id"]
        assert len(session_id) == 32
        result = response.json()["result"]
        assert result["protocolVersion"] == "2025-03-26"
        assert result["serverInfo"]["name"] == "mcp-wp"
        assert "tools" in result["capabilities"]

        session = app.state.dispatcher.sessions.get(session_id)
        assert session.state.value == "active"
        assert session.client_info == {"name": "pytest"}

    def test_unknown_protocol_version_gets_latest(self, client):
        response = client.post("/mcp", json=rpc("initialize", {"protocolVersion": "1999-01-01"}))
        assert response.json()["result"]["protocolVersion"] == "2025-06-18"

    def test_session_is_reused(self, client, session_id):
        response = client.post("/mcp", json=rpc("ping", req_id=2), headers={"Mcp-Session-Id": session_id})

        assert response.status_code == 200
        assert response.headers["mcp-session-id"] == session_id
        assert response.json() == {"jsonrpc": "2.0", "result": {}, "id": 2}

    def test_lowercase_session_header_is_accepted(self, client, session_id):
        response = client.post("/mcp", json=rpc("tools/list"), headers={"mcp-session-id": session_id})
        assert response.status_code == 200
        assert response.headers["mcp-session-id"] == session_id

    def test_every_request_without_id_gets_new_session(self, client):
        first = client.post("/mcp", json=rpc("ping"))
        second = client.post("/mcp", json=rpc("ping"))
        assert first.headers["mcp-session-id"] != second.headers["mcp-session-id"]

    def test_unknown_session_is_404(self, client):
        response = client.post("/mcp", json=rpc("ping"), headers={"Mcp-Session-Id": "f" * 32})

        assert response.status_code == 404
        body = response.json()
        assert body["error"]["data"]["code"] == "unknown_session"
        assert "mcp-session-id" not in response.headers

    def test_delete_closes_session(self, client, session_id):
        response = client.delete("/mcp", headers={"Mcp-Session-Id": session_id})
        assert response.status_code == 204

        again = client.post("/mcp", json=rpc("ping"), headers={"Mcp-Session-Id": session_id})
        assert again.status_code == 404

        assert client.delete("/mcp", headers={"Mcp-Session-Id": session_id}).status_code == 404

    def test_delete_requires_session_header(self, client):
        assert client.delete("/mcp").status_code == 400

    def test_expired_session_is_rejected(self, client, app, session_id, fake_clock):
        sessions = app.state.dispatcher.sessions
        sessions._clock = fake_clock
        sessions.resolve_or_create(session_id)
        fake_clock.advance(sessions.idle_timeout + 1)

        response = client.post("/mcp", json=rpc("ping"), headers={"Mcp-Session-Id": session_id})
        assert response.status_code == 404


class TestEnvelope:
    def test_parse_error(self, client):
        response = client.post("/mcp", content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32700

    def test_invalid_envelope(self, client):
        response = client.post("/mcp", json={"jsonrpc": "1.0", "id": 1, "method": "ping"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32600

    def test_empty_batch(self, client):
        response = client.post("/mcp", json=[])
        assert response.status_code == 400

    def test_notifications_only_returns_202(self, client, session_id):
        response = client.post(
            "/mcp",
            json={"jsonrpc": "2.0", "method": "notifications/initialized"},
            headers={"Mcp-Session-Id": session_id},
        )
        assert response.status_code == 202
        assert response.headers["mcp-session-id"] == session_id
        assert response.content == b""

    def test_batch_preserves_order_and_skips_notifications(self, client):
        response = client.post(
            "/mcp",
            json=[
                rpc("ping", req_id="a"),
                {"jsonrpc": "2.0", "method": "notifications/initialized"},
                rpc("tools/list", req_id="b"),
            ],
        )
        assert response.status_code == 200
        body = response.json()
        assert [item["id"] for item in body] == ["a", "b"]
        assert len(body[1]["result"]["tools"]) == 6

    def test_unknown_method(self, client):
        response = client.post("/mcp", json=rpc("sampling/createMessage"))
        assert response.status_code == 200
        assert response.json()["error"]["code"] == -32601

    def test_empty_prompts_and_resources(self, client):
        assert client.post("/mcp", json=rpc("prompts/list")).json()["result"] == {"prompts": []}
        assert client.post("/mcp", json=rpc("resources/list")).json()["result"] == {"resources": []}

    def test_positional_params_fail_only_that_message(self, client):
        response = client.post(
            "/mcp",
            json=[rpc("tools/list", ["ping"], req_id="a"), rpc("ping", req_id="b")],
        )
        assert response.status_code == 200
        first, second = response.json()
        assert first["id"] == "a"
        assert first["error"]["code"] == -32602
        assert second == {"jsonrpc": "2.0", "result": {}, "id": "b"}


class TestNegotiation:
    def test_not_acceptable(self, client):
        response = client.post("/mcp", json=rpc("ping"), headers={"Accept": "text/html"})
        assert response.status_code == 406

    def test_json_preferred_by_default(self, client):
        response = client.post("/mcp", json=rpc("ping"), headers={"Accept": ACCEPT_BOTH})
        assert response.headers["content-type"].startswith("application/json")

    def test_sse_when_client_only_accepts_stream(self, client):
        response = client.post(
            "/mcp",
            json=[rpc("ping", req_id=1), rpc("tools/list", req_id=2)],
            headers={"Accept": "text/event-stream"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert "mcp-session-id" in response.headers
        events = parse_sse(response.text)
        assert [event["id"] for event in events] == [1, 2]

    def test_sse_default_mode(self, test_settings, content_service):
        test_settings.mcp_default_response_mode = "sse"
        with TestClient(create_app(test_settings, content_service)) as sse_client:
            response = sse_client.post("/mcp", json=rpc("ping"), headers={"Accept": ACCEPT_BOTH})
        assert response.headers["content-type"].startswith("text/event-stream")
        assert parse_sse(response.text) == [{"jsonrpc": "2.0", "result": {}, "id": 1}]

    def test_get_stream_requires_event_stream(self, client, session_id):
        response = client.get("/mcp", headers={"Accept": "application/json", "Mcp-Session-Id": session_id})
        assert response.status_code == 406

    def test_get_stream_requires_session(self, client):
        assert client.get("/mcp", headers={"Accept": "text/event-stream"}).status_code == 400
        response = client.get("/mcp", headers={"Accept": "text/event-stream", "Mcp-Session-Id": "0" * 32})
        assert response.status_code == 404


class TestBearerAuth:
    @pytest.fixture
    def secured_client(self, test_settings, content_service):
        test_settings.mcp_bearer_token = "s3cret"
        with TestClient(create_app(test_settings, content_service)) as secured:
            yield secured

    def test_missing_token(self, secured_client):
        response = secured_client.post("/mcp", json=rpc("ping"))
        assert response.status_code == 401
        assert response.headers["www-authenticate"].startswith("Bearer")
        assert len(secured_client.app.state.dispatcher.sessions) == 0

    def test_wrong_token(self, secured_client):
        response = secured_client.post("/mcp", json=rpc("ping"), headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_valid_token(self, secured_client):
        response = secured_client.post("/mcp", json=rpc("ping"), headers={"Authorization": "Bearer s3cret"})
        assert response.status_code == 200
        assert "mcp-session-id" in response.headers

    def test_health_stays_open(self, secured_client):
        assert secured_client.get("/health").status_code == 200


class TestTools:
    def test_tools_list(self, client, session_id):
        response = client.post("/mcp", json=rpc("tools/list"), headers={"Mcp-Session-Id": session_id})
        tools = {tool["name"]: tool for tool in response.json()["result"]["tools"]}
        assert set(tools) == {"ping", "list_content", "get_content", "create_content", "update_content", "delete_content"}
        assert tools["create_content"]["inputSchema"]["required"] == ["type", "title", "content"]

    def test_ping_tool(self, client, session_id):
        result = call_tool(client, "ping", {"msg": "hi"}, session_id).json()["result"]
        assert result == {"content": [{"type": "text", "text": "pong: hi"}], "isError": False}

    def test_unknown_tool_is_protocol_error(self, client, session_id, wordpress):
        body = call_tool(client, "drop_database", {}, session_id).json()
        assert body["error"]["code"] == -32601
        assert "drop_database" in body["error"]["message"]
        assert wordpress.calls == []

    def test_list_content(self, client, session_id, wordpress):
        result = call_tool(client, "list_content", {"type": "post"}, session_id).json()["result"]
        assert result["isError"] is False
        page = result["structuredContent"]
        assert page["total"] == 1
        assert page["items"][0]["title"] == "Hello world"
        assert json.loads(result["content"][0]["text"]) == page
        assert wordpress.calls[0].url.params["per_page"] == "10"

    def test_list_content_rejects_large_page(self, client, session_id, wordpress):
        result = call_tool(client, "list_content", {"type": "post", "per_page": 150}, session_id).json()["result"]
        assert result["isError"] is True
        assert result["structuredContent"]["error"]["param"] == "per_page"
        assert wordpress.calls == []

    def test_create_defaults_to_draft(self, client, session_id, wordpress):
        result = call_tool(
            client, "create_content", {"type": "post", "title": "New", "content": "<p>x</p>"}, session_id
        ).json()["result"]
        assert result["structuredContent"]["status"] == "draft"
        assert json.loads(wordpress.calls[-1].content)["status"] == "draft"

    def test_get_content_with_string_id(self, client, session_id):
        result = call_tool(client, "get_content", {"type": "post", "id": "1"}, session_id).json()["result"]
        assert result["structuredContent"]["id"] == 1

    def test_string_and_numeric_ids_match(self, client, session_id, wordpress):
        as_int = call_tool(client, "get_content", {"type": "post", "id": 1}, session_id).json()["result"]
        as_str = call_tool(client, "get_content", {"type": "post", "id": "1"}, session_id).json()["result"]
        assert as_int == as_str
        assert [call.url.path for call in wordpress.calls] == ["/wp-json/wp/v2/posts/1"] * 2

    def test_get_content_with_bad_id(self, client, session_id, wordpress):
        result = call_tool(client, "get_content", {"type": "post", "id": "abc"}, session_id).json()["result"]
        assert result["isError"] is True
        assert wordpress.calls == []

    def test_update_without_fields_makes_no_remote_call(self, client, session_id, wordpress):
        result = call_tool(client, "update_content", {"type": "post", "id": 1}, session_id).json()["result"]
        assert result["isError"] is True
        assert result["structuredContent"]["error"]["code"] == "empty_update"
        assert wordpress.calls == []

    def test_update_content(self, client, session_id):
        result = call_tool(
            client, "update_content", {"type": "post", "id": 1, "status": "private"}, session_id
        ).json()["result"]
        assert result["structuredContent"]["status"] == "private"

    def test_delete_content(self, client, session_id, wordpress):
        result = call_tool(client, "delete_content", {"type": "post", "id": 1}, session_id).json()["result"]
        assert result["structuredContent"]["deleted"] is True
        assert 1 not in wordpress.items

    def test_remote_error_is_tool_error(self, client, session_id, wordpress):
        result = call_tool(client, "get_content", {"type": "page", "id": 1}, session_id).json()["result"]
        assert result["isError"] is True
        error = result["structuredContent"]["error"]
        assert error["remote_status"] == 404
        assert "Invalid page ID." in error["message"]
        assert len(wordpress.calls) == 1

    def test_unconfigured_backend_is_tool_error(self, test_settings):
        from mcp_wp.services.wordpress import WordPressService

        with TestClient(create_app(test_settings, WordPressService(None, None, None))) as bare:
            result = call_tool(bare, "list_content", {"type": "post"}).json()["result"]
        assert result["isError"] is True
        assert result["structuredContent"]["error"]["code"] == "wordpress_unavailable"

    @pytest.mark.parametrize("page", ["--1", "²", "1e3", " "])
    def test_malformed_page_is_tool_error(self, client, session_id, wordpress, page):
        body = call_tool(client, "list_content", {"type": "post", "page": page}, session_id).json()
        assert "error" not in body
        result = body["result"]
        assert result["isError"] is True
        assert result["structuredContent"]["error"]["code"] == "invalid_argument"
        assert result["structuredContent"]["error"]["param"] == "page"
        assert wordpress.calls == []

    @pytest.mark.parametrize("content_id", ["--1", "²", "1e3"])
    def test_malformed_id_is_tool_error(self, client, session_id, wordpress, content_id):
        result = call_tool(client, "get_content", {"type": "post", "id": content_id}, session_id).json()["result"]
        assert result["isError"] is True
        assert result["structuredContent"]["error"]["param"] == "id"
        assert wordpress.calls == []

    def test_html_success_body_is_tool_error(self, client, session_id, wordpress):
        wordpress.fail_with = (200, "<html>maintenance</html>")
        body = call_tool(client, "get_content", {"type": "post", "id": 1}, session_id).json()
        assert "error" not in body
        error = body["result"]["structuredContent"]["error"]
        assert body["result"]["isError"] is True
        assert error["code"] == "remote_api_error"
        assert error["remote_code"] == "invalid_response"

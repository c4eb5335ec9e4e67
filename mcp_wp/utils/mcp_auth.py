"""
MCP Authentication - optional static Bearer token
=================================================

When MCP_BEARER_TOKEN is set, every MCP request must carry
``Authorization: Bearer <token>``. When it is unset the check is a no-op,
which is intended for local/dev use only.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import Request

from .errors import UnauthorizedError

# Logger
logger = logging.getLogger("mcp_wp.auth")

WWW_AUTHENTICATE = 'Bearer realm="mcp-wp"'


def _safe_compare(a: str, b: str) -> bool:
    """Constant-time string comparison."""
    if not a or not b:
        return False
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def extract_bearer(auth_header: Optional[str]) -> Optional[str]:
    if not auth_header:
        return None
    scheme, _, token = auth_header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def check_bearer(auth_header: Optional[str], expected_token: Optional[str]) -> None:
    """Raise UnauthorizedError unless the header carries the expected token."""
    if not expected_token:
        return
    token = extract_bearer(auth_header)
    if token is None:
        raise UnauthorizedError("Authentication required")
    if not _safe_compare(token, expected_token):
        raise UnauthorizedError("Invalid bearer token")


def require_mcp_auth(request: Request, expected_token: Optional[str]) -> None:
    client_ip = request.client.host if request.client else "unknown"
    try:
        check_bearer(request.headers.get("Authorization"), expected_token)
    except UnauthorizedError as exc:
        logger.warning("AUTH_FAIL | IP: %s | Reason: %s", client_ip, exc.message)
        raise
    if expected_token:
        logger.debug("AUTH_OK | IP: %s | Method: bearer", client_ip)

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from fastapi import status

logger = logging.getLogger("mcp_wp.errors")

# Patterns that might leak sensitive information
SENSITIVE_PATTERNS = [
    r"api[_-]?key[=:\s]+\S+",
    r"password[=:\s]+\S+",
    r"token[=:\s]+\S+",
    r"secret[=:\s]+\S+",
    r"bearer\s+\S+",
    r"basic\s+[A-Za-z0-9+/=]{8,}",
    r"\b(?:\d{1,3}\.){3}\d{1,3}\b",  # IP addresses
    r"/home/\S+",  # File paths
    r"/var/\S+",
    r"/etc/\S+",
    r"traceback",
    r"stack trace",
]

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000


def sanitize_error_message(message: str) -> str:
    """Remove potentially sensitive information from error messages.

    This prevents leaking internal details like file paths, IP addresses,
    credentials, or stack traces to clients.
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, "[REDACTED]", sanitized, flags=re.IGNORECASE)

    # Truncate very long messages that might contain stack traces
    if len(sanitized) > 500:
        sanitized = sanitized[:500] + "... [truncated]"

    return sanitized


class GatewayError(Exception):
    """Base class for every failure the gateway reports to clients.

    Attributes:
        status_code: HTTP status used when the error ends a whole request
        code: Machine-readable error code
        rpc_code: JSON-RPC error code used inside an envelope
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "bad_request"
    rpc_code: int = SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "message": sanitize_error_message(self.message),
            "code": self.code,
        }
        payload.update(self.details())
        return payload


class ParseError(GatewayError):
    code = "parse_error"
    rpc_code = PARSE_ERROR


class InvalidRequestError(GatewayError):
    code = "invalid_request"
    rpc_code = INVALID_REQUEST


class InvalidArgumentError(GatewayError):
    code = "invalid_argument"
    rpc_code = INVALID_PARAMS

    def __init__(self, param: str, reason: str) -> None:
        super().__init__(f"Invalid argument '{param}': {reason}")
        self.param = param
        self.reason = reason

    def details(self) -> Dict[str, Any]:
        return {"param": self.param, "reason": self.reason}


class EmptyUpdateError(GatewayError):
    code = "empty_update"
    rpc_code = INVALID_PARAMS

    def __init__(self, message: str = "At least one field must be provided to update") -> None:
        super().__init__(message)


class UnknownToolError(GatewayError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "unknown_tool"
    rpc_code = METHOD_NOT_FOUND

    def __init__(self, name: Optional[str]) -> None:
        super().__init__(f"Tool '{name}' not found")
        self.name = name


class DuplicateNameError(GatewayError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "duplicate_tool"

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool '{name}' is already registered")
        self.name = name


class UnknownSessionError(GatewayError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "unknown_session"

    def __init__(self, session_id: Optional[str] = None) -> None:
        super().__init__("Session not found or expired; start a new session")
        self.session_id = session_id


class UnauthorizedError(GatewayError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"

    def __init__(self, message: str = "Missing or invalid bearer token") -> None:
        super().__init__(message)


class NotAcceptableError(GatewayError):
    status_code = status.HTTP_406_NOT_ACCEPTABLE
    code = "not_acceptable"

    def __init__(self, accept: str) -> None:
        super().__init__(
            "Client accepts none of the supported response types "
            "(application/json, text/event-stream)"
        )
        self.accept = accept


class RemoteAPIError(GatewayError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "remote_api_error"

    def __init__(self, remote_status: int, message: str, *, remote_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.remote_status = remote_status
        self.remote_code = remote_code

    def details(self) -> Dict[str, Any]:
        extra: Dict[str, Any] = {"remote_status": self.remote_status}
        if self.remote_code:
            extra["remote_code"] = self.remote_code
        return extra


class ContentUnavailableError(GatewayError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "wordpress_unavailable"


class InternalError(GatewayError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"
    rpc_code = INTERNAL_ERROR

    def __init__(self, message: str = "An unexpected error occurred.") -> None:
        super().__init__(message)


# Failures a tool call reports back as an ``isError`` result instead of a
# protocol-level error.
TOOL_ERRORS = (
    InvalidArgumentError,
    EmptyUpdateError,
    RemoteAPIError,
    ContentUnavailableError,
)


def internal_error(internal_details: str) -> InternalError:
    """Log the detailed cause and return a generic error safe to show clients."""
    logger.error("[internal_error] %s", internal_details)
    return InternalError()

"""
Header normalization and response-mode negotiation for the MCP endpoint.

Two response modes are supported:
- json: one ``application/json`` body
- sse:  a ``text/event-stream`` carrying one event per JSON-RPC response

The acceptable output is always the union of both modes, so a client is
only refused when it accepts neither of them.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import NotAcceptableError

SESSION_HEADER = "mcp-session-id"
SESSION_HEADER_VARIANTS = ("mcp-session-id", "Mcp-Session-Id")


class ResponseMode(str, Enum):
    JSON = "json"
    SSE = "sse"

    @property
    def media_type(self) -> str:
        return MEDIA_TYPES[self]


MEDIA_TYPES = {
    ResponseMode.JSON: "application/json",
    ResponseMode.SSE: "text/event-stream",
}


def extract_session_id(headers: Mapping[str, str]) -> Optional[str]:
    """Return the session id from whichever header spelling carries it.

    Works for case-insensitive header mappings (Starlette) and plain dicts.
    An empty value counts as absent.
    """
    for name in SESSION_HEADER_VARIANTS:
        value = headers.get(name)
        if value and value.strip():
            return value.strip()
    for name, value in headers.items():
        if name.lower() == SESSION_HEADER and value and value.strip():
            return value.strip()
    return None


def session_headers(session_id: Optional[str]) -> Dict[str, str]:
    # Header names are case-insensitive on the wire and ASGI lowercases them,
    # so one header satisfies clients reading either spelling.
    if session_id:
        return {"Mcp-Session-Id": session_id}
    return {}


def parse_accept(accept: Optional[str]) -> List[Tuple[str, float]]:
    """Parse an Accept header into ``(media_range, q)`` pairs."""
    ranges: List[Tuple[str, float]] = []
    if not accept:
        return ranges
    for part in accept.split(","):
        pieces = [piece.strip() for piece in part.split(";")]
        media = pieces[0].lower()
        if not media:
            continue
        q = 1.0
        for param in pieces[1:]:
            key, _, value = param.partition("=")
            if key.strip().lower() == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        ranges.append((media, q))
    return ranges


def _quality(media_type: str, ranges: List[Tuple[str, float]]) -> float:
    main, _, sub = media_type.partition("/")
    best: Optional[Tuple[int, float]] = None
    for media, q in ranges:
        r_main, _, r_sub = media.partition("/")
        if media == media_type:
            specificity = 2
        elif r_main == main and r_sub == "*":
            specificity = 1
        elif media == "*/*" or media == "*":
            specificity = 0
        else:
            continue
        if best is None or specificity > best[0]:
            best = (specificity, q)
    return best[1] if best else 0.0


def negotiate_response_mode(accept: Optional[str], default: ResponseMode = ResponseMode.JSON) -> ResponseMode:
    """Pick the response mode for a request.

    The client's highest-ranked supported type wins; ties and a missing
    Accept header fall back to ``default``. Raises NotAcceptableError only
    when the client accepts none of the supported types.
    """
    ranges = parse_accept(accept)
    if not ranges:
        return default

    scores = {mode: _quality(media, ranges) for mode, media in MEDIA_TYPES.items()}
    best_score = max(scores.values())
    if best_score <= 0:
        raise NotAcceptableError(accept or "")
    if scores[default] == best_score:
        return default
    return max(scores, key=lambda mode: scores[mode])

"""Service layer exports."""

from . import content_tools, dispatcher, sessions, tool_registry, wordpress

__all__ = ["content_tools", "dispatcher", "sessions", "tool_registry", "wordpress"]

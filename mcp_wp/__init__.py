"""MCP gateway exposing the WordPress REST API as streamable-HTTP tools."""

__version__ = "0.1.0"

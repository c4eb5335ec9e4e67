"""
MCP Gateway Routes

Route Modules:
- health: liveness and readiness probes
- mcp: MCP Streamable HTTP endpoint (POST/GET/DELETE /mcp)
"""

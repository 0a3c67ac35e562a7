"""Pizzaz widget MCP server.

Exposes pizza-themed Apps SDK widgets as MCP tools and resources over a
stateless streamable HTTP endpoint.
"""

__version__ = "0.1.0"

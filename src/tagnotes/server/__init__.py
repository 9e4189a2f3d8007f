"""MCP server for tagnotes."""

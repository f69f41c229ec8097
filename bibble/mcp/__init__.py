"""MCP server connections and remote tool bookkeeping."""

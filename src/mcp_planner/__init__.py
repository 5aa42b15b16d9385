"""mcp-planner - MCP server for tracking multi-step agent plans."""

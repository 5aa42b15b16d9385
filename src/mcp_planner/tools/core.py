"""Core health check tool."""

import json

from mcp.server.fastmcp import FastMCP

from ..config import Config


def register_core_tools(mcp: FastMCP, config: Config) -> None:
	"""Register core tools."""

	@mcp.tool()
	async def health_check() -> str:
		"""
		Check the health of the mcp-planner server.
		Returns where plans are stored and whether the database exists yet.
		"""
		status = {
			"server": "running",
			"config_dir": str(config.config_dir),
			"data_dir": str(config.data_dir),
			"db_path": str(config.db_path),
			"db_exists": config.db_path.exists(),
			"page_size": config.page_size,
		}
		return json.dumps(status, indent=2)

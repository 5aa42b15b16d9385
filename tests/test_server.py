"""Tests for server startup and tool registration."""

import os
from unittest.mock import patch

import pytest


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path):
	with patch.dict(os.environ, {
		"MCP_PLANNER_DATA_DIR": str(tmp_path / "data"),
		"MCP_PLANNER_CONFIG_DIR": str(tmp_path / "config"),
	}):
		yield


def test_server_imports():
	"""Server module should import without errors."""
	from mcp_planner.server import mcp
	assert mcp is not None


def test_server_tool_names():
	"""Server should register every plan tool."""
	from mcp_planner.server import mcp
	tool_names = set(mcp._tool_manager._tools.keys())

	expected = {
		"health_check",
		"create_plan", "get_plan", "list_plans",
		"create_step", "get_active_step", "complete_step", "fail_step", "list_steps",
		"export_plan",
	}
	missing = expected - tool_names
	assert not missing, f"Missing tools: {missing}"

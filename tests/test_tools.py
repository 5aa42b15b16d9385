"""Tests for the plan MCP tools."""

import json
from pathlib import Path

import pytest
from mcp.server.fastmcp import FastMCP

from mcp_planner.config import Config
from mcp_planner.tools import register_all_tools


@pytest.fixture
def tools(tmp_path: Path):
	"""Register all tools against a throwaway data directory."""
	config = Config(config_dir=tmp_path / "config", data_dir=tmp_path / "data", page_size=2)
	config.ensure_dirs()
	mcp = FastMCP("test-planner")
	register_all_tools(mcp, config)
	return {name: tool.fn for name, tool in mcp._tool_manager._tools.items()}


async def _call(tools, tool_name: str, /, **kwargs) -> dict:
	return json.loads(await tools[tool_name](**kwargs))


async def _plan_with_steps(tools, count: int) -> tuple[str, list[dict]]:
	created = await _call(tools, "create_plan", name="release", description="Ship version 2")
	plan_id = created["plan"]["id"]
	steps = []
	for i in range(count):
		result = await _call(
			tools, "create_step",
			plan_id=plan_id, description=f"Step {i + 1}", completion_condition="Done",
		)
		steps.append(result["step"])
	return plan_id, steps


@pytest.mark.asyncio
async def test_health_check(tools, tmp_path: Path):
	"""health_check reports the configured paths."""
	result = await _call(tools, "health_check")
	assert result["server"] == "running"
	assert result["db_path"] == str(tmp_path / "data" / "planner.db")
	assert result["page_size"] == 2


@pytest.mark.asyncio
async def test_create_plan(tools):
	"""create_plan returns the stored plan."""
	result = await _call(tools, "create_plan", name="release", description="Ship version 2")
	assert result["success"] is True
	assert result["plan"]["name"] == "release"
	assert result["plan"]["active_step_id"] is None


@pytest.mark.asyncio
async def test_create_plan_blank_name(tools):
	"""Blank arguments come back as an error payload."""
	result = await _call(tools, "create_plan", name="", description="Ship version 2")
	assert "error" in result


@pytest.mark.asyncio
async def test_get_plan(tools):
	"""get_plan includes the steps and the active step."""
	plan_id, steps = await _plan_with_steps(tools, 2)

	result = await _call(tools, "get_plan", plan_id=plan_id)

	assert result["plan"]["id"] == plan_id
	assert [s["id"] for s in result["steps"]] == [s["id"] for s in steps]
	assert result["active_step"]["id"] == steps[0]["id"]


@pytest.mark.asyncio
async def test_get_plan_missing(tools):
	"""A missing plan is reported as an error."""
	result = await _call(tools, "get_plan", plan_id="nope")
	assert "not found" in result["error"].lower()


@pytest.mark.asyncio
async def test_list_plans_empty(tools):
	"""An empty store returns a hint."""
	result = await _call(tools, "list_plans")
	assert result["plans"] == []
	assert result["total"] == 0
	assert "create_plan" in result["hint"]


@pytest.mark.asyncio
async def test_list_plans_paginates_with_config_page_size(tools):
	"""list_plans uses the configured page size."""
	for i in range(3):
		await _call(tools, "create_plan", name=f"plan {i}", description="d")

	first = await _call(tools, "list_plans", page=1)
	second = await _call(tools, "list_plans", page=2)

	assert len(first["plans"]) == 2
	assert first["total_pages"] == 2
	assert first["has_next_page"] is True
	assert len(second["plans"]) == 1
	assert second["has_next_page"] is False
	assert first["plans"][0]["has_active_step"] is False


@pytest.mark.asyncio
async def test_list_plans_invalid_page(tools):
	"""Page 0 is an error payload."""
	result = await _call(tools, "list_plans", page=0)
	assert "error" in result


@pytest.mark.asyncio
async def test_create_step_unknown_plan(tools):
	"""A step for an unknown plan is an error payload."""
	result = await _call(
		tools, "create_step", plan_id="nope", description="d", completion_condition="c",
	)
	assert "error" in result


@pytest.mark.asyncio
async def test_get_active_step(tools):
	"""get_active_step returns the first in-progress step."""
	plan_id, steps = await _plan_with_steps(tools, 2)
	result = await _call(tools, "get_active_step", plan_id=plan_id)
	assert result["active_step"]["id"] == steps[0]["id"]


@pytest.mark.asyncio
async def test_get_active_step_none(tools):
	"""A plan without steps has no active step."""
	plan_id, _ = await _plan_with_steps(tools, 0)
	result = await _call(tools, "get_active_step", plan_id=plan_id)
	assert result["active_step"] is None


@pytest.mark.asyncio
async def test_complete_step_flow(tools):
	"""Completing steps walks the plan and ends with a hint."""
	plan_id, steps = await _plan_with_steps(tools, 2)

	first = await _call(tools, "complete_step", step_id=steps[0]["id"], completion_context="did it")
	assert first["next_step"]["id"] == steps[1]["id"]
	assert "hint" not in first

	last = await _call(tools, "complete_step", step_id=steps[1]["id"], completion_context="did it")
	assert last["next_step"] is None
	assert "create_step" in last["hint"]

	again = await _call(tools, "complete_step", step_id=steps[1]["id"], completion_context="again")
	assert "in progress" in again["error"]


@pytest.mark.asyncio
async def test_fail_step_flow(tools):
	"""Failing the active step inserts and activates a replacement."""
	plan_id, steps = await _plan_with_steps(tools, 2)

	result = await _call(
		tools, "fail_step",
		step_id=steps[0]["id"],
		new_step_description="retry",
		new_step_completion_condition="works",
	)

	assert result["failed_step_id"] == steps[0]["id"]
	assert result["new_step"]["step_order"] == 2
	active = await _call(tools, "get_active_step", plan_id=plan_id)
	assert active["active_step"]["id"] == result["new_step"]["id"]

	listed = await _call(tools, "list_steps", plan_id=plan_id)
	assert listed["total"] == 3
	assert [s["status"] for s in listed["steps"]] == ["failed", "in_progress", "in_progress"]


@pytest.mark.asyncio
async def test_fail_step_not_active(tools):
	"""Failing a step that is not active is an error payload."""
	_, steps = await _plan_with_steps(tools, 2)
	result = await _call(
		tools, "fail_step",
		step_id=steps[1]["id"],
		new_step_description="retry",
		new_step_completion_condition="works",
	)
	assert "active" in result["error"]


@pytest.mark.asyncio
async def test_export_plan_completed(tools):
	"""A plan whose steps are all done exports as completed."""
	plan_id, steps = await _plan_with_steps(tools, 2)
	for step in steps:
		await _call(tools, "complete_step", step_id=step["id"], completion_context="done")

	result = await _call(tools, "export_plan", plan_id=plan_id)

	assert result["plan"]["id"] == plan_id
	assert result["status"] == "completed"
	assert [s["state"] for s in result["steps"]] == ["completed", "completed"]
	assert result["steps"][0]["completion_context"] == "done"


@pytest.mark.asyncio
async def test_export_plan_mixed(tools):
	"""Failed, active and queued steps are told apart."""
	plan_id, steps = await _plan_with_steps(tools, 2)
	failed = await _call(
		tools, "fail_step",
		step_id=steps[0]["id"],
		new_step_description="retry",
		new_step_completion_condition="works",
	)

	result = await _call(tools, "export_plan", plan_id=plan_id)

	assert result["status"] == "in_progress"
	assert [s["id"] for s in result["steps"]] == [
		steps[0]["id"], failed["new_step"]["id"], steps[1]["id"],
	]
	assert [s["state"] for s in result["steps"]] == ["failed", "active", "not_started"]


@pytest.mark.asyncio
async def test_export_plan_missing(tools):
	result = await _call(tools, "export_plan", plan_id="nope")
	assert "not found" in result["error"].lower()

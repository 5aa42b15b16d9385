"""Plan and step management tools."""

import json

from mcp.server.fastmcp import FastMCP

from ..config import Config
from ..plans.store import PlanStore, PlanStoreError


def register_plans_tools(mcp: FastMCP, config: Config) -> None:
	"""Register plan management tools backed by a single PlanStore."""
	store = PlanStore(config.db_path, busy_timeout=config.busy_timeout)

	@mcp.tool()
	async def create_plan(name: str, description: str) -> str:
		"""
		Create a new plan with a descriptive name and description.

		Ask the user enough questions to understand the plan, then break it
		into several steps with create_step. Avoid plans with a single step.

		Args:
			name: Name of the plan
			description: Detailed description of the plan and its objectives
		"""
		try:
			plan = await store.create_plan(name, description)
		except (PlanStoreError, ValueError) as e:
			return json.dumps({"error": str(e)})

		return json.dumps({
			"success": True,
			"plan": plan.model_dump(mode="json"),
			"hint": "Use create_step to add specific, measurable steps to this plan",
		}, indent=2)

	@mcp.tool()
	async def get_plan(plan_id: str) -> str:
		"""
		Get a plan with all of its steps in execution order.

		Args:
			plan_id: The plan ID
		"""
		try:
			plan = await store.get_plan(plan_id)
			if not plan:
				return json.dumps({"error": f"Plan not found: {plan_id}"})
			steps = await store.list_steps(plan_id)
			active = await store.get_active_step(plan_id)
		except PlanStoreError as e:
			return json.dumps({"error": str(e)})

		return json.dumps({
			"plan": plan.model_dump(mode="json"),
			"steps": [s.model_dump(mode="json") for s in steps],
			"active_step": active.model_dump(mode="json") if active else None,
		}, indent=2)

	@mcp.tool()
	async def list_plans(page: int = 1) -> str:
		"""
		List plans, newest first, one page at a time.

		Use this to find a plan by name when the user asks to continue
		working on it.

		Args:
			page: Page number (1-based)
		"""
		try:
			result = await store.list_plans(page, config.page_size)
		except (PlanStoreError, ValueError) as e:
			return json.dumps({"error": str(e)})

		if result.total == 0:
			return json.dumps({
				"plans": [],
				"total": 0,
				"hint": "No plans found. Use create_plan to create one",
			}, indent=2)

		return json.dumps({
			"plans": [
				{
					**p.model_dump(mode="json"),
					"has_active_step": p.active_step_id is not None,
				}
				for p in result.items
			],
			"total": result.total,
			"current_page": result.page,
			"total_pages": result.total_pages,
			"has_next_page": result.has_next_page,
		}, indent=2)

	@mcp.tool()
	async def create_step(plan_id: str, description: str, completion_condition: str) -> str:
		"""
		Add a step to the end of a plan.

		Steps should be specific, measurable actions. The completion condition
		should be clear and testable (e.g., "API endpoint returns 200").

		Args:
			plan_id: ID of the plan this step belongs to
			description: Detailed description of the step's objective
			completion_condition: Condition that must be met to consider this step complete
		"""
		try:
			step = await store.create_step(plan_id, description, completion_condition)
		except (PlanStoreError, ValueError) as e:
			return json.dumps({"error": str(e)})

		return json.dumps({
			"success": True,
			"step": step.model_dump(mode="json"),
		}, indent=2)

	@mcp.tool()
	async def get_active_step(plan_id: str) -> str:
		"""
		Get the step of a plan that should be worked on now.

		Args:
			plan_id: ID of the plan to check
		"""
		try:
			step = await store.get_active_step(plan_id)
		except PlanStoreError as e:
			return json.dumps({"error": str(e)})

		if not step:
			return json.dumps({"active_step": None, "message": "No active step found"})

		return json.dumps({"active_step": step.model_dump(mode="json")}, indent=2)

	@mcp.tool()
	async def complete_step(step_id: str, completion_context: str) -> str:
		"""
		Mark a step completed and move the plan to its next step.

		Args:
			step_id: ID of the step to complete
			completion_context: What was done to satisfy the completion condition
		"""
		try:
			next_step = await store.complete_step(step_id, completion_context)
		except PlanStoreError as e:
			return json.dumps({"error": str(e)})

		response = {
			"success": True,
			"completed_step_id": step_id,
			"next_step": next_step.model_dump(mode="json") if next_step else None,
		}
		if next_step is None:
			response["hint"] = "No more steps in the plan. Use create_step to continue, or ask the user"
		return json.dumps(response, indent=2)

	@mcp.tool()
	async def fail_step(
		step_id: str,
		new_step_description: str,
		new_step_completion_condition: str,
	) -> str:
		"""
		Mark the active step failed and insert a replacement step right after it.

		Args:
			step_id: ID of the plan's active step
			new_step_description: Description of the replacement step
			new_step_completion_condition: Completion condition of the replacement step
		"""
		try:
			result = await store.fail_step(step_id, new_step_description, new_step_completion_condition)
		except (PlanStoreError, ValueError) as e:
			return json.dumps({"error": str(e)})

		return json.dumps({
			"success": True,
			"failed_step_id": result.failed_step_id,
			"new_step": result.new_step.model_dump(mode="json"),
		}, indent=2)

	@mcp.tool()
	async def list_steps(plan_id: str) -> str:
		"""
		List every step of a plan in execution order, including finished ones.

		Args:
			plan_id: ID of the plan
		"""
		try:
			steps = await store.list_steps(plan_id)
		except PlanStoreError as e:
			return json.dumps({"error": str(e)})

		return json.dumps({
			"plan_id": plan_id,
			"steps": [s.model_dump(mode="json") for s in steps],
			"total": len(steps),
		}, indent=2)

	@mcp.tool()
	async def export_plan(plan_id: str) -> str:
		"""
		Export a plan with its overall status and the state of every step.

		A step is "active" when it is the one to work on now, "not_started"
		when it is queued behind it, or "completed"/"failed" once finished.

		Args:
			plan_id: ID of the plan to export
		"""
		try:
			export = await store.export_plan(plan_id)
		except PlanStoreError as e:
			return json.dumps({"error": str(e)})

		if export is None:
			return json.dumps({"error": f"Plan not found: {plan_id}"})

		return json.dumps({
			"plan": export.plan.model_dump(mode="json"),
			"status": export.status.value,
			"steps": [
				{**s.model_dump(mode="json"), "state": export.step_state(s).value}
				for s in export.steps
			],
		}, indent=2)

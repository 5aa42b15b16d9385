"""
Plan Models - Pydantic schemas for plans and their steps.

These models double as the decode step at the storage boundary: every row
read from SQLite goes through ``model_validate`` and a row that does not fit
the schema is rejected instead of being passed on half-formed.
"""

import math
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


class StepStatus(str, Enum):
	"""Status of a step. Only IN_PROGRESS is non-terminal."""
	IN_PROGRESS = "in_progress"
	COMPLETED = "completed"
	FAILED = "failed"


class Plan(BaseModel):
	"""A named, ordered collection of steps."""
	model_config = ConfigDict(extra="ignore")

	id: StrictStr = Field(description="Unique plan identifier")
	name: StrictStr = Field(description="Short name of the plan")
	description: StrictStr = Field(description="What the plan sets out to do")
	created_at: StrictStr = Field(description="ISO-8601 UTC insertion timestamp")
	active_step_id: Optional[StrictStr] = Field(default=None)


class Step(BaseModel):
	"""One unit of work within a plan."""
	model_config = ConfigDict(extra="ignore")

	id: StrictStr = Field(description="Unique step identifier")
	plan_id: StrictStr = Field(description="Owning plan")
	description: StrictStr = Field(description="What needs to be done")
	completion_condition: StrictStr = Field(description="When the step counts as done")
	status: StepStatus = Field(default=StepStatus.IN_PROGRESS)
	step_order: StrictInt = Field(description="Position within the plan")
	completion_context: Optional[StrictStr] = Field(default=None)
	created_at: StrictStr = Field(description="ISO-8601 UTC insertion timestamp")

	@property
	def is_terminal(self) -> bool:
		return self.status != StepStatus.IN_PROGRESS


class PlanPage(BaseModel):
	"""One page of plans plus the numbers needed for pagination."""
	items: list[Plan] = Field(default_factory=list)
	total: int = 0
	page: int = 1
	page_size: int = 10

	@property
	def total_pages(self) -> int:
		return math.ceil(self.total / self.page_size) if self.page_size else 0

	@property
	def has_next_page(self) -> bool:
		return self.page < self.total_pages


class FailedStep(BaseModel):
	"""Result of failing a step: the failed id and its replacement."""
	failed_step_id: str
	new_step: Step


class PlanStatus(str, Enum):
	"""Overall status of a plan, derived from its steps."""
	IN_PROGRESS = "in_progress"
	COMPLETED = "completed"


class StepState(str, Enum):
	"""Where a step stands from the plan's point of view."""
	ACTIVE = "active"
	NOT_STARTED = "not_started"
	COMPLETED = "completed"
	FAILED = "failed"


class PlanExport(BaseModel):
	"""
	A plan together with all of its steps, read from one snapshot.

	A plan counts as completed only when it has steps and every one of them
	is completed. An in-progress step is active when the plan points at it
	and not started otherwise.
	"""
	plan: Plan
	steps: list[Step] = Field(default_factory=list)

	@property
	def status(self) -> PlanStatus:
		if self.steps and all(s.status == StepStatus.COMPLETED for s in self.steps):
			return PlanStatus.COMPLETED
		return PlanStatus.IN_PROGRESS

	def step_state(self, step: Step) -> StepState:
		if step.status == StepStatus.COMPLETED:
			return StepState.COMPLETED
		if step.status == StepStatus.FAILED:
			return StepState.FAILED
		if step.id == self.plan.active_step_id:
			return StepState.ACTIVE
		return StepState.NOT_STARTED

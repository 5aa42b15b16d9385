"""Plans module - Plan and step storage with forward-only step transitions."""

from .models import (
	FailedStep,
	Plan,
	PlanExport,
	PlanPage,
	PlanStatus,
	Step,
	StepState,
	StepStatus,
)
from .store import (
	IntegrityError,
	PersistenceError,
	PlanStore,
	PlanStoreError,
	PreconditionError,
)

__all__ = [
	"Plan",
	"Step",
	"StepStatus",
	"PlanPage",
	"FailedStep",
	"PlanExport",
	"PlanStatus",
	"StepState",
	"PlanStore",
	"PlanStoreError",
	"PersistenceError",
	"IntegrityError",
	"PreconditionError",
]

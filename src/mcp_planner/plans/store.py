"""
Plan Store - SQLite-backed storage for plans and their steps.

Features:
- Plans own an ordered list of steps, one of which is active
- Step transitions are forward-only: in_progress -> completed | failed
- Failing a step splices a replacement step in right after it
- Every multi-statement change runs in a single BEGIN IMMEDIATE transaction
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional, Type, TypeVar

import aiosqlite
from pydantic import BaseModel, ValidationError

from ..ids import new_id
from .models import FailedStep, Plan, PlanExport, PlanPage, Step, StepStatus

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SCHEMA = """
	CREATE TABLE IF NOT EXISTS plans (
		id TEXT PRIMARY KEY,
		name TEXT NOT NULL,
		description TEXT NOT NULL,
		created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
		active_step_id TEXT REFERENCES steps(id)
	);

	CREATE TABLE IF NOT EXISTS steps (
		id TEXT PRIMARY KEY,
		plan_id TEXT NOT NULL REFERENCES plans(id),
		description TEXT NOT NULL,
		completion_condition TEXT NOT NULL,
		status TEXT CHECK(status IN ('in_progress', 'completed', 'failed')) DEFAULT 'in_progress',
		step_order INTEGER NOT NULL,
		completion_context TEXT,
		created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
	);

	CREATE INDEX IF NOT EXISTS idx_steps_plan_order ON steps(plan_id, step_order);
"""

PLAN_COLUMNS = "plans.id, plans.name, plans.description, plans.created_at, plans.active_step_id"
STEP_COLUMNS = (
	"steps.id, steps.plan_id, steps.description, steps.completion_condition, steps.status, "
	"steps.step_order, steps.completion_context, steps.created_at"
)


class PlanStoreError(Exception):
	"""Base class for plan store errors."""
	pass


class PersistenceError(PlanStoreError):
	"""Raised when the underlying SQLite operation fails."""
	pass


class IntegrityError(PlanStoreError):
	"""Raised when a stored row does not have the expected shape."""
	pass


class PreconditionError(PlanStoreError):
	"""Raised when a requested step transition is not allowed."""
	pass


def _require_text(**fields: object) -> None:
	for name, value in fields.items():
		if not isinstance(value, str) or not value.strip():
			raise ValueError(f"{name} must be a non-empty string")


def _decode(model: Type[ModelT], row: aiosqlite.Row) -> ModelT:
	"""Validate a single row, failing closed on a shape mismatch."""
	try:
		return model.model_validate(dict(row))
	except ValidationError as e:
		raise IntegrityError(f"Invalid {model.__name__.lower()} data from database: {e}") from e


def _decode_valid(model: Type[ModelT], rows: Iterable[aiosqlite.Row]) -> list[ModelT]:
	"""Validate rows for a list read, dropping the ones that do not fit."""
	items = []
	for row in rows:
		try:
			items.append(model.model_validate(dict(row)))
		except ValidationError as e:
			logger.debug(f"Skipping malformed {model.__name__.lower()} row: {e}")
	return items


async def _fetch_one(db: aiosqlite.Connection, query: str, params: tuple = ()) -> Optional[aiosqlite.Row]:
	async with db.execute(query, params) as cursor:
		return await cursor.fetchone()


async def _fetch_all(db: aiosqlite.Connection, query: str, params: tuple = ()) -> list[aiosqlite.Row]:
	async with db.execute(query, params) as cursor:
		return list(await cursor.fetchall())


class PlanStore:
	"""
	SQLite-backed plan and step storage.

	Each operation opens its own connection, so a single store can be shared
	by concurrent callers. Writers are serialized by SQLite's reserved lock;
	a writer that cannot get it within ``busy_timeout`` seconds fails with
	PersistenceError instead of waiting forever.

	Usage:
		store = PlanStore("data/planner.db")

		plan = await store.create_plan("release", "Ship version 2")
		first = await store.create_step(plan.id, "Write changelog", "CHANGELOG.md updated")

		next_step = await store.complete_step(first.id, "Added 2.0 section")
	"""

	def __init__(self, db_path: str | Path, busy_timeout: float = 5.0):
		"""Initialize the plan store."""
		self.db_path = Path(db_path)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		self.busy_timeout = busy_timeout
		self._initialized = False
		self._init_lock = asyncio.Lock()

	async def init(self) -> None:
		"""Create the schema if it does not exist yet."""
		async with self._connect() as db:
			await db.execute("PRAGMA journal_mode = WAL")
			await db.executescript(SCHEMA)
		self._initialized = True
		logger.info(f"Plan store initialized: {self.db_path}")

	async def _ensure_schema(self) -> None:
		if self._initialized:
			return
		async with self._init_lock:
			if not self._initialized:
				await self.init()

	@asynccontextmanager
	async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
		"""Open a connection with explicit transaction control."""
		try:
			async with aiosqlite.connect(
				str(self.db_path),
				timeout=self.busy_timeout,
				isolation_level=None,
			) as db:
				db.row_factory = aiosqlite.Row
				await db.execute("PRAGMA foreign_keys = ON")
				yield db
		except aiosqlite.Error as e:
			raise PersistenceError(str(e)) from e

	@asynccontextmanager
	async def _transaction(self, immediate: bool = True) -> AsyncIterator[aiosqlite.Connection]:
		"""
		Run the enclosed statements as one transaction.

		IMMEDIATE takes the write lock up front so that read-modify-write
		sequences cannot interleave with another writer. Reads that only
		need a consistent snapshot use a deferred transaction.
		"""
		await self._ensure_schema()
		async with self._connect() as db:
			await db.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
			try:
				yield db
			except Exception:
				try:
					await db.execute("ROLLBACK")
				except aiosqlite.Error as rollback_error:
					logger.warning(f"Rollback failed: {rollback_error}")
				raise
			await db.execute("COMMIT")

	async def _fetch_step(self, db: aiosqlite.Connection, step_id: str) -> Optional[Step]:
		row = await _fetch_one(db, f"SELECT {STEP_COLUMNS} FROM steps WHERE id = ?", (step_id,))
		return _decode(Step, row) if row else None

	async def _read_back_step(self, db: aiosqlite.Connection, step_id: str) -> Step:
		step = await self._fetch_step(db, step_id)
		if step is None:
			raise IntegrityError(f"Failed to retrieve created step {step_id}")
		return step

	async def _set_active_step(self, db: aiosqlite.Connection, plan_id: str, step_id: Optional[str]) -> None:
		await db.execute(
			"UPDATE plans SET active_step_id = ? WHERE id = ?",
			(step_id, plan_id),
		)

	async def _insert_step(
		self,
		db: aiosqlite.Connection,
		step_id: str,
		plan_id: str,
		description: str,
		completion_condition: str,
		completion_context: Optional[str] = None,
		step_order: Optional[int] = None,
	) -> None:
		"""Insert a step, appending it to the plan unless an order is given."""
		if step_order is None:
			# Order is computed in the INSERT itself so it cannot race the write.
			await db.execute(
				"""
				INSERT INTO steps (id, plan_id, description, completion_condition, step_order, completion_context)
				VALUES (?, ?, ?, ?, (SELECT COALESCE(MAX(step_order), 0) + 1 FROM steps WHERE plan_id = ?), ?)
				""",
				(step_id, plan_id, description, completion_condition, plan_id, completion_context),
			)
		else:
			await db.execute(
				"""
				INSERT INTO steps (id, plan_id, description, completion_condition, step_order, completion_context)
				VALUES (?, ?, ?, ?, ?, ?)
				""",
				(step_id, plan_id, description, completion_condition, step_order, completion_context),
			)

	async def create_plan(self, name: str, description: str) -> Plan:
		"""
		Create a new plan with no steps.

		Args:
			name: Short plan name
			description: What the plan sets out to do

		Returns:
			The stored Plan, including its server-assigned created_at

		Raises:
			PersistenceError: If the insert fails
			IntegrityError: If the stored row cannot be read back
		"""
		_require_text(name=name, description=description)
		plan_id = new_id()

		async with self._transaction() as db:
			await db.execute(
				"INSERT INTO plans (id, name, description) VALUES (?, ?, ?)",
				(plan_id, name, description),
			)
			row = await _fetch_one(db, f"SELECT {PLAN_COLUMNS} FROM plans WHERE id = ?", (plan_id,))
			if row is None:
				raise IntegrityError(f"Failed to retrieve created plan {plan_id}")
			plan = _decode(Plan, row)

		logger.info(f"Created plan {plan.id} ({plan.name})")
		return plan

	async def get_plan(self, plan_id: str) -> Optional[Plan]:
		"""Get a plan by ID, or None if it does not exist."""
		await self._ensure_schema()
		async with self._connect() as db:
			row = await _fetch_one(db, f"SELECT {PLAN_COLUMNS} FROM plans WHERE id = ?", (plan_id,))
		return _decode(Plan, row) if row else None

	async def list_plans(self, page: int = 1, page_size: int = 10) -> PlanPage:
		"""
		List plans, newest first.

		Args:
			page: 1-based page number
			page_size: Plans per page

		Returns:
			PlanPage with the page items and the total plan count
		"""
		if page < 1:
			raise ValueError(f"page must be >= 1, got {page}")
		if page_size < 1:
			raise ValueError(f"page_size must be >= 1, got {page_size}")
		offset = (page - 1) * page_size

		async with self._transaction(immediate=False) as db:
			count_row = await _fetch_one(db, "SELECT COUNT(*) AS count FROM plans")
			rows = await _fetch_all(
				db,
				f"SELECT {PLAN_COLUMNS} FROM plans ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
				(page_size, offset),
			)

		return PlanPage(
			items=_decode_valid(Plan, rows),
			total=count_row["count"],
			page=page,
			page_size=page_size,
		)

	async def create_step(
		self,
		plan_id: str,
		description: str,
		completion_condition: str,
		completion_context: Optional[str] = None,
	) -> Step:
		"""
		Append a new in-progress step to a plan.

		The first step of a plan becomes its active step. A plan without an
		active step (for example after its last step was completed) points
		at its front-most in-progress step again.

		Raises:
			PersistenceError: If the plan does not exist or the insert fails
		"""
		_require_text(plan_id=plan_id, description=description, completion_condition=completion_condition)
		step_id = new_id()

		async with self._transaction() as db:
			await self._insert_step(
				db, step_id, plan_id, description, completion_condition, completion_context,
			)
			await db.execute(
				"""
				UPDATE plans SET active_step_id = (
					SELECT id FROM steps
					WHERE plan_id = ? AND status = ?
					ORDER BY step_order ASC, rowid ASC LIMIT 1
				)
				WHERE id = ? AND active_step_id IS NULL
				""",
				(plan_id, StepStatus.IN_PROGRESS.value, plan_id),
			)
			step = await self._read_back_step(db, step_id)

		logger.info(f"Created step {step.id} at position {step.step_order} in plan {plan_id}")
		return step

	async def get_step(self, step_id: str) -> Optional[Step]:
		"""Get a step by ID, or None if it does not exist."""
		await self._ensure_schema()
		async with self._connect() as db:
			return await self._fetch_step(db, step_id)

	async def get_active_step(self, plan_id: str) -> Optional[Step]:
		"""
		Get the front-most in-progress step of a plan.

		Derived from status and order rather than plans.active_step_id, so a
		stale pointer does not hide the real active step.
		"""
		await self._ensure_schema()
		async with self._connect() as db:
			row = await _fetch_one(
				db,
				f"""
				SELECT {STEP_COLUMNS} FROM steps
				WHERE plan_id = ? AND status = ?
				ORDER BY step_order ASC, rowid ASC LIMIT 1
				""",
				(plan_id, StepStatus.IN_PROGRESS.value),
			)
		return _decode(Step, row) if row else None

	async def complete_step(self, step_id: str, completion_context: Optional[str]) -> Optional[Step]:
		"""
		Mark an in-progress step completed and advance the plan.

		Args:
			step_id: Step to complete
			completion_context: What was done to meet the completion condition

		Returns:
			The plan's next in-progress step, or None if there is none

		Raises:
			PreconditionError: If the step does not exist or is not in progress
		"""
		async with self._transaction() as db:
			step = await self._fetch_step(db, step_id)
			if step is None:
				raise PreconditionError(f"Step not found: {step_id}")
			if step.status != StepStatus.IN_PROGRESS:
				raise PreconditionError(
					f"Can only complete steps that are in progress (step {step_id} is {step.status.value})"
				)

			await db.execute(
				"UPDATE steps SET status = ?, completion_context = ? WHERE id = ?",
				(StepStatus.COMPLETED.value, completion_context, step_id),
			)

			row = await _fetch_one(
				db,
				f"""
				SELECT {STEP_COLUMNS} FROM steps
				WHERE plan_id = ? AND status = ? AND step_order > ?
				ORDER BY step_order ASC, rowid ASC LIMIT 1
				""",
				(step.plan_id, StepStatus.IN_PROGRESS.value, step.step_order),
			)
			next_step = _decode(Step, row) if row else None

			await self._set_active_step(db, step.plan_id, next_step.id if next_step else None)

		logger.info(
			f"Completed step {step_id} in plan {step.plan_id}; "
			f"next step: {next_step.id if next_step else 'none'}"
		)
		return next_step

	async def fail_step(
		self,
		step_id: str,
		new_description: str,
		new_completion_condition: str,
	) -> FailedStep:
		"""
		Mark the active step failed and splice in a replacement right after it.

		Steps after the failed one move down by one position to make room.
		The failed step keeps its position so the history stays readable.

		Args:
			step_id: The plan's current active step
			new_description: Description of the replacement step
			new_completion_condition: Completion condition of the replacement

		Returns:
			FailedStep with the failed step ID and the new active step

		Raises:
			PreconditionError: If the step does not exist, is not the active
				step, or is not in progress
		"""
		_require_text(new_description=new_description, new_completion_condition=new_completion_condition)

		async with self._transaction() as db:
			row = await _fetch_one(
				db,
				f"""
				SELECT {STEP_COLUMNS}, plans.active_step_id AS active_step_id
				FROM steps JOIN plans ON steps.plan_id = plans.id
				WHERE steps.id = ?
				""",
				(step_id,),
			)
			if row is None:
				raise PreconditionError(f"Step not found: {step_id}")
			failed = _decode(Step, row)
			if row["active_step_id"] != step_id:
				raise PreconditionError(f"Can only fail the current active step (step {step_id} is not active)")
			if failed.status != StepStatus.IN_PROGRESS:
				raise PreconditionError(
					f"Can only fail steps that are in progress (step {step_id} is {failed.status.value})"
				)

			await db.execute(
				"UPDATE steps SET status = ? WHERE id = ?",
				(StepStatus.FAILED.value, step_id),
			)
			await db.execute(
				"UPDATE steps SET step_order = step_order + 1 WHERE plan_id = ? AND step_order > ?",
				(failed.plan_id, failed.step_order),
			)

			new_step_id = new_id()
			await self._insert_step(
				db,
				new_step_id,
				failed.plan_id,
				new_description,
				new_completion_condition,
				step_order=failed.step_order + 1,
			)
			await self._set_active_step(db, failed.plan_id, new_step_id)
			new_step = await self._read_back_step(db, new_step_id)

		logger.info(f"Failed step {step_id} in plan {failed.plan_id}; replaced by {new_step.id}")
		return FailedStep(failed_step_id=step_id, new_step=new_step)

	async def list_steps(self, plan_id: str) -> list[Step]:
		"""List all steps of a plan in execution order, including finished ones."""
		await self._ensure_schema()
		async with self._connect() as db:
			rows = await _fetch_all(
				db,
				f"SELECT {STEP_COLUMNS} FROM steps WHERE plan_id = ? ORDER BY step_order ASC, rowid ASC",
				(plan_id,),
			)
		return _decode_valid(Step, rows)

	async def export_plan(self, plan_id: str) -> Optional[PlanExport]:
		"""
		Read a plan and all of its steps from one snapshot.

		Returns None if the plan does not exist. A malformed plan row raises
		IntegrityError; malformed step rows are dropped as in list_steps.
		"""
		async with self._transaction(immediate=False) as db:
			row = await _fetch_one(db, f"SELECT {PLAN_COLUMNS} FROM plans WHERE id = ?", (plan_id,))
			if row is None:
				return None
			step_rows = await _fetch_all(
				db,
				f"SELECT {STEP_COLUMNS} FROM steps WHERE plan_id = ? ORDER BY step_order ASC, rowid ASC",
				(plan_id,),
			)
		return PlanExport(plan=_decode(Plan, row), steps=_decode_valid(Step, step_rows))

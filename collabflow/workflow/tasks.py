from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from collabflow.workflow.errors import WorkflowValidationError
from collabflow.workflow.models import BatchStatus, SessionState, TaskBatch, TaskStatus

VALID_TASK_STATUSES = frozenset(TaskStatus)


@dataclass(frozen=True)
class TaskUpdate:
    task_id: str
    status: TaskStatus

    def to_dict(self) -> dict:
        return {"taskId": self.task_id, "status": self.status.value}


@dataclass
class TaskUpdateResult:
    applied: list[TaskUpdate] = field(default_factory=list)
    not_found_ids: list[str] = field(default_factory=list)


def _coerce_update(raw: TaskUpdate | Mapping) -> TaskUpdate:
    if isinstance(raw, TaskUpdate):
        task_id, status = raw.task_id, raw.status
    elif isinstance(raw, Mapping):
        task_id = raw.get("taskId", raw.get("task_id"))
        status = raw.get("status")
    else:
        raise WorkflowValidationError(f"Invalid update: {raw!r}")

    if not isinstance(task_id, str) or not task_id.strip():
        raise WorkflowValidationError("Each update requires a non-empty taskId")
    if not isinstance(status, str) or status not in VALID_TASK_STATUSES:
        valid = ", ".join(s.value for s in TaskStatus)
        raise WorkflowValidationError(f"Invalid status: {status!r}. Must be one of: {valid}")
    return TaskUpdate(task_id=task_id, status=TaskStatus(status))


def validate_updates(updates: Sequence[TaskUpdate | Mapping]) -> list[TaskUpdate]:
    """Normalize and validate a task update list before any state is read."""
    if not isinstance(updates, (list, tuple)):
        raise WorkflowValidationError("updates must be a non-empty list")
    validated = [_coerce_update(u) for u in updates]
    if not validated:
        raise WorkflowValidationError("updates must be a non-empty list")
    return validated


def recompute_task_ids(batches: Iterable[TaskBatch]) -> tuple[list[str], list[str]]:
    completed: list[str] = []
    pending: list[str] = []
    for batch in batches:
        for task in batch.tasks:
            if task.status == TaskStatus.COMPLETED:
                completed.append(task.id)
            elif task.status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS):
                pending.append(task.id)
    return completed, pending


def aggregate_batch_status(batch: TaskBatch) -> BatchStatus:
    # all-pending or pending/failed mixes keep the prior status to avoid flapping;
    # an empty batch has nothing left to run and counts as completed
    if all(t.status == TaskStatus.COMPLETED for t in batch.tasks):
        return BatchStatus.COMPLETED
    if any(t.status == TaskStatus.IN_PROGRESS for t in batch.tasks):
        return BatchStatus.IN_PROGRESS
    return batch.status


def refresh_task_caches(session: SessionState) -> None:
    for batch in session.batches:
        batch.status = aggregate_batch_status(batch)
    session.completed_tasks, session.pending_tasks = recompute_task_ids(session.batches)


def apply_task_updates(session: SessionState, updates: Sequence[TaskUpdate | Mapping]) -> TaskUpdateResult:
    """Apply status updates to the session's batches in a single pass.

    Unknown ids are reported rather than failing the call. The id caches and
    batch aggregates are rebuilt from scratch afterwards.
    """
    validated = validate_updates(updates)
    by_id: dict[str, TaskUpdate] = {}
    for update in validated:
        by_id.setdefault(update.task_id, update)

    seen: set[str] = set()
    for batch in session.batches:
        for task in batch.tasks:
            update = by_id.get(task.id)
            if update is None or task.id in seen:
                continue
            task.status = update.status
            seen.add(task.id)

    refresh_task_caches(session)

    result = TaskUpdateResult()
    for task_id, update in by_id.items():
        if task_id in seen:
            result.applied.append(update)
        else:
            result.not_found_ids.append(task_id)
    return result

from collabflow.workflow.errors import (
    InvalidTransitionError,
    NotFoundError,
    RoutingLoopError,
    SessionNotFoundError,
    TaskGraphError,
    TaskNotFoundError,
    WorkflowError,
    WorkflowValidationError,
)
from collabflow.workflow.graph import WORKFLOW_STATES, StateId, StateNode
from collabflow.workflow.lifecycle import find_next_pending_item, migrate_work_items, update_item_status
from collabflow.workflow.models import (
    BatchStatus,
    ItemStatus,
    ItemType,
    PipelineMode,
    SessionState,
    SessionType,
    Task,
    TaskBatch,
    TaskStatus,
    WorkItem,
)
from collabflow.workflow.tasks import TaskUpdate, TaskUpdateResult, apply_task_updates
from collabflow.workflow.transitions import Advance, advance_workflow, get_next_state, resolve_to_skill_state

__all__ = [
    "WORKFLOW_STATES",
    "Advance",
    "BatchStatus",
    "InvalidTransitionError",
    "ItemStatus",
    "ItemType",
    "NotFoundError",
    "PipelineMode",
    "RoutingLoopError",
    "SessionNotFoundError",
    "SessionState",
    "SessionType",
    "StateId",
    "StateNode",
    "Task",
    "TaskBatch",
    "TaskGraphError",
    "TaskNotFoundError",
    "TaskStatus",
    "TaskUpdate",
    "TaskUpdateResult",
    "WorkItem",
    "WorkflowError",
    "WorkflowValidationError",
    "advance_workflow",
    "apply_task_updates",
    "find_next_pending_item",
    "get_next_state",
    "migrate_work_items",
    "resolve_to_skill_state",
    "update_item_status",
]

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

from collabflow.channel import Broadcaster
from collabflow.constants import MAX_ROUTING_HOPS, SESSION_LIST_LIMIT
from collabflow.logging import get_logger
from collabflow.workflow.diagram import DiagramRenderer, render_mermaid
from collabflow.workflow.errors import TaskNotFoundError, WorkflowValidationError
from collabflow.workflow.events import SessionStateUpdated, TaskGraphUpdated, WorkflowEvent
from collabflow.workflow.graph import WORKFLOW_STATES, StateId, display_name, parse_state, phase_for_state, state_for_skill
from collabflow.workflow.lifecycle import migrate_work_items
from collabflow.workflow.models import PipelineMode, SessionState, SessionType, WorkItem
from collabflow.workflow.task_graph import sync_task_graph
from collabflow.workflow.tasks import apply_task_updates, validate_updates
from collabflow.workflow.transitions import Advance, advance_workflow

_logger = get_logger(__name__)


class SessionStore(Protocol):
    async def create(self, project_id: str, session_id: str, state: SessionState) -> SessionState: ...
    async def load(self, project_id: str, session_id: str) -> SessionState: ...
    async def save(self, project_id: str, session_id: str, partial: SessionState | dict[str, Any]) -> SessionState: ...
    async def list_sessions(self, project_id: str | None = None, limit: int = ...) -> list[dict]: ...
    async def delete(self, project_id: str, session_id: str) -> bool: ...


def _task_fields(session: SessionState) -> dict[str, Any]:
    return {
        "batches": [b.to_dict() for b in session.batches],
        "completedTasks": list(session.completed_tasks),
        "pendingTasks": list(session.pending_tasks),
    }


def session_view(project_id: str, session_id: str, session: SessionState) -> dict[str, Any]:
    return {
        "project": project_id,
        "session": session_id,
        **session.to_dict(),
        "displayName": display_name(session.state),
        "currentBatch": session.current_batch,
    }


class WorkflowService:
    """Operation surface of the workflow engine.

    Every operation is one store load, an in-memory mutation, and at most one
    store save. Notifications go out after the save and never fail the
    operation.
    """

    def __init__(
        self,
        store: SessionStore,
        broadcaster: Broadcaster,
        render_diagram: DiagramRenderer = render_mermaid,
        max_routing_hops: int = MAX_ROUTING_HOPS,
        default_pipeline: PipelineMode = PipelineMode.PHASE_BATCHED,
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.render_diagram = render_diagram
        self.max_routing_hops = max_routing_hops
        self.default_pipeline = default_pipeline

    async def _notify(self, event: WorkflowEvent) -> None:
        # committed already; delivery is best-effort
        try:
            await self.broadcaster.publish(event)
        except Exception:
            _logger.exception("Broadcast of %s failed for %s/%s", event.type, event.project_id, event.session_id)

    # --- sessions ---

    async def create_session(
        self,
        project_id: str,
        session_id: str,
        work_items: Iterable[WorkItem | Mapping] = (),
        session_type: SessionType = SessionType.STRUCTURED,
        pipeline: PipelineMode | None = None,
    ) -> dict[str, Any]:
        items = [w if isinstance(w, WorkItem) else WorkItem.from_dict(w) for w in work_items]
        numbers = [w.number for w in items]
        if len(numbers) != len(set(numbers)):
            raise WorkflowValidationError("Work item numbers must be unique")

        state = SessionState(
            state=StateId.COLLAB_START.value,
            work_items=items,
            session_type=session_type,
            pipeline=pipeline or self.default_pipeline,
            phase=phase_for_state(StateId.COLLAB_START),
        )
        await self.store.create(project_id, session_id, state)
        _logger.info("Created session %s/%s with %d item(s)", project_id, session_id, len(items))
        return session_view(project_id, session_id, state)

    async def get_session(self, project_id: str, session_id: str) -> dict[str, Any]:
        session = await self.store.load(project_id, session_id)
        return session_view(project_id, session_id, session)

    async def list_sessions(self, project_id: str | None = None, limit: int = SESSION_LIST_LIMIT) -> list[dict]:
        return await self.store.list_sessions(project_id, limit=limit)

    async def delete_session(self, project_id: str, session_id: str) -> bool:
        return await self.store.delete(project_id, session_id)

    # --- workflow ---

    async def _advance(self, project_id: str, session_id: str, session: SessionState, completed: str) -> Advance:
        result = advance_workflow(completed, session, self.max_routing_hops)
        if not result.advanced and result.updated_item is None:
            _logger.debug("Completion of %s left %s/%s unchanged", completed, project_id, session_id)
            return result
        saved = await self.store.save(project_id, session_id, session)
        await self._notify(
            SessionStateUpdated(
                project_id=project_id,
                session_id=session_id,
                payload={
                    "completed": completed,
                    "displayName": display_name(saved.state),
                    **saved.to_dict(),
                },
            )
        )
        return result

    async def _load_migrated(self, project_id: str, session_id: str) -> SessionState:
        session = await self.store.load(project_id, session_id)
        session.work_items = migrate_work_items(session.work_items, session.pipeline)
        return session

    async def advance_workflow(self, project_id: str, session_id: str, completed_state: str) -> dict[str, Any]:
        session = await self._load_migrated(project_id, session_id)
        result = await self._advance(project_id, session_id, session, completed_state)
        return {
            "previousState": completed_state,
            "advanced": result.advanced,
            "state": session.state,
            "skill": result.skill,
            "phase": session.phase,
            "displayName": display_name(session.state),
            "currentItem": session.current_item,
            "updatedItem": result.updated_item.to_dict() if result.updated_item else None,
        }

    def _completed_state(self, session: SessionState, skill: str) -> StateId:
        current = parse_state(session.state)
        if current is not None and WORKFLOW_STATES[current].skill == skill:
            return current
        mapped = state_for_skill(skill)
        if mapped is None:
            raise WorkflowValidationError(f"Unknown skill: {skill}")
        _logger.warning("Skill %s does not match state %s, assuming %s", skill, session.state, mapped)
        return mapped

    async def complete_skill(self, project_id: str, session_id: str, skill: str) -> dict[str, Any]:
        if not skill:
            raise WorkflowValidationError("skill is required")
        session = await self._load_migrated(project_id, session_id)
        completed = self._completed_state(session, skill)
        result = await self._advance(project_id, session_id, session, completed)

        if result.skill is None:
            return {"next_skill": None, "action": "none", "state": session.state}

        params: dict[str, Any] = {}
        if session.current_item is not None:
            params["item_number"] = session.current_item
        if result.state == StateId.EXECUTE_BATCH and session.current_batch is not None:
            params["batch_index"] = session.current_batch
        return {"next_skill": result.skill, "state": session.state, "params": params}

    # --- task graph ---

    async def _publish_task_graph(
        self, project_id: str, session_id: str, session: SessionState, diagram: str, **extra: Any
    ) -> None:
        await self._notify(
            TaskGraphUpdated(
                project_id=project_id,
                session_id=session_id,
                payload={"diagram": diagram, **_task_fields(session), **extra},
            )
        )

    def _task_response(self, session: SessionState, diagram: str, minimal: bool, **fields: Any) -> dict[str, Any]:
        response = {"success": True, **fields}
        if not minimal:
            response.update({"diagram": diagram, **_task_fields(session)})
        return response

    async def update_task_status(
        self, project_id: str, session_id: str, task_id: str, status: str, minimal: bool = False
    ) -> dict[str, Any]:
        (update,) = validate_updates([{"taskId": task_id, "status": status}])
        session = await self.store.load(project_id, session_id)
        if not any(t.id == task_id for b in session.batches for t in b.tasks):
            raise TaskNotFoundError(task_id)

        apply_task_updates(session, [update])
        await self.store.save(project_id, session_id, _task_fields(session))
        diagram = self.render_diagram(session.batches)
        await self._publish_task_graph(
            project_id, session_id, session, diagram, updatedTaskId=update.task_id, updatedStatus=update.status.value
        )
        return self._task_response(session, diagram, minimal, taskId=update.task_id, status=update.status.value)

    async def update_tasks_status(
        self, project_id: str, session_id: str, updates: Sequence[Mapping], minimal: bool = False
    ) -> dict[str, Any]:
        validated = validate_updates(updates)
        session = await self.store.load(project_id, session_id)

        result = apply_task_updates(session, validated)
        await self.store.save(project_id, session_id, _task_fields(session))
        diagram = self.render_diagram(session.batches)
        updated = [u.to_dict() for u in result.applied]
        await self._publish_task_graph(project_id, session_id, session, diagram, updatedTasks=updated)
        if result.not_found_ids:
            _logger.warning("Tasks not found in %s/%s: %s", project_id, session_id, ", ".join(result.not_found_ids))
        return self._task_response(session, diagram, minimal, updated=updated, notFoundIds=result.not_found_ids)

    async def get_task_graph(self, project_id: str, session_id: str) -> dict[str, Any]:
        session = await self.store.load(project_id, session_id)
        return {"diagram": self.render_diagram(session.batches), **_task_fields(session)}

    async def sync_task_graph(
        self, project_id: str, session_id: str, document: str | None = None, minimal: bool = False
    ) -> dict[str, Any]:
        session = await self.store.load(project_id, session_id)
        sync_task_graph(session, document)
        await self.store.save(project_id, session_id, _task_fields(session))
        diagram = self.render_diagram(session.batches)
        await self._publish_task_graph(project_id, session_id, session, diagram)
        return self._task_response(session, diagram, minimal, taskCount=sum(len(b.tasks) for b in session.batches))

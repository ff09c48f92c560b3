import pytest

from collabflow.workflow.errors import SessionNotFoundError, TaskNotFoundError, WorkflowValidationError
from collabflow.workflow.events import EventType, SessionStateUpdated, TaskGraphUpdated
from collabflow.workflow.models import ItemStatus, TaskStatus
from collabflow.workflow.service import WorkflowService
from collabflow.workflow.tasks import recompute_task_ids

PROJECT = "/home/dev/project"
SESSION = "bright-fox"

EMPTY_DIAGRAM = 'graph TD\n    empty["No tasks defined"]'


async def seed(service: WorkflowService, items=(), batches=None, **fields) -> None:
    await service.create_session(PROJECT, SESSION, work_items=items)
    partial = dict(fields)
    if batches is not None:
        completed, pending = recompute_task_ids(batches)
        partial.update(
            batches=[b.to_dict() for b in batches],
            completedTasks=completed,
            pendingTasks=pending,
        )
    if partial:
        await service.store.save(PROJECT, SESSION, partial)


@pytest.fixture
def two_waves(batches_factory):
    return batches_factory({"setup": "pending", "schema": "pending"}, {"api": "pending"})


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_session(self, service: WorkflowService):
        view = await service.create_session(
            PROJECT, SESSION, work_items=[{"number": 1, "title": "Parser", "type": "code"}]
        )
        assert view["project"] == PROJECT
        assert view["session"] == SESSION
        assert view["state"] == "collab-start"
        assert view["displayName"] == "Starting"
        assert view["workItems"] == [{"number": 1, "title": "Parser", "type": "code", "status": "pending"}]
        assert view["pipeline"] == "phase_batched"
        assert view["currentBatch"] is None

    @pytest.mark.asyncio
    async def test_duplicate_item_numbers(self, service: WorkflowService):
        items = [{"number": 1, "title": "a", "type": "code"}, {"number": 1, "title": "b", "type": "task"}]
        with pytest.raises(WorkflowValidationError, match="unique"):
            await service.create_session(PROJECT, SESSION, work_items=items)

    @pytest.mark.asyncio
    async def test_get_list_delete(self, service: WorkflowService):
        await seed(service)

        assert (await service.get_session(PROJECT, SESSION))["state"] == "collab-start"
        assert [s["session"] for s in await service.list_sessions(PROJECT)] == [SESSION]
        assert await service.delete_session(PROJECT, SESSION) is True
        with pytest.raises(SessionNotFoundError):
            await service.get_session(PROJECT, SESSION)


class TestCompleteSkill:
    @pytest.mark.asyncio
    async def test_walks_into_first_item(self, service: WorkflowService, broadcaster):
        await seed(service, items=[{"number": 1, "title": "Parser", "type": "code"}])

        result = await service.complete_skill(PROJECT, SESSION, "collab-start")
        assert result == {"next_skill": "gather-session-goals", "state": "gather-goals", "params": {}}

        result = await service.complete_skill(PROJECT, SESSION, "gather-session-goals")
        assert result["next_skill"] == "collab-clear"

        result = await service.complete_skill(PROJECT, SESSION, "collab-clear")
        assert result == {
            "next_skill": "brainstorming-exploring",
            "state": "brainstorm-exploring",
            "params": {"item_number": 1},
        }

        assert len(broadcaster.events) == 3
        assert all(isinstance(e, SessionStateUpdated) for e in broadcaster.events)
        assert broadcaster.events[-1].payload["completed"] == "clear-pre-item"
        assert broadcaster.events[-1].payload["state"] == "brainstorm-exploring"

    @pytest.mark.asyncio
    async def test_skill_not_matching_state_uses_skill_owner(self, service: WorkflowService):
        await seed(service, items=[{"number": 1, "title": "Parser", "type": "code"}])

        result = await service.complete_skill(PROJECT, SESSION, "brainstorming-validating")

        assert result == {"next_skill": "collab-clear", "state": "clear-post-brainstorm", "params": {"item_number": 1}}
        session = await service.get_session(PROJECT, SESSION)
        assert session["workItems"][0]["status"] == ItemStatus.BRAINSTORMED

    @pytest.mark.asyncio
    async def test_unknown_skill(self, service: WorkflowService, broadcaster):
        await seed(service)
        with pytest.raises(WorkflowValidationError, match="Unknown skill"):
            await service.complete_skill(PROJECT, SESSION, "juggling")
        with pytest.raises(WorkflowValidationError):
            await service.complete_skill(PROJECT, SESSION, "")
        assert broadcaster.events == []

    @pytest.mark.asyncio
    async def test_execute_batch_gets_batch_index(self, service: WorkflowService):
        await seed(
            service,
            items=[{"number": 1, "title": "Parser", "type": "code", "status": "complete"}],
            state="clear-pre-execute",
        )

        result = await service.complete_skill(PROJECT, SESSION, "collab-clear")

        assert result["next_skill"] == "executing-plans"
        assert result["state"] == "execute-batch"
        assert result["params"]["batch_index"] == 0
        graph = await service.get_task_graph(PROJECT, SESSION)
        assert graph["pendingTasks"] == ["item-1"]

    @pytest.mark.asyncio
    async def test_done_has_no_next_skill(self, service: WorkflowService):
        await seed(service, state="cleanup")
        result = await service.complete_skill(PROJECT, SESSION, "collab-cleanup")
        assert result == {"next_skill": None, "action": "none", "state": "done"}

    @pytest.mark.asyncio
    async def test_advance_workflow_reports_item_update(self, service: WorkflowService):
        await seed(
            service,
            items=[{"number": 2, "title": "Docs", "type": "task", "status": "brainstormed"}],
            state="task-planning",
            currentItem=2,
        )

        result = await service.advance_workflow(PROJECT, SESSION, "task-planning")

        assert result["previousState"] == "task-planning"
        assert result["advanced"] is True
        assert result["state"] == "clear-post-brainstorm"
        assert result["updatedItem"] == {"number": 2, "title": "Docs", "type": "task", "status": "complete"}
        assert result["currentItem"] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("completed", ["some-future-skill", "work-item-router", "rough-draft-interface"])
    async def test_inert_completion_is_not_saved(self, service: WorkflowService, broadcaster, completed: str):
        await seed(service, items=[{"number": 1, "title": "Parser", "type": "code"}])
        before = await service.get_session(PROJECT, SESSION)

        result = await service.advance_workflow(PROJECT, SESSION, completed)

        assert result["advanced"] is False
        assert result["updatedItem"] is None
        assert result["state"] == "collab-start"
        assert await service.get_session(PROJECT, SESSION) == before
        assert broadcaster.events == []


class TestUpdateTaskStatus:
    @pytest.mark.asyncio
    async def test_updates_and_broadcasts_once(self, service: WorkflowService, broadcaster, two_waves):
        await seed(service, batches=two_waves)

        result = await service.update_task_status(PROJECT, SESSION, "setup", "completed")

        assert result["success"] is True
        assert result["taskId"] == "setup"
        assert result["status"] == "completed"
        assert result["completedTasks"] == ["setup"]
        assert result["pendingTasks"] == ["schema", "api"]
        assert result["diagram"].startswith("graph TD")

        assert len(broadcaster.events) == 1
        event = broadcaster.events[0]
        assert isinstance(event, TaskGraphUpdated)
        assert event.type == EventType.TASK_GRAPH_UPDATED
        assert event.project_id == PROJECT
        assert event.payload["updatedTaskId"] == "setup"
        assert event.payload["updatedStatus"] == "completed"
        assert event.payload["diagram"] == result["diagram"]

        graph = await service.get_task_graph(PROJECT, SESSION)
        assert graph["completedTasks"] == ["setup"]

    @pytest.mark.asyncio
    async def test_minimal_response(self, service: WorkflowService, two_waves):
        await seed(service, batches=two_waves)
        result = await service.update_task_status(PROJECT, SESSION, "api", "in_progress", minimal=True)
        assert result == {"success": True, "taskId": "api", "status": "in_progress"}

    @pytest.mark.asyncio
    async def test_unknown_task_leaves_session_untouched(self, service: WorkflowService, broadcaster, two_waves):
        await seed(service, batches=two_waves)
        before = await service.get_session(PROJECT, SESSION)

        with pytest.raises(TaskNotFoundError, match="Task not found: X"):
            await service.update_task_status(PROJECT, SESSION, "X", "completed")

        assert await service.get_session(PROJECT, SESSION) == before
        assert broadcaster.events == []

    @pytest.mark.asyncio
    async def test_invalid_status_checked_before_lookup(self, service: WorkflowService):
        with pytest.raises(WorkflowValidationError, match="Invalid status"):
            await service.update_task_status(PROJECT, "missing", "setup", "done")
        with pytest.raises(SessionNotFoundError):
            await service.update_task_status(PROJECT, "missing", "setup", "completed")

    @pytest.mark.asyncio
    async def test_broadcast_failure_does_not_fail_update(self, store, broadcaster_factory, two_waves):
        failing = broadcaster_factory(fail=True)
        service = WorkflowService(store=store, broadcaster=failing)
        await seed(service, batches=two_waves)

        result = await service.update_task_status(PROJECT, SESSION, "setup", "completed")

        assert result["success"] is True
        assert len(failing.events) == 1
        assert (await service.get_task_graph(PROJECT, SESSION))["completedTasks"] == ["setup"]


class TestUpdateTasksStatus:
    @pytest.mark.asyncio
    async def test_partial_success(self, service: WorkflowService, broadcaster, two_waves):
        await seed(service, batches=two_waves)

        result = await service.update_tasks_status(
            PROJECT,
            SESSION,
            [{"taskId": "setup", "status": "completed"}, {"taskId": "X", "status": "failed"}],
        )

        assert result["success"] is True
        assert result["updated"] == [{"taskId": "setup", "status": "completed"}]
        assert result["notFoundIds"] == ["X"]
        assert result["batches"][0]["status"] == "pending"
        assert len(broadcaster.events) == 1
        assert broadcaster.events[0].payload["updatedTasks"] == result["updated"]

    @pytest.mark.asyncio
    async def test_completing_a_wave(self, service: WorkflowService, two_waves):
        await seed(service, batches=two_waves)

        result = await service.update_tasks_status(
            PROJECT,
            SESSION,
            [{"taskId": "setup", "status": "completed"}, {"taskId": "schema", "status": "completed"}],
            minimal=True,
        )

        assert set(result) == {"success", "updated", "notFoundIds"}
        session = await service.get_session(PROJECT, SESSION)
        assert session["batches"][0]["status"] == "completed"
        assert session["currentBatch"] == 1

    @pytest.mark.asyncio
    async def test_empty_updates(self, service: WorkflowService, broadcaster):
        await seed(service)
        with pytest.raises(WorkflowValidationError, match="non-empty"):
            await service.update_tasks_status(PROJECT, SESSION, [])
        assert broadcaster.events == []


class TestTaskGraph:
    @pytest.mark.asyncio
    async def test_empty_graph(self, service: WorkflowService):
        await seed(service)
        graph = await service.get_task_graph(PROJECT, SESSION)
        assert graph == {"diagram": EMPTY_DIAGRAM, "batches": [], "completedTasks": [], "pendingTasks": []}

    @pytest.mark.asyncio
    async def test_read_does_not_broadcast(self, service: WorkflowService, broadcaster, two_waves):
        await seed(service, batches=two_waves)
        await service.get_task_graph(PROJECT, SESSION)
        assert broadcaster.events == []

    @pytest.mark.asyncio
    async def test_sync_from_document(self, service: WorkflowService, broadcaster):
        await seed(service)
        document = "```yaml\ntasks:\n  - id: a\n  - id: b\n    depends-on: [a]\n```"

        result = await service.sync_task_graph(PROJECT, SESSION, document)

        assert result["taskCount"] == 2
        assert [b["id"] for b in result["batches"]] == ["batch-1", "batch-2"]
        assert "a --> b" in result["diagram"]
        assert len(broadcaster.events) == 1

        session = await service.get_session(PROJECT, SESSION)
        assert session["pendingTasks"] == ["a", "b"]
        assert all(t["status"] == TaskStatus.PENDING for b in session["batches"] for t in b["tasks"])

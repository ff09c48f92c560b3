import json

import pytest

from collabflow.mcp_server import HANDLERS, TOOLS, call_tool
from collabflow.workflow.service import WorkflowService

TASK_GRAPH = "```yaml\ntasks:\n  - id: setup\n  - id: api\n    depends-on: [setup]\n```"


async def create(service: WorkflowService) -> None:
    await service.create_session("demo", "s1", work_items=[{"number": 1, "title": "Parser", "type": "code"}])
    await service.sync_task_graph("demo", "s1", TASK_GRAPH)


def test_every_tool_has_a_handler():
    assert {t.name for t in TOOLS} == set(HANDLERS)


class TestCallTool:
    @pytest.mark.asyncio
    async def test_complete_skill(self, service: WorkflowService):
        await create(service)

        text = await call_tool(service, "complete_skill", {"project": "demo", "session": "s1", "skill": "collab-start"})

        assert json.loads(text) == {"next_skill": "gather-session-goals", "state": "gather-goals", "params": {}}

    @pytest.mark.asyncio
    async def test_update_task_status(self, service: WorkflowService, broadcaster):
        await create(service)
        broadcaster.events.clear()

        text = await call_tool(
            service,
            "update_task_status",
            {"project": "demo", "session": "s1", "taskId": "setup", "status": "completed", "minimal": True},
        )

        assert json.loads(text) == {"success": True, "taskId": "setup", "status": "completed"}
        assert len(broadcaster.events) == 1

    @pytest.mark.asyncio
    async def test_update_tasks_status(self, service: WorkflowService):
        await create(service)

        text = await call_tool(
            service,
            "update_tasks_status",
            {
                "project": "demo",
                "session": "s1",
                "updates": [{"taskId": "setup", "status": "completed"}, {"taskId": "nope", "status": "failed"}],
            },
        )

        result = json.loads(text)
        assert result["notFoundIds"] == ["nope"]
        assert result["completedTasks"] == ["setup"]

    @pytest.mark.asyncio
    async def test_read_tools(self, service: WorkflowService):
        await create(service)

        graph = json.loads(await call_tool(service, "get_task_graph", {"project": "demo", "session": "s1"}))
        assert graph["pendingTasks"] == ["setup", "api"]

        state = json.loads(await call_tool(service, "get_session_state", {"project": "demo", "session": "s1"}))
        assert state["state"] == "collab-start"
        assert state["workItems"][0]["title"] == "Parser"

    @pytest.mark.asyncio
    async def test_errors_are_returned_as_text(self, service: WorkflowService):
        await create(service)

        assert await call_tool(service, "launch_rockets", {}) == "Unknown tool: launch_rockets"

        missing_task = {"project": "demo", "session": "s1", "taskId": "ghost", "status": "completed"}
        assert await call_tool(service, "update_task_status", missing_task) == "Error: Task not found: ghost"

        missing_session = {"project": "demo", "session": "missing"}
        assert await call_tool(service, "get_task_graph", missing_session) == "Error: Session not found: demo/missing"

        text = await call_tool(service, "complete_skill", {"project": "demo", "session": "s1"})
        assert text.startswith("Error: missing required argument")

    @pytest.mark.asyncio
    async def test_malformed_updates_are_validation_errors(self, service: WorkflowService, broadcaster):
        await create(service)
        broadcaster.events.clear()

        list_status = {"project": "demo", "session": "s1", "updates": [{"taskId": "setup", "status": ["completed"]}]}
        assert (await call_tool(service, "update_tasks_status", list_status)).startswith("Error: Invalid status")

        not_a_list = {"project": "demo", "session": "s1", "updates": "setup"}
        assert await call_tool(service, "update_tasks_status", not_a_list) == "Error: updates must be a non-empty list"

        assert broadcaster.events == []
        assert (await service.get_task_graph("demo", "s1"))["completedTasks"] == []

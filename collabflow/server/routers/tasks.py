from fastapi import APIRouter

from collabflow.server.errors import http_errors
from collabflow.server.runtime import get_service
from collabflow.server.schemas import SyncTaskGraphRequest, TasksStatusRequest, TaskStatusRequest

router = APIRouter(tags=["tasks"])


@router.post("/sessions/{project}/{session}/tasks/status")
async def update_tasks_status(project: str, session: str, request: TasksStatusRequest):
    updates = [{"taskId": u.task_id, "status": u.status} for u in request.updates]
    with http_errors():
        return await get_service().update_tasks_status(project, session, updates, minimal=request.minimal)


@router.post("/sessions/{project}/{session}/tasks/{task_id}/status")
async def update_task_status(project: str, session: str, task_id: str, request: TaskStatusRequest):
    with http_errors():
        return await get_service().update_task_status(
            project, session, task_id, request.status, minimal=request.minimal
        )


@router.get("/sessions/{project}/{session}/task-graph")
async def get_task_graph(project: str, session: str):
    with http_errors():
        return await get_service().get_task_graph(project, session)


@router.post("/sessions/{project}/{session}/task-graph/sync")
async def sync_task_graph(project: str, session: str, request: SyncTaskGraphRequest):
    with http_errors():
        return await get_service().sync_task_graph(project, session, request.document, minimal=request.minimal)

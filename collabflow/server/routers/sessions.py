from fastapi import APIRouter, HTTPException

from collabflow.constants import SESSION_LIST_LIMIT
from collabflow.server.errors import http_errors
from collabflow.server.runtime import get_service
from collabflow.server.schemas import AdvanceRequest, CompleteSkillRequest, CreateSessionRequest

router = APIRouter(tags=["sessions"])


@router.post("/sessions", status_code=201)
async def create_session(request: CreateSessionRequest):
    with http_errors():
        return await get_service().create_session(
            request.project,
            request.session,
            work_items=[item.model_dump() for item in request.work_items],
            session_type=request.session_type,
            pipeline=request.pipeline,
        )


@router.get("/sessions")
async def list_sessions(project: str | None = None, limit: int = SESSION_LIST_LIMIT):
    sessions = await get_service().list_sessions(project, limit=limit)
    return {"sessions": sessions}


@router.get("/sessions/{project}/{session}")
async def get_session(project: str, session: str):
    with http_errors():
        return await get_service().get_session(project, session)


@router.delete("/sessions/{project}/{session}")
async def delete_session(project: str, session: str):
    deleted = await get_service().delete_session(project, session)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Session not found: {project}/{session}")
    return {"status": "deleted"}


@router.post("/sessions/{project}/{session}/advance")
async def advance(project: str, session: str, request: AdvanceRequest):
    with http_errors():
        return await get_service().advance_workflow(project, session, request.state)


@router.post("/sessions/{project}/{session}/complete-skill")
async def complete_skill(project: str, session: str, request: CompleteSkillRequest):
    with http_errors():
        return await get_service().complete_skill(project, session, request.skill)

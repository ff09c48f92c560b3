from pydantic import BaseModel, Field

from collabflow.workflow.models import ItemStatus, ItemType, PipelineMode, SessionType


# --- Sessions ---


class WorkItemIn(BaseModel):
    number: int = Field(ge=1)
    title: str
    type: ItemType = ItemType.CODE
    status: ItemStatus = ItemStatus.PENDING


class CreateSessionRequest(BaseModel):
    project: str = Field(min_length=1)
    session: str = Field(min_length=1)
    work_items: list[WorkItemIn] = Field(default_factory=list)
    session_type: SessionType = SessionType.STRUCTURED
    pipeline: PipelineMode | None = None


# --- Workflow ---


class AdvanceRequest(BaseModel):
    state: str = Field(min_length=1)


class CompleteSkillRequest(BaseModel):
    skill: str = Field(min_length=1)


# --- Task graph ---

# status stays a plain string so the engine reports invalid values itself


class TaskStatusRequest(BaseModel):
    status: str
    minimal: bool = False


class TaskStatusUpdate(BaseModel):
    task_id: str = Field(alias="taskId")
    status: str

    model_config = {"populate_by_name": True}


class TasksStatusRequest(BaseModel):
    updates: list[TaskStatusUpdate]
    minimal: bool = False


class SyncTaskGraphRequest(BaseModel):
    document: str | None = None
    minimal: bool = False

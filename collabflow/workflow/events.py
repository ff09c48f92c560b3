import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    TASK_GRAPH_UPDATED = "task_graph_updated"
    SESSION_STATE_UPDATED = "session_state_updated"


@dataclass(frozen=True)
class WorkflowEvent:
    type: EventType
    project_id: str
    session_id: str
    payload: dict[str, Any]

    def to_message(self) -> dict:
        return {
            "type": self.type.value,
            "project": self.project_id,
            "session": self.session_id,
            "payload": self.payload,
        }

    def to_sse_string(self) -> str:
        return f"event: {self.type.value}\ndata: {json.dumps(self.to_message(), default=str)}\n\n"


@dataclass(frozen=True)
class TaskGraphUpdated(WorkflowEvent):
    type: EventType = field(default=EventType.TASK_GRAPH_UPDATED, init=False)


@dataclass(frozen=True)
class SessionStateUpdated(WorkflowEvent):
    type: EventType = field(default=EventType.SESSION_STATE_UPDATED, init=False)

import asyncio
from collections.abc import AsyncGenerator

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from collabflow.constants import EVENT_QUEUE_SIZE
from collabflow.logging import get_logger
from collabflow.server.runtime import get_runtime
from collabflow.workflow.events import WorkflowEvent
from collabflow.workflow.graph import WORKFLOW_STATES, display_name, phase_for_state

_logger = get_logger(__name__)

router = APIRouter(tags=["workflow"])


@router.get("/workflow/states")
async def list_states():
    return {
        "states": [
            {
                "id": node.id.value,
                "skill": node.skill,
                "displayName": display_name(node.id),
                "phase": phase_for_state(node.id),
                "transitions": [
                    {
                        "to": t.to.value,
                        "condition": (
                            {"type": t.condition.type.value, "value": t.condition.value} if t.condition else None
                        ),
                    }
                    for t in node.transitions
                ],
            }
            for node in WORKFLOW_STATES.values()
        ]
    }


class EventSubscription:
    """Bounded per-connection queue fed from the runtime channel."""

    def __init__(self, project: str | None, session: str | None):
        self.project = project
        self.session = session
        self.queue: asyncio.Queue[WorkflowEvent] = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)

    def matches(self, event: WorkflowEvent) -> bool:
        if self.project and event.project_id != self.project:
            return False
        return not (self.session and event.session_id != self.session)

    async def __call__(self, event: WorkflowEvent) -> None:
        if not isinstance(event, WorkflowEvent) or not self.matches(event):
            return
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            _logger.warning("Dropping %s for slow subscriber", event.type)


@router.get("/events")
async def stream_events(project: str | None = None, session: str | None = None) -> StreamingResponse:
    channel = get_runtime().channel
    subscription = EventSubscription(project, session)
    channel.subscribe_all(subscription)

    async def event_generator() -> AsyncGenerator[str]:
        try:
            while True:
                event = await subscription.queue.get()
                yield event.to_sse_string()
        finally:
            channel.unsubscribe_all(subscription)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )

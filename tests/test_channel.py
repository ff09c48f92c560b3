import pytest

from collabflow.channel import Channel
from collabflow.workflow.events import SessionStateUpdated, TaskGraphUpdated


def graph_event(**payload) -> TaskGraphUpdated:
    return TaskGraphUpdated(project_id="demo", session_id="s1", payload=payload)


class TestChannel:
    @pytest.mark.asyncio
    async def test_typed_subscription(self):
        channel = Channel()
        received = []

        async def on_graph(event):
            received.append(event)

        channel.subscribe(TaskGraphUpdated, on_graph)
        await channel.publish(graph_event(diagram="graph TD"))
        await channel.publish(SessionStateUpdated(project_id="demo", session_id="s1", payload={}))

        assert len(received) == 1
        assert received[0].payload == {"diagram": "graph TD"}

    @pytest.mark.asyncio
    async def test_catch_all_and_unsubscribe(self):
        channel = Channel()
        received = []

        async def everything(event):
            received.append(event.type)

        channel.subscribe_all(everything)
        await channel.publish(graph_event())
        await channel.publish(SessionStateUpdated(project_id="demo", session_id="s1", payload={}))
        channel.unsubscribe_all(everything)
        await channel.publish(graph_event())

        assert received == ["task_graph_updated", "session_state_updated"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        channel = Channel()
        received = []

        async def broken(event):
            raise RuntimeError("boom")

        async def healthy(event):
            received.append(event)

        channel.subscribe(TaskGraphUpdated, broken)
        channel.subscribe(TaskGraphUpdated, healthy)
        await channel.publish(graph_event())

        assert len(received) == 1


def test_event_message_shape():
    event = graph_event(diagram="graph TD", completedTasks=["a"])

    assert event.to_message() == {
        "type": "task_graph_updated",
        "project": "demo",
        "session": "s1",
        "payload": {"diagram": "graph TD", "completedTasks": ["a"]},
    }
    sse = event.to_sse_string()
    assert sse.startswith("event: task_graph_updated\ndata: ")
    assert sse.endswith("\n\n")

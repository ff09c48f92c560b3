from collections.abc import AsyncGenerator
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio

import collabflow.database as database
from collabflow.workflow.models import Task, TaskBatch, TaskStatus
from collabflow.workflow.service import WorkflowService
from collabflow.workflow.store import SessionStateStore


class RecordingBroadcaster:
    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    async def publish(self, event) -> None:
        self.events.append(event)
        if self.fail:
            raise ConnectionError("observer went away")


def make_batches(*waves: dict[str, str]) -> list[TaskBatch]:
    """Build batches from {task_id: status} mappings, one per wave."""
    return [
        TaskBatch(id=f"batch-{i + 1}", tasks=[Task(id=tid, status=TaskStatus(status)) for tid, status in wave.items()])
        for i, wave in enumerate(waves)
    ]


@pytest_asyncio.fixture
async def conn(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection]:
    conn = await database.connect(tmp_path / "test_sessions.db")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store(conn: aiosqlite.Connection) -> SessionStateStore:
    store = SessionStateStore(conn)
    await store.init_schema()
    return store


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def service(store: SessionStateStore, broadcaster: RecordingBroadcaster) -> WorkflowService:
    return WorkflowService(store=store, broadcaster=broadcaster)


@pytest.fixture
def batches_factory():
    return make_batches


@pytest.fixture
def broadcaster_factory():
    return RecordingBroadcaster

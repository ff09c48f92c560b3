import asyncio

import aiosqlite

import collabflow.database as database
from collabflow.channel import Channel
from collabflow.config import Config, get_config
from collabflow.logging import get_logger
from collabflow.workflow.events import TaskGraphUpdated
from collabflow.workflow.service import WorkflowService
from collabflow.workflow.store import SessionStateStore

_logger = get_logger(__name__)


class Runtime:
    def __init__(self, config: Config | None = None):
        self.config = config or get_config()
        self.channel = Channel()

        self.store: SessionStateStore | None = None
        self.service: WorkflowService | None = None
        self._conn: aiosqlite.Connection | None = None
        self._connected = False

    async def connect(self) -> None:
        if self._connected:
            return

        self.config.db_dir.mkdir(parents=True, exist_ok=True)

        self._conn = await database.connect(self.config.sessions_db_path)
        self.store = SessionStateStore(self._conn)
        await self.store.init_schema()

        self.service = WorkflowService(
            store=self.store,
            broadcaster=self.channel,
            max_routing_hops=self.config.max_routing_hops,
            default_pipeline=self.config.pipeline,
        )
        self.channel.subscribe(TaskGraphUpdated, self._on_task_graph_updated)
        self._connected = True
        _logger.info("Runtime connected (db=%s)", self.config.sessions_db_path)

    async def _on_task_graph_updated(self, event: TaskGraphUpdated) -> None:
        payload = event.payload
        _logger.debug(
            "Task graph %s/%s: %d completed, %d pending",
            event.project_id,
            event.session_id,
            len(payload.get("completedTasks", [])),
            len(payload.get("pendingTasks", [])),
        )

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
        self._connected = False


_runtime: Runtime | None = None
_runtime_lock = asyncio.Lock()


async def get_runtime_async() -> Runtime:
    global _runtime
    async with _runtime_lock:
        if _runtime is None:
            _runtime = Runtime()
            await _runtime.connect()
    return _runtime


def get_runtime() -> Runtime:
    if _runtime is None:
        raise RuntimeError("Runtime not initialized. Call get_runtime_async() first.")
    if not _runtime._connected:
        raise RuntimeError("Runtime not connected. Call await runtime.connect() first.")
    return _runtime


def get_service() -> WorkflowService:
    return get_runtime().service


async def reset_runtime() -> None:
    global _runtime
    if _runtime is not None:
        await _runtime.close()
        _runtime = None

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


def _to_dt(v):
    return datetime.fromisoformat(v) if isinstance(v, str) else v


def _to_json_list(v):
    if isinstance(v, str):
        return json.loads(v) if v else []
    return list(v) if v is not None else []


class ItemType(StrEnum):
    CODE = "code"
    TASK = "task"
    BUGFIX = "bugfix"


class ItemStatus(StrEnum):
    PENDING = "pending"
    BRAINSTORMED = "brainstormed"
    INTERFACE = "interface"
    PSEUDOCODE = "pseudocode"
    SKELETON = "skeleton"
    COMPLETE = "complete"
    # legacy label, only accepted on load and rewritten by migrate_work_items
    DOCUMENTED = "documented"


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class SessionType(StrEnum):
    STRUCTURED = "structured"
    VIBE = "vibe"


class PipelineMode(StrEnum):
    PHASE_BATCHED = "phase_batched"
    PER_ITEM = "per_item"


@dataclass(frozen=True)
class WorkItem:
    number: int
    title: str
    type: ItemType
    status: ItemStatus = ItemStatus.PENDING

    def __post_init__(self):
        # frozen: coerce through object.__setattr__
        object.__setattr__(self, "number", int(self.number))
        object.__setattr__(self, "type", ItemType(self.type))
        object.__setattr__(self, "status", ItemStatus(self.status))

    def to_dict(self) -> dict:
        return {"number": self.number, "title": self.title, "type": self.type.value, "status": self.status.value}

    @classmethod
    def from_dict(cls, data: dict) -> "WorkItem":
        return cls(
            number=data["number"],
            title=data.get("title", ""),
            type=data.get("type", ItemType.CODE),
            status=data.get("status", ItemStatus.PENDING),
        )


@dataclass
class Task:
    id: str
    status: TaskStatus = TaskStatus.PENDING
    files: list[str] = field(default_factory=list)
    tests: list[str] = field(default_factory=list)
    description: str = ""
    depends_on: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.status = TaskStatus(self.status)
        self.files = _to_json_list(self.files)
        self.tests = _to_json_list(self.tests)
        self.depends_on = _to_json_list(self.depends_on)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "files": list(self.files),
            "tests": list(self.tests),
            "description": self.description,
            "dependsOn": list(self.depends_on),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        return cls(
            id=data["id"],
            status=data.get("status", TaskStatus.PENDING),
            files=data.get("files"),
            tests=data.get("tests"),
            description=data.get("description", ""),
            depends_on=data.get("dependsOn", data.get("depends_on")),
        )


@dataclass
class TaskBatch:
    id: str
    tasks: list[Task] = field(default_factory=list)
    status: BatchStatus = BatchStatus.PENDING

    def __post_init__(self):
        self.status = BatchStatus(self.status)

    def to_dict(self) -> dict:
        return {"id": self.id, "status": self.status.value, "tasks": [t.to_dict() for t in self.tasks]}

    @classmethod
    def from_dict(cls, data: dict) -> "TaskBatch":
        return cls(
            id=data["id"],
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
            status=data.get("status", BatchStatus.PENDING),
        )


@dataclass
class SessionState:
    """Everything the engine knows about one collaborative session.

    Passed explicitly into every operation and persisted explicitly afterwards.
    completed_tasks / pending_tasks are caches over `batches`: they are
    rebuilt by the task synchronizer after every mutation, never patched.
    """

    state: str
    current_item: int | None = None
    work_items: list[WorkItem] = field(default_factory=list)
    batches: list[TaskBatch] = field(default_factory=list)
    completed_tasks: list[str] = field(default_factory=list)
    pending_tasks: list[str] = field(default_factory=list)
    session_type: SessionType = SessionType.STRUCTURED
    pipeline: PipelineMode = PipelineMode.PHASE_BATCHED
    phase: str | None = None
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self):
        self.session_type = SessionType(self.session_type)
        self.pipeline = PipelineMode(self.pipeline)
        self.last_activity = _to_dt(self.last_activity)
        self.work_items = [w if isinstance(w, WorkItem) else WorkItem.from_dict(w) for w in _to_json_list(self.work_items)]
        self.batches = [b if isinstance(b, TaskBatch) else TaskBatch.from_dict(b) for b in _to_json_list(self.batches)]
        self.completed_tasks = _to_json_list(self.completed_tasks)
        self.pending_tasks = _to_json_list(self.pending_tasks)

    def get_item(self, number: int | None) -> WorkItem | None:
        if number is None:
            return None
        return next((w for w in self.work_items if w.number == number), None)

    def replace_item(self, item: WorkItem) -> None:
        self.work_items = [item if w.number == item.number else w for w in self.work_items]

    @property
    def current_batch(self) -> int | None:
        for i, batch in enumerate(self.batches):
            if batch.status != BatchStatus.COMPLETED:
                return i
        return None

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "phase": self.phase,
            "currentItem": self.current_item,
            "workItems": [w.to_dict() for w in self.work_items],
            "batches": [b.to_dict() for b in self.batches],
            "completedTasks": list(self.completed_tasks),
            "pendingTasks": list(self.pending_tasks),
            "sessionType": self.session_type.value,
            "pipeline": self.pipeline.value,
            "lastActivity": self.last_activity.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionState":
        return cls(
            state=data["state"],
            current_item=data.get("currentItem"),
            work_items=data.get("workItems"),
            batches=data.get("batches"),
            completed_tasks=data.get("completedTasks"),
            pending_tasks=data.get("pendingTasks"),
            session_type=data.get("sessionType") or SessionType.STRUCTURED,
            pipeline=data.get("pipeline") or PipelineMode.PHASE_BATCHED,
            phase=data.get("phase"),
            last_activity=data.get("lastActivity") or datetime.now(UTC),
        )

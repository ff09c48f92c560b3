import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

import yaml

from collabflow.constants import BATCH_ID_PREFIX, TASK_ID_PREFIX
from collabflow.logging import get_logger
from collabflow.workflow.errors import TaskGraphError
from collabflow.workflow.models import ItemType, SessionState, Task, TaskBatch, TaskStatus, WorkItem
from collabflow.workflow.tasks import recompute_task_ids

_logger = get_logger(__name__)

_YAML_BLOCK_RE = re.compile(r"```ya?ml\s*\n(.*?)```", re.DOTALL)

EXECUTABLE_ITEM_TYPES = frozenset({ItemType.CODE, ItemType.BUGFIX})


@dataclass
class TaskSpec:
    id: str
    files: list[str] = field(default_factory=list)
    tests: list[str] = field(default_factory=list)
    description: str = ""
    parallel: bool = False
    depends_on: list[str] = field(default_factory=list)


def _as_str_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _task_from_yaml(entry) -> TaskSpec:
    if not isinstance(entry, dict) or not entry.get("id"):
        raise TaskGraphError(f"Task entry without an id: {entry!r}")
    return TaskSpec(
        id=str(entry["id"]),
        files=_as_str_list(entry.get("files")),
        tests=_as_str_list(entry.get("tests")),
        description=str(entry.get("description") or ""),
        parallel=bool(entry.get("parallel", False)),
        depends_on=_as_str_list(entry.get("depends-on", entry.get("depends_on"))),
    )


def parse_task_graph(document: str) -> list[TaskSpec]:
    """Extract the task list from the first fenced YAML block of a task-graph document.

    Accepts either a top-level `tasks:` mapping or a bare list. A document
    without a YAML block yields no tasks.
    """
    m = _YAML_BLOCK_RE.search(document)
    if not m:
        return []
    try:
        data = yaml.safe_load(m.group(1))
    except yaml.YAMLError as e:
        raise TaskGraphError(f"Malformed task-graph YAML: {e}") from e

    if isinstance(data, dict):
        data = data.get("tasks")
    if data is None:
        return []
    if not isinstance(data, list):
        raise TaskGraphError("Task-graph YAML must contain a list of tasks")
    return [_task_from_yaml(entry) for entry in data]


def detect_cycles(tasks: Sequence[TaskSpec]) -> list[str] | None:
    """Return the first dependency cycle as a closed path, or None."""
    deps = {t.id: [d for d in t.depends_on] for t in tasks}
    visiting: set[str] = set()
    done: set[str] = set()
    path: list[str] = []

    def visit(task_id: str) -> list[str] | None:
        if task_id in done or task_id not in deps:
            return None
        if task_id in visiting:
            return path[path.index(task_id):] + [task_id]
        visiting.add(task_id)
        path.append(task_id)
        for dep in deps[task_id]:
            cycle = visit(dep)
            if cycle:
                return cycle
        path.pop()
        visiting.discard(task_id)
        done.add(task_id)
        return None

    for task in tasks:
        cycle = visit(task.id)
        if cycle:
            return cycle
    return None


def topological_waves(tasks: Sequence[TaskSpec]) -> list[list[TaskSpec]]:
    known = {t.id for t in tasks}
    remaining = {t.id: {d for d in t.depends_on if d in known} for t in tasks}
    placed: set[str] = set()
    waves: list[list[TaskSpec]] = []

    while remaining:
        ready = [t for t in tasks if t.id in remaining and remaining[t.id] <= placed]
        if not ready:
            # detect_cycles runs first, so this only guards against misuse
            raise TaskGraphError(f"Unresolvable dependencies: {', '.join(sorted(remaining))}")
        waves.append(ready)
        for t in ready:
            placed.add(t.id)
            del remaining[t.id]
    return waves


def build_batches(tasks: Sequence[TaskSpec]) -> list[TaskBatch]:
    ids = [t.id for t in tasks]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise TaskGraphError(f"Duplicate task ids: {', '.join(duplicates)}")

    cycle = detect_cycles(tasks)
    if cycle:
        raise TaskGraphError(f"Circular dependency detected: {' -> '.join(cycle)}")

    return [
        TaskBatch(
            id=f"{BATCH_ID_PREFIX}{i + 1}",
            tasks=[
                Task(
                    id=t.id,
                    status=TaskStatus.PENDING,
                    files=list(t.files),
                    tests=list(t.tests),
                    description=t.description,
                    depends_on=list(t.depends_on),
                )
                for t in wave
            ],
        )
        for i, wave in enumerate(topological_waves(tasks))
    ]


def fallback_tasks(work_items: Iterable[WorkItem]) -> list[TaskSpec]:
    return [
        TaskSpec(id=f"{TASK_ID_PREFIX}{item.number}", description=item.title)
        for item in work_items
        if item.type in EXECUTABLE_ITEM_TYPES
    ]


def sync_task_graph(session: SessionState, document: str | None = None) -> list[TaskBatch]:
    """Replace the session's batches with ones built from `document`.

    Falls back to one task per code/bugfix work item when the document is
    missing or holds no tasks.
    """
    tasks = parse_task_graph(document) if document else []
    source = "task-graph"
    if not tasks:
        tasks = fallback_tasks(session.work_items)
        source = "work-items"
    if not tasks:
        raise TaskGraphError("No task-graph, blueprint documents, or executable work items found")

    session.batches = build_batches(tasks)
    session.completed_tasks, session.pending_tasks = recompute_task_ids(session.batches)
    _logger.info("Synced %d task(s) into %d batch(es) from %s", len(tasks), len(session.batches), source)
    return session.batches

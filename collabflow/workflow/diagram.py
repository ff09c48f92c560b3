import re
from collections.abc import Callable, Sequence

from collabflow.constants import NO_TASKS_DIAGRAM_LABEL
from collabflow.workflow.models import TaskBatch, TaskStatus

type DiagramRenderer = Callable[[Sequence[TaskBatch]], str]

STATUS_STYLES = {
    TaskStatus.PENDING: "fill:#e0e0e0,stroke:#9e9e9e",
    TaskStatus.IN_PROGRESS: "fill:#fff9c4,stroke:#f9a825",
    TaskStatus.COMPLETED: "fill:#c8e6c9,stroke:#2e7d32",
    TaskStatus.FAILED: "fill:#ffcdd2,stroke:#c62828",
}

_UNSAFE_ID_RE = re.compile(r"[^a-zA-Z0-9_]")


def node_id(task_id: str) -> str:
    return _UNSAFE_ID_RE.sub("_", task_id)


def _label(text: str) -> str:
    return text.replace('"', "'")


def render_mermaid(batches: Sequence[TaskBatch]) -> str:
    """Render task batches as a mermaid flowchart, one subgraph per wave."""
    lines = ["graph TD"]
    if not any(batch.tasks for batch in batches):
        lines.append(f'    empty["{NO_TASKS_DIAGRAM_LABEL}"]')
        return "\n".join(lines)

    for i, batch in enumerate(batches):
        lines.append(f'    subgraph {node_id(batch.id)}["Wave {i + 1}"]')
        for task in batch.tasks:
            lines.append(f'        {node_id(task.id)}["{_label(task.id)}"]')
        lines.append("    end")

    known = {task.id for batch in batches for task in batch.tasks}
    for batch in batches:
        for task in batch.tasks:
            for dep in task.depends_on:
                if dep in known:
                    lines.append(f"    {node_id(dep)} --> {node_id(task.id)}")

    for batch in batches:
        for task in batch.tasks:
            lines.append(f"    style {node_id(task.id)} {STATUS_STYLES[task.status]}")

    return "\n".join(lines)

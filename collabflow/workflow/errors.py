class WorkflowError(Exception):
    """Base class for every error the workflow engine raises."""


class WorkflowValidationError(WorkflowError, ValueError):
    """Missing or malformed parameters. Caller's fault, surfaced verbatim."""


class NotFoundError(WorkflowError, KeyError):
    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0]) if self.args else ""


class SessionNotFoundError(NotFoundError):
    def __init__(self, project_id: str, session_id: str):
        self.project_id = project_id
        self.session_id = session_id
        super().__init__(f"Session not found: {project_id}/{session_id}")


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class InvalidTransitionError(WorkflowError):
    def __init__(self, item_number: int, from_status: str, to_status: str, reason: str = ""):
        self.item_number = item_number
        self.from_status = from_status
        self.to_status = to_status
        message = f"Invalid transition for item {item_number}: '{from_status}' -> '{to_status}'"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class RoutingLoopError(WorkflowError):
    def __init__(self, start: str, hops: int):
        self.start = start
        self.hops = hops
        super().__init__(f"Routing did not reach a skill state from '{start}' within {hops} hops")


class TaskGraphError(WorkflowError):
    """Task-graph document is malformed, cyclic, or there is nothing to execute."""

from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException

from collabflow.workflow.errors import (
    InvalidTransitionError,
    NotFoundError,
    RoutingLoopError,
    TaskGraphError,
    WorkflowValidationError,
)


@contextmanager
def http_errors() -> Iterator[None]:
    try:
        yield
    except WorkflowValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (InvalidTransitionError, RoutingLoopError) as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except TaskGraphError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from collabflow import __version__
from collabflow.logging import configure_logging
from collabflow.server.routers.sessions import router as sessions_router
from collabflow.server.routers.tasks import router as tasks_router
from collabflow.server.routers.workflow import router as workflow_router
from collabflow.server.runtime import get_runtime_async, reset_runtime


@asynccontextmanager
async def lifespan(app: FastAPI):
    runtime = await get_runtime_async()
    configure_logging(runtime.config.log_level)
    yield
    await reset_runtime()


app = FastAPI(
    title="collabflow",
    description="Collaborative workflow state machine and task-graph engine",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions_router)
app.include_router(tasks_router)
app.include_router(workflow_router)


@app.get("/health")
async def health():
    return {"status": "ok"}

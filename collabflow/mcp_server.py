"""
collabflow MCP Server

Exposes the workflow engine as MCP tools so agents can report skill
completion and task progress directly.

Transports:
    # stdio (default)
    collabflow mcp

    # Streamable HTTP, for remote clients
    collabflow mcp --http
    collabflow mcp --http --port 3001
"""

import contextlib
import json
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from mcp.server import Server
from mcp.types import TextContent, Tool

from collabflow.logging import get_logger
from collabflow.server.runtime import Runtime
from collabflow.workflow.errors import WorkflowError
from collabflow.workflow.models import TaskStatus
from collabflow.workflow.service import WorkflowService

_logger = get_logger(__name__)

_SESSION_PROPS = {
    "project": {"type": "string", "description": "Project identifier (usually the absolute project root)"},
    "session": {"type": "string", "description": "Session name"},
}

_STATUS_PROP = {
    "type": "string",
    "enum": [s.value for s in TaskStatus],
    "description": "New status for the task",
}

TOOLS = (
    Tool(
        name="complete_skill",
        description="Report skill completion and get the next skill to invoke. Routing and state updates are handled here.",
        inputSchema={
            "type": "object",
            "properties": {
                **_SESSION_PROPS,
                "skill": {"type": "string", "description": "Name of the skill that just completed"},
            },
            "required": ["project", "session", "skill"],
        },
    ),
    Tool(
        name="update_task_status",
        description="Update a task's status, regenerate the task graph and notify observers.",
        inputSchema={
            "type": "object",
            "properties": {
                **_SESSION_PROPS,
                "taskId": {"type": "string", "description": "Task ID to update"},
                "status": _STATUS_PROP,
                "minimal": {"type": "boolean", "description": "Return only the success flag. Default: false"},
            },
            "required": ["project", "session", "taskId", "status"],
        },
    ),
    Tool(
        name="update_tasks_status",
        description="Update several tasks' statuses in a single call.",
        inputSchema={
            "type": "object",
            "properties": {
                **_SESSION_PROPS,
                "updates": {
                    "type": "array",
                    "description": "Task updates to apply",
                    "items": {
                        "type": "object",
                        "properties": {
                            "taskId": {"type": "string", "description": "Task ID to update"},
                            "status": _STATUS_PROP,
                        },
                        "required": ["taskId", "status"],
                    },
                },
                "minimal": {"type": "boolean", "description": "Return only success and counts. Default: false"},
            },
            "required": ["project", "session", "updates"],
        },
    ),
    Tool(
        name="get_task_graph",
        description="Get the current task graph without modifying it.",
        inputSchema={"type": "object", "properties": _SESSION_PROPS, "required": ["project", "session"]},
    ),
    Tool(
        name="get_session_state",
        description="Get the session's workflow state, work items and task batches.",
        inputSchema={"type": "object", "properties": _SESSION_PROPS, "required": ["project", "session"]},
    ),
)

type ToolHandler = Callable[[WorkflowService, dict], Awaitable[dict]]

HANDLERS: dict[str, ToolHandler] = {
    "complete_skill": lambda svc, a: svc.complete_skill(a["project"], a["session"], a["skill"]),
    "update_task_status": lambda svc, a: svc.update_task_status(
        a["project"], a["session"], a["taskId"], a["status"], minimal=bool(a.get("minimal", False))
    ),
    "update_tasks_status": lambda svc, a: svc.update_tasks_status(
        a["project"], a["session"], a.get("updates") or [], minimal=bool(a.get("minimal", False))
    ),
    "get_task_graph": lambda svc, a: svc.get_task_graph(a["project"], a["session"]),
    "get_session_state": lambda svc, a: svc.get_session(a["project"], a["session"]),
}


async def call_tool(service: WorkflowService, name: str, arguments: dict[str, Any]) -> str:
    handler = HANDLERS.get(name)
    if handler is None:
        return f"Unknown tool: {name}"
    try:
        result = await handler(service, arguments or {})
    except WorkflowError as e:
        return f"Error: {e}"
    except KeyError as e:
        return f"Error: missing required argument {e}"
    return json.dumps(result, indent=2, default=str)


async def create_server() -> tuple[Server, Runtime]:
    """Create and configure the MCP server backed by a collabflow Runtime."""
    runtime = Runtime()
    await runtime.connect()

    server = Server("collabflow")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return list(TOOLS)

    @server.call_tool()
    async def handle_call_tool(name: str, arguments: dict) -> list[TextContent]:
        try:
            text = await call_tool(runtime.service, name, arguments)
        except Exception as e:
            _logger.exception("MCP tool execution failed: %s", name)
            text = f"Error executing {name}: {e}"
        return [TextContent(type="text", text=text)]

    return server, runtime


async def run_stdio() -> None:
    """Run the MCP server over stdio transport."""
    from mcp.server.stdio import stdio_server

    server, runtime = await create_server()
    print("collabflow MCP server starting (stdio)", file=sys.stderr)

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await runtime.close()


async def run_http(host: str = "127.0.0.1", port: int = 3000) -> None:
    """Run the MCP server over streamable HTTP transport."""
    from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
    from starlette.applications import Starlette
    from starlette.routing import Mount

    server, runtime = await create_server()

    session_manager = StreamableHTTPSessionManager(app=server, stateless=True)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with session_manager.run():
            yield
        await runtime.close()

    app = Starlette(
        routes=[Mount("/mcp", app=session_manager.handle_request)],
        lifespan=lifespan,
    )

    import uvicorn

    print(f"collabflow MCP server starting (HTTP) on {host}:{port}", file=sys.stderr)
    config = uvicorn.Config(app, host=host, port=port)
    srv = uvicorn.Server(config)
    await srv.serve()

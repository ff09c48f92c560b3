import json
from datetime import UTC, datetime
from typing import Any

import aiosqlite

from collabflow.workflow.errors import SessionNotFoundError, WorkflowValidationError
from collabflow.workflow.models import SessionState

SCHEMA = """
CREATE TABLE IF NOT EXISTS workflow_sessions (
    project_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    state TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (project_id, session_id)
);

CREATE INDEX IF NOT EXISTS idx_workflow_sessions_updated ON workflow_sessions(updated_at);
"""

SQL_INSERT = """
INSERT INTO workflow_sessions (project_id, session_id, state, created_at, updated_at)
VALUES (?, ?, ?, ?, ?)
"""

SQL_UPDATE = """
UPDATE workflow_sessions SET state = ?, updated_at = ?
WHERE project_id = ? AND session_id = ?
"""

SQL_GET = "SELECT state FROM workflow_sessions WHERE project_id = ? AND session_id = ?"

SQL_LIST = """
SELECT project_id, session_id, state, created_at, updated_at FROM workflow_sessions
WHERE (? IS NULL OR project_id = ?)
ORDER BY updated_at DESC
LIMIT ?
"""

SQL_DELETE = "DELETE FROM workflow_sessions WHERE project_id = ? AND session_id = ?"


class SessionStateStore:
    """Session documents keyed by (project_id, session_id).

    One JSON document per session; `save` merges top-level keys into the
    stored document. Writers for the same session must be serialized by the
    caller: the last write wins.
    """

    def __init__(self, conn: aiosqlite.Connection):
        self.conn = conn

    async def init_schema(self) -> None:
        await self.conn.executescript(SCHEMA)
        await self.conn.commit()

    async def _get_document(self, project_id: str, session_id: str) -> dict[str, Any]:
        rows = await self.conn.execute_fetchall(SQL_GET, (project_id, session_id))
        if not rows:
            raise SessionNotFoundError(project_id, session_id)
        return json.loads(rows[0]["state"])

    async def exists(self, project_id: str, session_id: str) -> bool:
        rows = await self.conn.execute_fetchall(SQL_GET, (project_id, session_id))
        return bool(rows)

    async def create(self, project_id: str, session_id: str, state: SessionState) -> SessionState:
        if await self.exists(project_id, session_id):
            raise WorkflowValidationError(f"Session already exists: {project_id}/{session_id}")
        now = datetime.now(UTC).isoformat()
        await self.conn.execute(
            SQL_INSERT,
            (project_id, session_id, json.dumps(state.to_dict()), now, now),
        )
        await self.conn.commit()
        return state

    async def load(self, project_id: str, session_id: str) -> SessionState:
        return SessionState.from_dict(await self._get_document(project_id, session_id))

    async def save(self, project_id: str, session_id: str, partial: SessionState | dict[str, Any]) -> SessionState:
        document = await self._get_document(project_id, session_id)
        updates = partial.to_dict() if isinstance(partial, SessionState) else dict(partial)
        document.update(updates)
        now = datetime.now(UTC)
        document["lastActivity"] = now.isoformat()
        await self.conn.execute(SQL_UPDATE, (json.dumps(document), now.isoformat(), project_id, session_id))
        await self.conn.commit()
        return SessionState.from_dict(document)

    async def list_sessions(self, project_id: str | None = None, limit: int = 100) -> list[dict]:
        rows = await self.conn.execute_fetchall(SQL_LIST, (project_id, project_id, limit))
        sessions = []
        for r in rows:
            state = json.loads(r["state"])
            sessions.append(
                {
                    "project": r["project_id"],
                    "session": r["session_id"],
                    "state": state.get("state"),
                    "phase": state.get("phase"),
                    "createdAt": r["created_at"],
                    "updatedAt": r["updated_at"],
                }
            )
        return sessions

    async def delete(self, project_id: str, session_id: str) -> bool:
        cursor = await self.conn.execute(SQL_DELETE, (project_id, session_id))
        await self.conn.commit()
        return cursor.rowcount > 0

"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, List, Optional

from ..workflow.models import Workflow, WorkflowExecution
from .models import WorkflowRecord

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS workflows (
        workflow_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        status TEXT NOT NULL,
        snapshot TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS executions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        workflow_id TEXT NOT NULL REFERENCES workflows (workflow_id),
        status TEXT NOT NULL,
        started_at TEXT NOT NULL,
        record TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS executions_by_workflow ON executions (workflow_id)",
)

UPSERT_WORKFLOW = """
    INSERT INTO workflows (workflow_id, name, status, snapshot)
    VALUES (?, ?, ?, ?)
    ON CONFLICT(workflow_id) DO UPDATE SET
        name = excluded.name,
        status = excluded.status,
        snapshot = excluded.snapshot
"""

INSERT_EXECUTION = """
    INSERT INTO executions (workflow_id, status, started_at, record)
    VALUES (?, ?, ?, ?)
"""


class SQLiteWorkflowRepository:
    """Workflow snapshots and execution history in a single SQLite file.

    Snapshots are stored as pydantic JSON; ``name`` and ``status`` are
    duplicated into columns so listings can filter without decoding.
    Blocking sqlite calls run in a worker thread.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            for statement in SCHEMA:
                self._conn.execute(statement)

    def _write(self, query: str, *params: Any) -> None:
        with self._conn:
            self._conn.execute(query, params)

    def _read(self, query: str, *params: Any) -> List[sqlite3.Row]:
        return self._conn.execute(query, params).fetchall()

    async def save_workflow(self, workflow: Workflow) -> None:
        await asyncio.to_thread(
            self._write,
            UPSERT_WORKFLOW,
            workflow.id,
            workflow.name,
            workflow.status.value,
            workflow.model_dump_json(),
        )

    async def save_execution(self, execution: WorkflowExecution) -> None:
        await asyncio.to_thread(
            self._write,
            INSERT_EXECUTION,
            execution.workflow_id,
            execution.status.value,
            execution.started_at.isoformat(),
            execution.model_dump_json(),
        )

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowRecord]:
        rows = await asyncio.to_thread(
            self._read, "SELECT snapshot FROM workflows WHERE workflow_id = ?", workflow_id
        )
        if not rows:
            return None
        history = await asyncio.to_thread(
            self._read,
            "SELECT record FROM executions WHERE workflow_id = ? ORDER BY id",
            workflow_id,
        )
        return WorkflowRecord(
            workflow=Workflow.model_validate_json(rows[0]["snapshot"]),
            executions=[WorkflowExecution.model_validate_json(r["record"]) for r in history],
        )

    async def list_workflows(self, status: Optional[str] = None) -> List[WorkflowRecord]:
        if status is None:
            rows = await asyncio.to_thread(
                self._read, "SELECT snapshot FROM workflows ORDER BY rowid"
            )
        else:
            rows = await asyncio.to_thread(
                self._read,
                "SELECT snapshot FROM workflows WHERE status = ? ORDER BY rowid",
                status,
            )
        return [
            WorkflowRecord(workflow=Workflow.model_validate_json(row["snapshot"]))
            for row in rows
        ]

    def close(self) -> None:
        self._conn.close()

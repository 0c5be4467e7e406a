"""
Workflow Run Store: append-only record of finished workflow and batch runs.

Behavioral Contract:
- Every finished workflow (completed or failed) is stored exactly once
- Failed runs keep their partial steps and results for diagnosis
- Records are never modified or deleted
- Queryable by id, subject, status and recency
"""

import json
import sqlite3
import threading
from typing import List, Optional, Union

from courseflow.models.workflow import BatchRun, Workflow


class WorkflowRunStore:
    """
    Run history store.
    Prototype: SQLite. Production: the analytics database.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the runs table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                subject TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                error TEXT,
                record_json TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_runs_subject ON workflow_runs(subject)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_runs_status ON workflow_runs(status)
        """)
        self._conn.commit()

    def append(self, run: Union[Workflow, BatchRun]) -> None:
        """Store a finished run."""
        if isinstance(run, Workflow):
            kind, subject = "workflow", run.subject
        else:
            kind, subject = "batch", f"{run.start}-{run.end}"

        with self._lock:
            self._conn.execute(
                """
                INSERT INTO workflow_runs (
                    id, kind, subject, status, started_at, error, record_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.id,
                    kind,
                    subject,
                    run.status.value,
                    run.started_at.isoformat(),
                    run.error,
                    json.dumps(run.model_dump(mode="json"), default=str),
                ),
            )
            self._conn.commit()

    def get(self, run_id: str) -> Optional[dict]:
        """Full stored record for one run."""
        row = self._conn.execute(
            "SELECT record_json FROM workflow_runs WHERE id = ?", (run_id,)
        ).fetchone()
        return json.loads(row["record_json"]) if row else None

    def get_workflow(self, run_id: str) -> Optional[Workflow]:
        record = self.get(run_id)
        if record is None or "subject" not in record:
            return None
        return Workflow.model_validate(record)

    def query_by_subject(self, subject: str) -> List[dict]:
        rows = self._conn.execute(
            """
            SELECT record_json FROM workflow_runs
            WHERE kind = 'workflow' AND subject = ? ORDER BY rowid
            """,
            (str(subject),),
        ).fetchall()
        return [json.loads(r["record_json"]) for r in rows]

    def query_by_status(self, status: str) -> List[dict]:
        rows = self._conn.execute(
            "SELECT record_json FROM workflow_runs WHERE status = ? ORDER BY rowid",
            (status,),
        ).fetchall()
        return [json.loads(r["record_json"]) for r in rows]

    def query_recent(self, limit: int = 50) -> List[dict]:
        rows = self._conn.execute(
            "SELECT record_json FROM workflow_runs ORDER BY rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [json.loads(r["record_json"]) for r in rows]

    def count(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS n FROM workflow_runs").fetchone()
        return row["n"]

    def close(self) -> None:
        self._conn.close()

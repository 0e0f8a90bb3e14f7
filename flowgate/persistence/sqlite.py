"""SQLite implementation of the flowgate repository."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel

from ..testing.models import TestCase, TestRun, TestRunStatus, TestStepResult
from .models import ActivityEntry, ExecutionRecord, ReviewRecord
from .repository import FlowgateRepository

ModelT = TypeVar("ModelT", bound=BaseModel)

# table -> name of the column used to filter listings
_DOCUMENT_TABLES = {
    "executions": "workflow_id",
    "reviews": "workflow_id",
    "test_cases": "workflow_id",
    "test_runs": "workflow_id",
    "test_step_results": "test_run_id",
}


class SQLiteRepository(FlowgateRepository):
    """Persist records using SQLite.

    Each record is stored as its JSON document next to the few columns the
    listings filter and sort on.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        for table, owner in _DOCUMENT_TABLES.items():
            cur.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    {owner} TEXT NOT NULL,
                    status TEXT,
                    sort_key TEXT,
                    data TEXT NOT NULL
                )
                """
            )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS activities (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_id TEXT NOT NULL,
                data TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    async def _upsert(
        self, table: str, record: BaseModel, owner: str, status: Any, sort_key: Any
    ) -> None:
        owner_column = _DOCUMENT_TABLES[table]
        await asyncio.to_thread(
            self._execute,
            f"""
            INSERT INTO {table} (id, {owner_column}, status, sort_key, data)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                {owner_column} = excluded.{owner_column},
                status = excluded.status,
                sort_key = excluded.sort_key,
                data = excluded.data
            """,
            record.id,
            owner,
            getattr(status, "value", status),
            str(sort_key),
            record.model_dump_json(),
        )

    async def _get(self, table: str, model: Type[ModelT], record_id: str) -> ModelT | None:
        row = await asyncio.to_thread(
            self._fetchone, f"SELECT data FROM {table} WHERE id = ?", record_id
        )
        return model.model_validate_json(row["data"]) if row else None

    async def _list(
        self,
        table: str,
        model: Type[ModelT],
        owner: Optional[str] = None,
        status: Optional[str] = None,
        descending: bool = False,
    ) -> List[ModelT]:
        clauses, params = [], []
        if owner is not None:
            clauses.append(f"{_DOCUMENT_TABLES[table]} = ?")
            params.append(owner)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        order = "DESC" if descending else "ASC"
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT data FROM {table} {where} ORDER BY sort_key {order}",
            *params,
        )
        return [model.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    # Repository API
    async def save_execution(self, record: ExecutionRecord) -> None:
        await self._upsert(
            "executions", record, record.workflow_id, record.status, record.started_at.isoformat()
        )

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        return await self._get("executions", ExecutionRecord, execution_id)

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> List[ExecutionRecord]:
        return await self._list("executions", ExecutionRecord, owner=workflow_id)

    async def save_review(self, record: ReviewRecord) -> None:
        await self._upsert(
            "reviews", record, record.workflow_id, record.status, record.created_at.isoformat()
        )

    async def get_review(self, review_id: str) -> ReviewRecord | None:
        return await self._get("reviews", ReviewRecord, review_id)

    async def list_reviews(self, status: Optional[str] = None) -> List[ReviewRecord]:
        return await self._list("reviews", ReviewRecord, status=status)

    async def record_activity(self, entry: ActivityEntry) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO activities (workflow_id, data) VALUES (?, ?)",
            entry.workflow_id,
            entry.model_dump_json(),
        )

    async def list_activities(
        self, workflow_id: Optional[str] = None
    ) -> List[ActivityEntry]:
        if workflow_id is None:
            rows = await asyncio.to_thread(
                self._fetchall, "SELECT data FROM activities ORDER BY seq"
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT data FROM activities WHERE workflow_id = ? ORDER BY seq",
                workflow_id,
            )
        return [ActivityEntry.model_validate_json(r["data"]) for r in rows]

    async def save_test_case(self, test_case: TestCase) -> None:
        await self._upsert("test_cases", test_case, test_case.workflow_id, None, test_case.name)

    async def get_test_case(self, test_case_id: str) -> TestCase | None:
        return await self._get("test_cases", TestCase, test_case_id)

    async def save_test_run(self, test_run: TestRun) -> None:
        await self._upsert(
            "test_runs",
            test_run,
            test_run.workflow_id,
            test_run.status,
            test_run.created_at.isoformat(),
        )

    async def get_test_run(self, test_run_id: str) -> TestRun | None:
        return await self._get("test_runs", TestRun, test_run_id)

    async def list_test_runs(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[TestRunStatus] = None,
    ) -> List[TestRun]:
        return await self._list(
            "test_runs",
            TestRun,
            owner=workflow_id,
            status=status.value if status is not None else None,
            descending=True,
        )

    async def save_test_step_result(self, result: TestStepResult) -> None:
        await self._upsert(
            "test_step_results",
            result,
            result.test_run_id,
            result.status,
            f"{result.step_index:06d}",
        )

    async def list_test_step_results(self, test_run_id: str) -> List[TestStepResult]:
        return await self._list("test_step_results", TestStepResult, owner=test_run_id)

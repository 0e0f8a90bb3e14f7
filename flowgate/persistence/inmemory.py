"""In-memory implementation of the flowgate repository."""

from __future__ import annotations

from typing import Dict, List, Optional

from ..testing.models import TestCase, TestRun, TestRunStatus, TestStepResult
from .models import ActivityEntry, ExecutionRecord, ReviewRecord
from .repository import FlowgateRepository


class InMemoryRepository(FlowgateRepository):
    """Store records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied in and out so
    callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, ExecutionRecord] = {}
        self._reviews: Dict[str, ReviewRecord] = {}
        self._activities: List[ActivityEntry] = []
        self._test_cases: Dict[str, TestCase] = {}
        self._test_runs: Dict[str, TestRun] = {}
        self._step_results: Dict[str, TestStepResult] = {}

    # ------------------------------------------------------------------
    async def save_execution(self, record: ExecutionRecord) -> None:
        self._executions[record.id] = record.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        record = self._executions.get(execution_id)
        return record.model_copy(deep=True) if record else None

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> List[ExecutionRecord]:
        return [
            r.model_copy(deep=True)
            for r in self._executions.values()
            if workflow_id is None or r.workflow_id == workflow_id
        ]

    # ------------------------------------------------------------------
    async def save_review(self, record: ReviewRecord) -> None:
        self._reviews[record.id] = record.model_copy(deep=True)

    async def get_review(self, review_id: str) -> ReviewRecord | None:
        record = self._reviews.get(review_id)
        return record.model_copy(deep=True) if record else None

    async def list_reviews(self, status: Optional[str] = None) -> List[ReviewRecord]:
        return [
            r.model_copy(deep=True)
            for r in self._reviews.values()
            if status is None or r.status == status
        ]

    # ------------------------------------------------------------------
    async def record_activity(self, entry: ActivityEntry) -> None:
        self._activities.append(entry.model_copy(deep=True))

    async def list_activities(
        self, workflow_id: Optional[str] = None
    ) -> List[ActivityEntry]:
        return [
            e.model_copy(deep=True)
            for e in self._activities
            if workflow_id is None or e.workflow_id == workflow_id
        ]

    # ------------------------------------------------------------------
    async def save_test_case(self, test_case: TestCase) -> None:
        self._test_cases[test_case.id] = test_case.model_copy(deep=True)

    async def get_test_case(self, test_case_id: str) -> TestCase | None:
        case = self._test_cases.get(test_case_id)
        return case.model_copy(deep=True) if case else None

    async def save_test_run(self, test_run: TestRun) -> None:
        self._test_runs[test_run.id] = test_run.model_copy(deep=True)

    async def get_test_run(self, test_run_id: str) -> TestRun | None:
        run = self._test_runs.get(test_run_id)
        return run.model_copy(deep=True) if run else None

    async def list_test_runs(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[TestRunStatus] = None,
    ) -> List[TestRun]:
        runs = [
            r.model_copy(deep=True)
            for r in self._test_runs.values()
            if (workflow_id is None or r.workflow_id == workflow_id)
            and (status is None or r.status == status)
        ]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)

    async def save_test_step_result(self, result: TestStepResult) -> None:
        self._step_results[result.id] = result.model_copy(deep=True)

    async def list_test_step_results(self, test_run_id: str) -> List[TestStepResult]:
        results = [
            r.model_copy(deep=True)
            for r in self._step_results.values()
            if r.test_run_id == test_run_id
        ]
        return sorted(results, key=lambda r: r.step_index)

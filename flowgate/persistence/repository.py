"""Repository abstraction for execution and test-run persistence."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..testing.models import TestCase, TestRun, TestRunStatus, TestStepResult
from .models import ActivityEntry, ExecutionRecord, ReviewRecord


class FlowgateRepository(Protocol):
    """Protocol for persistence backends.

    ``save_*`` methods upsert by id; callers write at every status transition.
    """

    async def save_execution(self, record: ExecutionRecord) -> None:
        """Insert or replace an execution record."""

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        """Retrieve an execution by id."""

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> List[ExecutionRecord]:
        """Return executions, optionally for one workflow."""

    async def save_review(self, record: ReviewRecord) -> None:
        """Insert or replace a review record."""

    async def get_review(self, review_id: str) -> ReviewRecord | None:
        """Retrieve a review by id."""

    async def list_reviews(self, status: Optional[str] = None) -> List[ReviewRecord]:
        """Return reviews, optionally filtered by status."""

    async def record_activity(self, entry: ActivityEntry) -> None:
        """Append an activity log entry."""

    async def list_activities(
        self, workflow_id: Optional[str] = None
    ) -> List[ActivityEntry]:
        """Return activity entries in insertion order."""

    async def save_test_case(self, test_case: TestCase) -> None:
        """Insert or replace a test case."""

    async def get_test_case(self, test_case_id: str) -> TestCase | None:
        """Retrieve a test case by id."""

    async def save_test_run(self, test_run: TestRun) -> None:
        """Insert or replace a test run."""

    async def get_test_run(self, test_run_id: str) -> TestRun | None:
        """Retrieve a test run by id."""

    async def list_test_runs(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[TestRunStatus] = None,
    ) -> List[TestRun]:
        """Return test runs, newest first."""

    async def save_test_step_result(self, result: TestStepResult) -> None:
        """Insert or replace a test step result."""

    async def list_test_step_results(self, test_run_id: str) -> List[TestStepResult]:
        """Return step results of a run ordered by step index."""

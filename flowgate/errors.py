"""Exception types raised by flowgate."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .contracts import WorkflowStep


class FlowgateError(Exception):
    """Base class for all flowgate errors."""


class WorkflowNotFoundError(FlowgateError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class WorkflowNotActiveError(FlowgateError):
    """Blocker: the workflow must be active before it can execute."""

    def __init__(self, workflow_id: str, status: str) -> None:
        super().__init__(
            f"Workflow must be active to execute. Current status: {status}"
        )
        self.workflow_id = workflow_id
        self.status = status


class ExecutionAlreadyActiveError(FlowgateError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} already has a live execution")
        self.workflow_id = workflow_id


class ExecutionNotFoundError(FlowgateError):
    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"No execution state for workflow {workflow_id}")
        self.workflow_id = workflow_id


class ExecutionNotLiveError(FlowgateError):
    """Raised when resuming or cancelling an execution that is terminal or superseded."""

    def __init__(
        self, workflow_id: str, status: str, execution_id: Optional[str] = None
    ) -> None:
        if execution_id is None:
            message = f"Execution for workflow {workflow_id} is {status}"
        else:
            message = f"Execution {execution_id} of workflow {workflow_id} is {status}"
        super().__init__(message)
        self.workflow_id = workflow_id
        self.status = status
        self.execution_id = execution_id


class StepExecutionError(FlowgateError):
    """A step failed while running."""

    def __init__(self, step: "WorkflowStep", message: str) -> None:
        super().__init__(message)
        self.step = step
        self.message = message


class BlueprintViolationError(StepExecutionError):
    """The agent proposed an action the step blueprint forbids."""

    def __init__(self, step: "WorkflowStep", action: str) -> None:
        super().__init__(
            step, f'Action "{action}" is forbidden by the blueprint of step "{step.label}"'
        )
        self.action = action


class GuidanceRequested(FlowgateError):
    """Signal from an agent capability that it needs a human answer."""

    def __init__(self, question: Optional[str] = None) -> None:
        super().__init__(question or "Agent needs guidance")
        self.question = question or "Agent needs guidance"


class ReviewNotFoundError(FlowgateError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Review item not found: {key}")
        self.key = key


class TestRunNotFoundError(FlowgateError):
    __test__ = False

    def __init__(self, test_run_id: str) -> None:
        super().__init__(f"Test run not found: {test_run_id}")
        self.test_run_id = test_run_id


class TestRunNotRunningError(FlowgateError):
    __test__ = False

    def __init__(self, test_run_id: str) -> None:
        super().__init__("Test run is not running")
        self.test_run_id = test_run_id


class TestCaseNotFoundError(FlowgateError):
    __test__ = False

    def __init__(self, test_case_id: str) -> None:
        super().__init__(f"Test case not found: {test_case_id}")
        self.test_case_id = test_case_id

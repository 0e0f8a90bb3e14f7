"""Flowgate: step-by-step workflow execution with human review gates."""

from .blueprint import BlueprintEvaluator, Verdict
from .contracts import Blueprint, ReviewItem, Workflow, WorkflowStep
from .events import EventNotifier
from .executor import StepExecutor
from .orchestrator import ExecutionOrchestrator, InMemoryWorkflowCatalog
from .persistence import get_repository
from .review import ReviewGate
from .state import ExecutionStateStore
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "Blueprint",
    "BlueprintEvaluator",
    "EventNotifier",
    "ExecutionOrchestrator",
    "ExecutionStateStore",
    "InMemoryWorkflowCatalog",
    "ReviewGate",
    "ReviewItem",
    "StepExecutor",
    "Verdict",
    "Workflow",
    "WorkflowStep",
    "get_repository",
    "get_transport",
]

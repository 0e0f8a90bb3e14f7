"""Mock-data test runs scored by declarative assertions."""

from .assertions import assertion_types, deep_equal, evaluate_all, evaluate_assertion, resolve_path
from .coordinator import MockStepSimulator, TestRunCoordinator, summarize_runs
from .models import (
    AssertionResult,
    AssertionType,
    TestAssertion,
    TestCase,
    TestRun,
    TestRunOptions,
    TestRunStatus,
    TestRunType,
    TestStepResult,
)

__all__ = [
    "AssertionResult",
    "AssertionType",
    "MockStepSimulator",
    "TestAssertion",
    "TestCase",
    "TestRun",
    "TestRunCoordinator",
    "TestRunOptions",
    "TestRunStatus",
    "TestRunType",
    "TestStepResult",
    "assertion_types",
    "deep_equal",
    "evaluate_all",
    "evaluate_assertion",
    "resolve_path",
    "summarize_runs",
]

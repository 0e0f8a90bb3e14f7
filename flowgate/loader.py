"""Load workflow and test-case definitions from YAML files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .contracts import Workflow
from .testing.models import TestCase


def _read(path: str | Path) -> Dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def load_definition(path: str | Path) -> Tuple[Workflow, List[TestCase]]:
    """Parse a workflow file and the test cases declared next to it.

    Example::

        id: invoice-approval
        name: Invoice approval
        status: active
        steps:
          - id: receive
            label: Receive invoice
            type: trigger
        test_cases:
          - name: happy path
            mock_trigger_data: {amount: 120}
    """
    data = _read(path)
    raw_cases = data.pop("test_cases", None) or []
    workflow = Workflow.model_validate(data)
    cases = [
        TestCase.model_validate({"workflow_id": workflow.id, **case}) for case in raw_cases
    ]
    return workflow, cases


def load_workflow(path: str | Path) -> Workflow:
    return load_definition(path)[0]

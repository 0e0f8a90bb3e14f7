"""Workflow definition loader tests."""

import pytest

from flowgate.contracts import StepType, WorkflowStatus
from flowgate.loader import load_definition, load_workflow

DEFINITION = """
id: invoice-approval
name: Invoice approval
status: active
assignee:
  stakeholder_name: Ava
steps:
  - id: receive
    label: Receive invoice
    type: trigger
  - id: notify
    label: Notify finance
    order: 1
    requirements:
      integrations: {gmail: true}
      blueprint:
        green_list: [send email]
test_cases:
  - name: happy path
    mock_trigger_data: {amount: 120}
    assertions:
      - name: amount echoed
        path: receive.output.amount
        type: equals
        expected_value: 120
"""


def test_load_definition(tmp_path):
    path = tmp_path / "invoice.yaml"
    path.write_text(DEFINITION)

    workflow, cases = load_definition(path)

    assert workflow.id == "invoice-approval"
    assert workflow.status is WorkflowStatus.ACTIVE
    assert [s.type for s in workflow.ordered_steps()] == [StepType.TRIGGER, StepType.ACTION]
    assert workflow.step_by_id("notify").blueprint.green_list == ["send email"]
    assert len(cases) == 1
    assert cases[0].workflow_id == "invoice-approval"
    assert cases[0].assertions[0].expected_value == 120


def test_load_workflow_without_cases(tmp_path):
    path = tmp_path / "wf.yaml"
    path.write_text("name: Empty\n")
    assert load_workflow(path).name == "Empty"


def test_rejects_non_mapping(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError, match="expected a mapping"):
        load_definition(path)

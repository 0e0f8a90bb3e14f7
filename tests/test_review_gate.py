"""Review and guidance gate tests."""

import asyncio

import pytest

from flowgate.activity import ActivityLog
from flowgate.contracts import AgentActionResult, ExecutionStatus, ReviewActionType
from flowgate.errors import ExecutionNotLiveError, GuidanceRequested, ReviewNotFoundError
from flowgate.events import EventKind
from flowgate.review import ReviewGate


class RecordingSender:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent = []

    async def send(self, signal, target):
        self.sent.append((signal, target))
        if self.fail:
            raise ConnectionError("engine unreachable")
        return True


async def _suspend(orchestrator, scheduler):
    await orchestrator.start("wf-invoice")
    await scheduler.run_until_idle()


@pytest.mark.asyncio
async def test_review_needed_populates_pending_set(orchestrator, scheduler, repository):
    gate = ReviewGate(orchestrator, repository)
    await _suspend(orchestrator, scheduler)

    pending = gate.pending("wf-invoice")
    assert len(pending) == 1
    assert pending[0].step_id == "notify"
    record = await repository.get_review(pending[0].id)
    assert record.status == "pending"
    assert record.worker_name == "Ava"


@pytest.mark.asyncio
async def test_approve_acceptance_advances_past_step(orchestrator, scheduler, repository):
    gate = ReviewGate(orchestrator, repository)
    await _suspend(orchestrator, scheduler)
    item = gate.pending()[0]

    await gate.approve(item, reviewer_notes="looks right")
    await scheduler.run_until_idle()

    assert gate.pending() == []
    assert orchestrator.get_state("wf-invoice").status is ExecutionStatus.COMPLETED
    record = await repository.get_review(item.id)
    assert record.status == "approved"
    assert record.reviewer_notes == "looks right"
    assert record.reviewed_at is not None


@pytest.mark.asyncio
async def test_approve_error_item_retries_same_step(
    orchestrator, scheduler, repository, capability, recorder
):
    capability.scripts["notify"] = [RuntimeError("timeout"), AgentActionResult(message="sent")]
    gate = ReviewGate(orchestrator, repository)
    await _suspend(orchestrator, scheduler)
    item = gate.pending()[0]
    assert item.action.type is ReviewActionType.ERROR

    await gate.approve(item)

    assert len(capability.calls_for("notify")) == 2
    assert orchestrator.get_state("wf-invoice").current_step_index == 2
    assert "Retrying: Notify finance" in [e.message for e in recorder.events]


@pytest.mark.asyncio
async def test_guidance_then_approve_passes_transcript(
    orchestrator, scheduler, repository, capability
):
    capability.scripts["notify"] = [
        GuidanceRequested("Which cost centre?"),
        AgentActionResult(message="booked"),
    ]
    gate = ReviewGate(orchestrator, repository)
    await _suspend(orchestrator, scheduler)

    item = await gate.provide_guidance("notify", "Use CC-42")
    assert orchestrator.get_state("wf-invoice").running is False
    assert len(capability.calls_for("notify")) == 1

    await gate.approve(item)

    transcript = capability.calls_for("notify")[1]["guidance_context"]
    assert [(m.sender, m.text) for m in transcript] == [
        ("agent", "Which cost centre?"),
        ("user", "Use CC-42"),
    ]


@pytest.mark.asyncio
async def test_reject_holds_execution(orchestrator, scheduler, repository, recorder, capability):
    gate = ReviewGate(orchestrator, repository)
    await _suspend(orchestrator, scheduler)
    item = gate.pending()[0]

    await gate.reject(item, reviewer_notes="wrong recipient")
    await scheduler.run_until_idle()

    state = orchestrator.get_state("wf-invoice")
    assert state.status is ExecutionStatus.WAITING_REVIEW
    assert state.current_step_index == 1
    assert gate.pending() == []
    assert "Rejected: approval_required" in [e.message for e in recorder.events]
    assert (await repository.get_review(item.id)).status == "rejected"

    # an explicit resume re-attempts the step
    await orchestrator.resume("wf-invoice")
    assert len(capability.calls_for("notify")) == 2
    assert len(gate.pending()) == 1


@pytest.mark.asyncio
async def test_reject_with_fail_policy_fails_execution(orchestrator, scheduler, repository):
    gate = ReviewGate(orchestrator, repository, on_reject="fail")
    await _suspend(orchestrator, scheduler)

    await gate.reject(gate.pending()[0])

    assert orchestrator.get_state("wf-invoice").status is ExecutionStatus.FAILED
    record = (await repository.list_executions("wf-invoice"))[0]
    assert record.status is ExecutionStatus.FAILED


@pytest.mark.asyncio
async def test_edit_sends_response_data(orchestrator, scheduler, repository):
    sender = RecordingSender()
    gate = ReviewGate(orchestrator, repository, resume_sender=sender)
    await _suspend(orchestrator, scheduler)
    item = gate.pending()[0]

    await gate.edit(item, {"to": "ap@example.com"})
    await gate.wait_for_deliveries()

    signal, target = sender.sent[0]
    assert signal.approved is True
    assert signal.review_id == item.id
    assert signal.response_data == {"to": "ap@example.com"}
    assert target == item.action.payload
    assert (await repository.get_review(item.id)).status == "edited"


@pytest.mark.asyncio
async def test_resume_delivery_failure_does_not_block(orchestrator, scheduler, repository):
    gate = ReviewGate(orchestrator, repository, resume_sender=RecordingSender(fail=True))
    await _suspend(orchestrator, scheduler)
    item = gate.pending()[0]

    await gate.approve(item)
    await scheduler.run_until_idle()
    await gate.wait_for_deliveries()

    assert (await repository.get_review(item.id)).status == "approved"
    assert orchestrator.get_state("wf-invoice").status is ExecutionStatus.COMPLETED


@pytest.mark.asyncio
async def test_reject_sends_negative_signal(orchestrator, scheduler, repository):
    sender = RecordingSender()
    gate = ReviewGate(orchestrator, repository, resume_sender=sender)
    await _suspend(orchestrator, scheduler)

    await gate.reject(gate.pending()[0], reviewer_notes="no")
    await gate.wait_for_deliveries()

    signal, _ = sender.sent[0]
    assert signal.approved is False
    assert signal.to_payload()["reviewerNotes"] == "no"


@pytest.mark.asyncio
async def test_unknown_review_item(orchestrator, repository):
    gate = ReviewGate(orchestrator, repository)
    with pytest.raises(ReviewNotFoundError):
        await gate.approve("nope")
    with pytest.raises(ReviewNotFoundError):
        await gate.provide_guidance("notify", "hello")


@pytest.mark.asyncio
async def test_activity_log_records_review_flow(orchestrator, scheduler, repository, notifier):
    ActivityLog(repository).attach(notifier)
    gate = ReviewGate(orchestrator, repository)
    await _suspend(orchestrator, scheduler)
    await gate.approve(gate.pending()[0])
    await scheduler.run_until_idle()

    types = [a.type for a in await repository.list_activities("wf-invoice")]
    assert "approval_required" in types
    assert types[-1] == EventKind.COMPLETED.value


class BlockingSender:
    """Sender that fails every attempt until released, like a retrying HTTP sender."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.attempts = 0

    async def send(self, signal, target):
        while not self.release.is_set():
            self.attempts += 1
            await asyncio.sleep(0)
        raise ConnectionError("engine unreachable")


@pytest.mark.asyncio
async def test_stale_item_cannot_approve_newer_execution(
    orchestrator, scheduler, repository, capability
):
    gate = ReviewGate(orchestrator, repository)
    await _suspend(orchestrator, scheduler)
    first = gate.pending()[0]

    await orchestrator.cancel("wf-invoice")
    await _suspend(orchestrator, scheduler)
    second = gate.pending()[0]
    assert second.execution_id != first.execution_id

    with pytest.raises(ReviewNotFoundError):
        await gate.approve(first)
    await scheduler.run_until_idle()

    state = orchestrator.get_state("wf-invoice")
    assert state.status is ExecutionStatus.WAITING_REVIEW
    assert state.execution_id == second.execution_id
    assert [item.id for item in gate.pending()] == [second.id]
    assert (await repository.get_review(first.id)).status == "expired"
    assert len(capability.calls_for("notify")) == 2


@pytest.mark.asyncio
async def test_item_of_superseded_execution_raises_not_live(orchestrator, scheduler, repository):
    gate = ReviewGate(orchestrator, repository)
    await _suspend(orchestrator, scheduler)
    first = gate.pending()[0]
    # replace the execution without any event reaching the gate
    await orchestrator.store.finish("wf-invoice", ExecutionStatus.CANCELLED)
    await orchestrator.store.create("wf-invoice", "exec-newer", "Ava")
    await orchestrator.store.suspend("wf-invoice", ExecutionStatus.WAITING_REVIEW)

    with pytest.raises(ExecutionNotLiveError) as excinfo:
        await gate.approve(first)

    assert excinfo.value.status == "superseded"
    assert orchestrator.get_state("wf-invoice").status is ExecutionStatus.WAITING_REVIEW
    assert gate.pending() == [first]


@pytest.mark.asyncio
@pytest.mark.parametrize("on_reject", ["hold", "fail"])
async def test_response_to_ended_execution_changes_nothing(
    orchestrator, scheduler, repository, on_reject
):
    sender = RecordingSender()
    gate = ReviewGate(orchestrator, repository, resume_sender=sender, on_reject=on_reject)
    await _suspend(orchestrator, scheduler)
    item = gate.pending()[0]
    # ended elsewhere; the gate never saw the update
    await orchestrator.store.finish("wf-invoice", ExecutionStatus.CANCELLED)

    with pytest.raises(ExecutionNotLiveError):
        await gate.approve(item)
    with pytest.raises(ExecutionNotLiveError):
        await gate.reject(item)
    await gate.wait_for_deliveries()

    assert gate.pending() == [item]
    assert (await repository.get_review(item.id)).status == "pending"
    assert sender.sent == []
    assert orchestrator.get_state("wf-invoice").status is ExecutionStatus.CANCELLED


@pytest.mark.asyncio
async def test_execution_resumes_while_delivery_is_failing(orchestrator, scheduler, repository):
    sender = BlockingSender()
    gate = ReviewGate(orchestrator, repository, resume_sender=sender)
    await _suspend(orchestrator, scheduler)

    await gate.approve(gate.pending()[0])
    await scheduler.run_until_idle()
    await asyncio.sleep(0)

    assert sender.attempts > 0
    assert orchestrator.get_state("wf-invoice").status is ExecutionStatus.COMPLETED

    sender.release.set()
    await gate.wait_for_deliveries()

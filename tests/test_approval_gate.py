from __future__ import annotations

import asyncio
import itertools

import pytest

from daemon_agent.core.cancellation import CancellationToken
from daemon_agent.errors import OperationCancelledError
from daemon_agent.tools.approval import NO_APPROVAL_HANDLER_REASON, ApprovalGate
from daemon_agent.types import ToolApprovalRequest, ToolApprovalResponse


class _Recorder:
    def __init__(self) -> None:
        self.batches: list[list[ToolApprovalRequest]] = []

    def __call__(self, requests, respond) -> None:  # type: ignore[no-untyped-def]
        self.batches.append(list(requests))


def _ids() -> itertools.count[int]:
    return itertools.count(1)


@pytest.mark.asyncio
async def test_request_without_listener_is_denied_immediately() -> None:
    gate = ApprovalGate()

    response = await gate.request("bash", "call-1", {"command": "rm -rf /"})

    assert response.approved is False
    assert response.reason == NO_APPROVAL_HANDLER_REASON
    assert gate.pending == []


@pytest.mark.asyncio
async def test_response_resolves_matching_request() -> None:
    recorder = _Recorder()
    counter = _ids()
    gate = ApprovalGate(listener=recorder, id_factory=lambda: f"a{next(counter)}")

    task = asyncio.create_task(gate.request("bash", "call-1", {"command": "rm x"}))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert [request.approval_id for request in gate.pending] == ["a1"]
    assert recorder.batches[0][0].tool_call_id == "call-1"

    resolved = gate.respond([ToolApprovalResponse(approval_id="a1", approved=True)])
    response = await task

    assert resolved == 1
    assert response.approved is True
    assert gate.pending == []


@pytest.mark.asyncio
async def test_unknown_approval_id_leaves_request_pending() -> None:
    gate = ApprovalGate(listener=_Recorder(), id_factory=lambda: "known")

    task = asyncio.create_task(gate.request("bash", "call-1", {}))
    await asyncio.sleep(0)

    assert gate.respond([ToolApprovalResponse(approval_id="unknown", approved=True)]) == 0
    assert not task.done()
    assert [request.approval_id for request in gate.pending] == ["known"]

    gate.respond([ToolApprovalResponse(approval_id="known", approved=False, reason="no")])
    response = await task
    assert response.reason == "no"


@pytest.mark.asyncio
async def test_duplicate_response_is_ignored() -> None:
    gate = ApprovalGate(listener=_Recorder(), id_factory=lambda: "a1")

    task = asyncio.create_task(gate.request("bash", "call-1", {}))
    await asyncio.sleep(0)

    first = gate.respond([ToolApprovalResponse(approval_id="a1", approved=False)])
    second = gate.respond([ToolApprovalResponse(approval_id="a1", approved=True)])
    response = await task

    assert (first, second) == (1, 0)
    assert response.approved is False


@pytest.mark.asyncio
async def test_requests_of_one_step_are_batched() -> None:
    recorder = _Recorder()
    counter = _ids()
    gate = ApprovalGate(listener=recorder, id_factory=lambda: f"a{next(counter)}")

    tasks = [asyncio.create_task(gate.request("bash", f"call-{index}", {})) for index in range(3)]
    for _ in range(3):
        await asyncio.sleep(0)

    assert len(recorder.batches) == 1
    assert [request.approval_id for request in recorder.batches[0]] == ["a1", "a2", "a3"]

    gate.respond(ToolApprovalResponse(approval_id=f"a{index}", approved=True) for index in range(1, 4))
    responses = await asyncio.gather(*tasks)
    assert all(response.approved for response in responses)


@pytest.mark.asyncio
async def test_cancellation_abandons_pending_request() -> None:
    gate = ApprovalGate(listener=_Recorder(), id_factory=lambda: "a1")
    token = CancellationToken()

    task = asyncio.create_task(gate.request("bash", "call-1", {}, cancellation=token))
    await asyncio.sleep(0)
    token.cancel()

    with pytest.raises(OperationCancelledError):
        await task
    assert gate.pending == []
    assert gate.respond([ToolApprovalResponse(approval_id="a1", approved=True)]) == 0

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from pydantic import BaseModel
from republic import Tool

from daemon_agent.core.cancellation import CancellationToken
from daemon_agent.core.provider import ToolCallRequest
from daemon_agent.tools.approval import NO_APPROVAL_HANDLER_REASON, ApprovalGate
from daemon_agent.tools.execution import DEFAULT_DENIAL_REASON, ToolExecutionGate, ToolOutcome
from daemon_agent.tools.registry import ToolCallContext, ToolDescriptor, ToolRegistry
from daemon_agent.types import ToolApprovalResponse


class EchoInput(BaseModel):
    text: str
    risky: bool = False


def _registry(calls: list[str]) -> ToolRegistry:
    async def echo(params: EchoInput, _context: ToolCallContext) -> dict[str, Any]:
        calls.append(params.text)
        return {"echo": params.text}

    def explode(_params: EchoInput, _context: ToolCallContext) -> None:
        raise RuntimeError("boom")

    registry = ToolRegistry()
    registry.register(
        ToolDescriptor(
            name="echo",
            description="Echo text",
            input_model=EchoInput,
            handler=echo,
            needs_approval=lambda params: params.risky,
        )
    )
    registry.register(
        ToolDescriptor(name="explode", description="Always fails", input_model=EchoInput, handler=explode)
    )
    return registry


def _context(call_id: str = "call-1") -> ToolCallContext:
    return ToolCallContext(tool_call_id=call_id, cancellation=CancellationToken())


@pytest.mark.asyncio
async def test_valid_call_runs_handler() -> None:
    calls: list[str] = []
    gate = ToolExecutionGate(_registry(calls), ApprovalGate())

    outcome = await gate.execute(ToolCallRequest(id="call-1", name="echo", arguments={"text": "hi"}), _context())

    assert outcome == ToolOutcome(status="ok", output={"echo": "hi"})
    assert calls == ["hi"]


@pytest.mark.asyncio
async def test_invalid_input_never_reaches_handler() -> None:
    calls: list[str] = []
    gate = ToolExecutionGate(_registry(calls), ApprovalGate())

    outcome = await gate.execute(ToolCallRequest(id="call-1", name="echo", arguments={"txt": "hi"}), _context())

    assert outcome.status == "invalid"
    assert "text" in (outcome.error or "")
    assert calls == []


@pytest.mark.asyncio
async def test_handler_exception_becomes_error_outcome() -> None:
    gate = ToolExecutionGate(_registry([]), ApprovalGate())

    outcome = await gate.execute(ToolCallRequest(id="call-1", name="explode", arguments={"text": "x"}), _context())

    assert outcome.status == "error"
    assert outcome.error == "boom"


@pytest.mark.asyncio
async def test_unknown_tool_is_an_error_outcome() -> None:
    gate = ToolExecutionGate(_registry([]), ApprovalGate())

    outcome = await gate.execute(ToolCallRequest(id="call-1", name="missing", arguments={}), _context())

    assert outcome.status == "error"
    assert "missing" in (outcome.error or "")


@pytest.mark.asyncio
async def test_gated_call_without_responder_is_denied() -> None:
    calls: list[str] = []
    gate = ToolExecutionGate(_registry(calls), ApprovalGate())

    outcome = await gate.execute(
        ToolCallRequest(id="call-1", name="echo", arguments={"text": "hi", "risky": True}),
        _context(),
    )

    assert outcome.status == "denied"
    assert outcome.error == NO_APPROVAL_HANDLER_REASON
    assert outcome.to_model_content() == f"[DENIED] {NO_APPROVAL_HANDLER_REASON}"
    assert calls == []


@pytest.mark.asyncio
async def test_denied_call_uses_default_reason() -> None:
    calls: list[str] = []

    def deny_all(requests, respond) -> None:  # type: ignore[no-untyped-def]
        respond([ToolApprovalResponse(approval_id=request.approval_id, approved=False) for request in requests])

    gate = ToolExecutionGate(_registry(calls), ApprovalGate(listener=deny_all))

    outcome = await gate.execute(
        ToolCallRequest(id="call-1", name="echo", arguments={"text": "hi", "risky": True}),
        _context(),
    )

    assert outcome.status == "denied"
    assert outcome.error == DEFAULT_DENIAL_REASON
    assert calls == []


@pytest.mark.asyncio
async def test_approved_call_runs() -> None:
    calls: list[str] = []

    def approve_all(requests, respond) -> None:  # type: ignore[no-untyped-def]
        respond([ToolApprovalResponse(approval_id=request.approval_id, approved=True) for request in requests])

    gate = ToolExecutionGate(_registry(calls), ApprovalGate(listener=approve_all))

    outcome = await gate.execute(
        ToolCallRequest(id="call-1", name="echo", arguments={"text": "hi", "risky": True}),
        _context(),
    )

    assert outcome.ok
    assert calls == ["hi"]


@pytest.mark.asyncio
async def test_concurrent_calls_are_independent() -> None:
    gate = ToolExecutionGate(_registry([]), ApprovalGate())

    outcomes = await asyncio.gather(
        gate.execute(ToolCallRequest(id="a", name="explode", arguments={"text": "x"}), _context("a")),
        gate.execute(ToolCallRequest(id="b", name="echo", arguments={"text": "y"}), _context("b")),
    )

    assert [outcome.status for outcome in outcomes] == ["error", "ok"]


def test_registry_restriction_drops_named_and_ui_only_tools() -> None:
    registry = _registry([])
    registry.register(
        ToolDescriptor(
            name="panel", description="UI only", input_model=EchoInput, handler=lambda *_: None, ui_only=True
        )
    )

    restricted = registry.without({"explode"}, drop_ui_only=True)

    assert restricted.names() == ["echo"]
    assert registry.names() == ["echo", "explode", "panel"]


def test_registry_rejects_duplicates_and_skips_disabled_tools() -> None:
    registry = ToolRegistry(disabled_tools={"explode"})
    descriptor = ToolDescriptor(name="echo", description="Echo", input_model=EchoInput, handler=lambda *_: None)
    registry.register(descriptor)
    registry.register(ToolDescriptor(name="explode", description="x", input_model=EchoInput, handler=lambda *_: None))

    with pytest.raises(ValueError, match="Duplicate tool name"):
        registry.register(descriptor)
    assert registry.names() == ["echo"]


def test_model_tools_are_republic_tools_built_from_input_model() -> None:
    tool = _registry([]).model_tools()[0]

    assert isinstance(tool, Tool)
    assert tool.name == "echo"
    assert tool.schema()["function"]["name"] == "echo"
    assert tool.schema()["function"]["parameters"]["required"] == ["text"]

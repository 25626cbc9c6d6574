"""Message builders and concurrent tool execution shared by the agent and its subagents."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Sequence

from daemon_agent.core.provider import ModelStep, ToolCallRequest
from daemon_agent.errors import OperationCancelledError
from daemon_agent.tools.execution import ToolExecutionGate, ToolOutcome
from daemon_agent.tools.registry import ToolCallContext
from daemon_agent.types import Message


def assistant_message(step: ModelStep) -> Message | None:
    if not step.text and not step.tool_calls:
        return None
    message: Message = {"role": "assistant", "content": step.text}
    if step.tool_calls:
        message["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments, ensure_ascii=False)},
            }
            for call in step.tool_calls
        ]
    return message


def tool_message(call: ToolCallRequest, outcome: ToolOutcome) -> Message:
    return {"role": "tool", "tool_call_id": call.id, "name": call.name, "content": outcome.to_model_content()}


async def execute_tool_calls(
    gate: ToolExecutionGate,
    calls: Sequence[ToolCallRequest],
    context_for: Callable[[ToolCallRequest], ToolCallContext],
) -> list[ToolOutcome]:
    """Run every call of one model step concurrently, preserving call order in the result."""
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(gate.execute(call, context_for(call))) for call in calls]
    except BaseExceptionGroup as errors:
        if errors.subgroup(OperationCancelledError) is not None:
            raise OperationCancelledError() from errors
        raise
    return [task.result() for task in tasks]

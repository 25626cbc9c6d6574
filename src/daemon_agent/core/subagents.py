"""Concurrent subagents with a restricted tool set and per-turn usage accounting."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field

from daemon_agent.core.cancellation import CancellationToken
from daemon_agent.core.history import extract_final_assistant_text
from daemon_agent.core.prompt import build_subagent_prompt
from daemon_agent.core.provider import (
    ChatModel,
    ProviderEvent,
    SubagentComplete,
    SubagentToolCall,
    SubagentToolResult,
    SubagentUsage,
)
from daemon_agent.core.steps import assistant_message, execute_tool_calls, tool_message
from daemon_agent.errors import OperationCancelledError, ToolUnavailableError
from daemon_agent.tools.approval import ApprovalGate
from daemon_agent.tools.execution import ToolExecutionGate
from daemon_agent.tools.registry import ToolCallContext, ToolDescriptor, ToolRegistry
from daemon_agent.types import Message, ReasoningEffort, TokenUsage

SUBAGENT_TOOL_NAME = "subagent"
MAX_SUBAGENT_STEPS = 30
NO_TEXT_RESPONSE = "Task completed but no text response generated."

type SubagentStatus = Literal["running", "completed", "failed"]


@dataclass
class SubagentRun:
    tool_call_id: str
    summary: str
    status: SubagentStatus = "running"
    usage: TokenUsage | None = None


@dataclass(frozen=True)
class SubagentResult:
    success: bool
    summary: str
    response: str
    usage: TokenUsage | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"success": self.success, "summary": self.summary, "response": self.response}


class SubagentCoordinator:
    """Runs delegated tasks for one turn and aggregates their usage."""

    def __init__(
        self,
        *,
        model: ChatModel,
        registry: ToolRegistry,
        approvals: ApprovalGate,
        emit: Callable[[ProviderEvent], None],
        max_steps: int = MAX_SUBAGENT_STEPS,
        effort: ReasoningEffort = "medium",
    ) -> None:
        self._model = model
        self._gate = ToolExecutionGate(registry.without({SUBAGENT_TOOL_NAME}, drop_ui_only=True), approvals)
        self._emit = emit
        self._max_steps = max_steps
        self._effort = effort
        self._runs: dict[str, SubagentRun] = {}

    @property
    def runs(self) -> list[SubagentRun]:
        return list(self._runs.values())

    @property
    def tool_names(self) -> list[str]:
        return self._gate.registry.names()

    @property
    def usage(self) -> TokenUsage | None:
        """Sum of every finished subagent's usage. Runs without usage contribute nothing."""
        return TokenUsage.combine(*(run.usage for run in self._runs.values()))

    async def spawn(
        self,
        task: str,
        summary: str,
        *,
        tool_call_id: str,
        cancellation: CancellationToken,
    ) -> SubagentResult:
        run = SubagentRun(tool_call_id=tool_call_id, summary=summary)
        self._runs[tool_call_id] = run
        logger.info("subagent.start id={} summary={}", tool_call_id, summary)
        try:
            response_messages, usage = await self._run_loop(task, tool_call_id, cancellation)
        except OperationCancelledError:
            run.status = "failed"
            raise
        except Exception as exc:
            logger.exception("subagent.error id={}", tool_call_id)
            run.status = "failed"
            self._emit(SubagentComplete(tool_call_id=tool_call_id, success=False))
            return SubagentResult(success=False, summary=summary, response=f"Error: {exc}")

        run.status = "completed"
        run.usage = usage
        if usage is not None:
            self._emit(SubagentUsage(tool_call_id=tool_call_id, usage=usage))
        self._emit(SubagentComplete(tool_call_id=tool_call_id, success=True))
        response = extract_final_assistant_text(response_messages) or NO_TEXT_RESPONSE
        logger.info("subagent.complete id={} messages={}", tool_call_id, len(response_messages))
        return SubagentResult(success=True, summary=summary, response=response, usage=usage)

    async def _run_loop(
        self, task: str, tool_call_id: str, cancellation: CancellationToken
    ) -> tuple[list[Message], TokenUsage | None]:
        messages: list[Message] = [{"role": "user", "content": task}]
        response_messages: list[Message] = []
        usage: TokenUsage | None = None
        system_prompt = build_subagent_prompt()
        tools = self._gate.registry.model_tools()

        for step_index in range(1, self._max_steps + 1):
            cancellation.raise_if_cancelled()
            logger.debug("subagent.step id={} step={}", tool_call_id, step_index)
            step = await cancellation.guard(
                self._model.complete(messages, tools=tools, system_prompt=system_prompt, effort=self._effort)
            )
            usage = TokenUsage.combine(usage, step.usage)
            message = assistant_message(step)
            if message is not None:
                messages.append(message)
                response_messages.append(message)
            if not step.tool_calls:
                return response_messages, usage

            for call in step.tool_calls:
                self._emit(SubagentToolCall(tool_call_id=tool_call_id, tool_name=call.name, input=call.arguments))
            outcomes = await execute_tool_calls(
                self._gate,
                step.tool_calls,
                lambda call: ToolCallContext(tool_call_id=call.id, cancellation=cancellation),
            )
            for call, outcome in zip(step.tool_calls, outcomes, strict=True):
                self._emit(
                    SubagentToolResult(tool_call_id=tool_call_id, tool_name=call.name, success=outcome.succeeded)
                )
                result = tool_message(call, outcome)
                messages.append(result)
                response_messages.append(result)

        logger.warning("subagent.max_steps id={} steps={}", tool_call_id, self._max_steps)
        return response_messages, usage


class SubagentInput(BaseModel):
    summary: str = Field(..., description="A few words describing the task, shown to the user")
    task: str = Field(..., description="Complete, self-contained instructions for the subagent")


def create_subagent_tool() -> ToolDescriptor:
    async def _handler(params: SubagentInput, context: ToolCallContext) -> dict[str, Any]:
        if context.subagents is None:
            raise ToolUnavailableError("subagents are not available in this context")
        result = await context.subagents.spawn(
            params.task,
            params.summary,
            tool_call_id=context.tool_call_id,
            cancellation=context.cancellation,
        )
        return result.to_payload()

    return ToolDescriptor(
        name=SUBAGENT_TOOL_NAME,
        description=(
            "Delegate a self-contained task to a subagent that has the same tools except this one. "
            "Several subagent calls in one step run in parallel. Returns the subagent's final summary."
        ),
        input_model=SubagentInput,
        handler=_handler,
    )

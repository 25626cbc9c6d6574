"""Multi-step model/tool loop exposed as a stream of provider events."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

from loguru import logger

from daemon_agent.core.history import extract_final_assistant_text
from daemon_agent.core.prompt import build_system_prompt
from daemon_agent.core.provider import (
    ApprovalRequest,
    ApprovalResponder,
    ApprovalsPending,
    ChatModel,
    ProviderEvent,
    ProviderRequest,
    ReasoningDelta,
    StepFinish,
    StreamComplete,
    StreamError,
    TextDelta,
    ToolCall,
    ToolInputStart,
    ToolResult,
)
from daemon_agent.core.steps import assistant_message, execute_tool_calls, tool_message
from daemon_agent.core.subagents import MAX_SUBAGENT_STEPS, SubagentCoordinator
from daemon_agent.tools.approval import ApprovalGate, ApprovalListener
from daemon_agent.tools.execution import ToolExecutionGate
from daemon_agent.tools.registry import ToolCallContext, ToolRegistry
from daemon_agent.types import Message, TokenUsage, ToolApprovalRequest

MAX_AGENT_STEPS = 100
EMPTY_RESPONSE_ERROR = "Model returned empty response. Check API key and model availability."


class _StreamDone:
    pass


_DONE = _StreamDone()


class AgentLoop:
    """Default streaming provider: runs the model and its tools until the model stops calling tools."""

    def __init__(
        self,
        *,
        model: ChatModel,
        registry: ToolRegistry,
        workspace: Path,
        subagent_model: ChatModel | None = None,
        max_steps: int = MAX_AGENT_STEPS,
        subagent_max_steps: int = MAX_SUBAGENT_STEPS,
        extra_system_prompt: str | None = None,
    ) -> None:
        self._model = model
        self._subagent_model = subagent_model or model
        self._registry = registry
        self._workspace = workspace
        self._max_steps = max_steps
        self._subagent_max_steps = subagent_max_steps
        self._extra_system_prompt = extra_system_prompt

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def stream_response(self, request: ProviderRequest) -> AsyncGenerator[ProviderEvent, None]:
        channel: asyncio.Queue[ProviderEvent | _StreamDone] = asyncio.Queue()
        producer = asyncio.create_task(self._produce(request, channel.put_nowait))
        try:
            while True:
                event = await channel.get()
                if isinstance(event, _StreamDone):
                    break
                yield event
            await producer
        finally:
            if not producer.done():
                producer.cancel()
                try:
                    await producer
                except asyncio.CancelledError:
                    pass

    async def _produce(self, request: ProviderRequest, emit: Callable[[ProviderEvent | _StreamDone], None]) -> None:
        try:
            await self._run(request, emit)
        finally:
            emit(_DONE)

    def _approval_listener(self, emit: Callable[[ProviderEvent], None]) -> ApprovalListener:
        def _listener(requests: list[ToolApprovalRequest], respond: ApprovalResponder) -> None:
            emit(ApprovalsPending(requests=tuple(requests), respond=respond))

        return _listener

    async def _run(self, request: ProviderRequest, emit: Callable[[ProviderEvent], None]) -> None:  # noqa: C901
        token = request.cancellation
        approvals = ApprovalGate(
            listener=self._approval_listener(emit) if request.approvals_enabled else None,
            on_request=lambda approval: emit(ApprovalRequest(request=approval)),
        )
        gate = ToolExecutionGate(self._registry, approvals)
        subagents = SubagentCoordinator(
            model=self._subagent_model,
            registry=self._registry,
            approvals=approvals,
            emit=emit,
            max_steps=self._subagent_max_steps,
            effort=request.effort,
        )
        system_prompt = build_system_prompt(
            mode=request.mode,
            tool_names=self._registry.names(),
            workspace=str(self._workspace),
            extra=self._extra_system_prompt,
        )
        tools = self._registry.model_tools()
        messages: list[Message] = [*request.history, {"role": "user", "content": request.user_message}]
        response_messages: list[Message] = []
        text_parts: list[str] = []
        usage: TokenUsage | None = None

        for step_index in range(1, self._max_steps + 1):
            token.raise_if_cancelled()
            logger.info("agent.step step={} messages={}", step_index, len(messages))
            step = await token.guard(
                self._model.complete(messages, tools=tools, system_prompt=system_prompt, effort=request.effort)
            )
            if step.reasoning:
                emit(ReasoningDelta(text=step.reasoning))
            if step.text:
                text_parts.append(step.text)
                emit(TextDelta(text=step.text))
            if step.usage is not None:
                usage = TokenUsage.combine(usage, step.usage)
                emit(StepFinish(usage=step.usage))

            message = assistant_message(step)
            if message is not None:
                messages.append(message)
                response_messages.append(message)
            if not step.tool_calls:
                break

            for call in step.tool_calls:
                emit(ToolInputStart(tool_name=call.name, tool_call_id=call.id))
                emit(ToolCall(tool_name=call.name, input=call.arguments, tool_call_id=call.id))
            outcomes = await execute_tool_calls(
                gate,
                step.tool_calls,
                lambda call: ToolCallContext(tool_call_id=call.id, cancellation=token, subagents=subagents),
            )
            for call, outcome in zip(step.tool_calls, outcomes, strict=True):
                emit(ToolResult(tool_name=call.name, output=outcome.to_payload(), tool_call_id=call.id))
                result = tool_message(call, outcome)
                messages.append(result)
                response_messages.append(result)
        else:
            logger.warning("agent.max_steps steps={}", self._max_steps)

        full_text = "".join(text_parts)
        if not full_text and not response_messages:
            emit(StreamError(message=EMPTY_RESPONSE_ERROR))
            return
        emit(
            StreamComplete(
                full_text=full_text,
                response_messages=response_messages,
                usage=usage,
                final_text=extract_final_assistant_text(response_messages),
                subagent_usage=subagents.usage,
            )
        )

"""Run one agent turn against a streaming provider, with stale-run suppression."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import aclosing
from contextvars import ContextVar
from dataclasses import dataclass, fields
from typing import Any

from loguru import logger

from daemon_agent.core.cancellation import CancellationToken
from daemon_agent.core.provider import (
    ApprovalRequest,
    ApprovalResponder,
    ApprovalsPending,
    ProviderEvent,
    ProviderRequest,
    ReasoningDelta,
    StepFinish,
    StreamComplete,
    StreamError,
    StreamingProvider,
    SubagentComplete,
    SubagentToolCall,
    SubagentToolResult,
    SubagentUsage,
    TextDelta,
    ToolCall,
    ToolInputStart,
    ToolResult,
)
from daemon_agent.errors import OperationCancelledError, TurnError
from daemon_agent.types import TokenUsage, ToolApprovalRequest, TurnParams, TurnResult

_current_run_id: ContextVar[int | None] = ContextVar("daemon_current_run_id", default=None)


def current_run_id() -> int | None:
    return _current_run_id.get()


@dataclass
class TurnCallbacks:
    """Optional observers of one turn. Every one of them is dropped once the turn is stale."""

    on_reasoning_token: Callable[[str], None] | None = None
    on_tool_call_start: Callable[[str, str], None] | None = None
    on_tool_call: Callable[[str, dict[str, Any], str], None] | None = None
    on_tool_result: Callable[[str, dict[str, Any], str], None] | None = None
    on_tool_approval_request: Callable[[ToolApprovalRequest], None] | None = None
    on_awaiting_approvals: Callable[[tuple[ToolApprovalRequest, ...], ApprovalResponder], None] | None = None
    on_subagent_tool_call: Callable[[str, str, dict[str, Any]], None] | None = None
    on_subagent_tool_result: Callable[[str, str, bool], None] | None = None
    on_subagent_usage: Callable[[str, TokenUsage], None] | None = None
    on_subagent_complete: Callable[[str, bool], None] | None = None
    on_token: Callable[[str], None] | None = None
    on_step_usage: Callable[[TokenUsage], None] | None = None
    on_complete: Callable[[TurnResult], None] | None = None
    on_error: Callable[[TurnError], None] | None = None


def _guarded(callback: Callable[..., None], is_active: Callable[[], bool]) -> Callable[..., None]:
    def _call(*args: Any) -> None:
        if is_active():
            callback(*args)

    return _call


class TurnRunner:
    """Owns the run counter and the cancellation token of the active turn."""

    def __init__(self, provider: StreamingProvider) -> None:
        self._provider = provider
        self._run_id = 0
        self._token: CancellationToken | None = None

    @property
    def run_id(self) -> int:
        return self._run_id

    @property
    def is_running(self) -> bool:
        return self._token is not None

    def cancel(self) -> None:
        """Invalidate the active run. Idempotent, and safe with no run in flight."""
        self._run_id += 1
        token, self._token = self._token, None
        if token is not None:
            logger.info("turn.cancel run_id={}", self._run_id - 1)
            token.cancel()

    async def run(self, params: TurnParams, callbacks: TurnCallbacks | None = None) -> TurnResult | None:
        """Run one turn. Returns None when the turn was cancelled or superseded."""
        if self._token is not None:
            self._token.cancel()
        self._run_id += 1
        run_id = self._run_id
        token = CancellationToken()
        self._token = token

        def is_active() -> bool:
            return run_id == self._run_id and not token.cancelled

        captured: list[TurnResult] = []
        wrapped = self._wrap(callbacks or TurnCallbacks(), is_active, captured)
        request = ProviderRequest(
            user_message=params.user_text,
            history=list(params.history),
            cancellation=token,
            mode=params.mode,
            effort=params.effort,
            approvals_enabled=wrapped.on_awaiting_approvals is not None,
        )

        context_token = _current_run_id.set(run_id)
        logger.info("turn.start run_id={} mode={} effort={}", run_id, params.mode, params.effort)
        try:
            await token.guard(self._consume(run_id, request, wrapped))
        except OperationCancelledError:
            logger.info("turn.cancelled run_id={}", run_id)
            return None
        except Exception as exc:
            if token.cancelled:
                logger.info("turn.cancelled run_id={}", run_id)
                return None
            error = exc if isinstance(exc, TurnError) else TurnError(str(exc) or type(exc).__name__)
            logger.opt(exception=exc).warning("turn.error run_id={} error={}", run_id, error)
            if wrapped.on_error is not None:
                wrapped.on_error(error)
            if error is exc:
                raise
            raise error from exc
        finally:
            _current_run_id.reset(context_token)
            if self._token is token:
                self._token = None

        if not is_active():
            return None
        return captured[0] if captured else None

    def _wrap(
        self, callbacks: TurnCallbacks, is_active: Callable[[], bool], captured: list[TurnResult]
    ) -> TurnCallbacks:
        wrapped: dict[str, Callable[..., None] | None] = {}
        for item in fields(callbacks):
            callback = getattr(callbacks, item.name)
            wrapped[item.name] = None if callback is None else _guarded(callback, is_active)

        on_complete = callbacks.on_complete

        def _complete(result: TurnResult) -> None:
            captured.append(result)
            if on_complete is not None:
                on_complete(result)

        wrapped["on_complete"] = _guarded(_complete, is_active)
        return TurnCallbacks(**wrapped)

    async def _consume(self, run_id: int, request: ProviderRequest, callbacks: TurnCallbacks) -> None:
        async with aclosing(self._provider.stream_response(request)) as stream:
            async for event in stream:
                if isinstance(event, StreamError):
                    raise TurnError(event.message)
                if isinstance(event, StreamComplete):
                    result = TurnResult(
                        run_id=run_id,
                        full_text=event.full_text,
                        response_messages=list(event.response_messages),
                        usage=event.usage,
                        final_text=event.final_text,
                        subagent_usage=event.subagent_usage,
                    )
                    logger.info("turn.complete run_id={} messages={}", run_id, len(result.response_messages))
                    if callbacks.on_complete is not None:
                        callbacks.on_complete(result)
                    return
                _deliver(event, callbacks)
        raise TurnError("Provider stream ended without a completion.")


def _deliver(event: ProviderEvent, callbacks: TurnCallbacks) -> None:  # noqa: C901
    if isinstance(event, TextDelta):
        if callbacks.on_token:
            callbacks.on_token(event.text)
    elif isinstance(event, ReasoningDelta):
        if callbacks.on_reasoning_token:
            callbacks.on_reasoning_token(event.text)
    elif isinstance(event, ToolInputStart):
        if callbacks.on_tool_call_start:
            callbacks.on_tool_call_start(event.tool_name, event.tool_call_id)
    elif isinstance(event, ToolCall):
        if callbacks.on_tool_call:
            callbacks.on_tool_call(event.tool_name, event.input, event.tool_call_id)
    elif isinstance(event, ToolResult):
        if callbacks.on_tool_result:
            callbacks.on_tool_result(event.tool_name, event.output, event.tool_call_id)
    elif isinstance(event, StepFinish):
        if callbacks.on_step_usage:
            callbacks.on_step_usage(event.usage)
    elif isinstance(event, ApprovalRequest):
        if callbacks.on_tool_approval_request:
            callbacks.on_tool_approval_request(event.request)
    elif isinstance(event, ApprovalsPending):
        if callbacks.on_awaiting_approvals:
            callbacks.on_awaiting_approvals(event.requests, event.respond)
    elif isinstance(event, SubagentToolCall):
        if callbacks.on_subagent_tool_call:
            callbacks.on_subagent_tool_call(event.tool_call_id, event.tool_name, event.input)
    elif isinstance(event, SubagentToolResult):
        if callbacks.on_subagent_tool_result:
            callbacks.on_subagent_tool_result(event.tool_call_id, event.tool_name, event.success)
    elif isinstance(event, SubagentUsage):
        if callbacks.on_subagent_usage:
            callbacks.on_subagent_usage(event.tool_call_id, event.usage)
    elif isinstance(event, SubagentComplete):
        if callbacks.on_subagent_complete:
            callbacks.on_subagent_complete(event.tool_call_id, event.success)

"""Provider boundary: the stream of events one turn produces, and the one-step model interface."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from republic import Tool

from daemon_agent.core.cancellation import CancellationToken
from daemon_agent.types import (
    InteractionMode,
    Message,
    ReasoningEffort,
    TokenUsage,
    ToolApprovalRequest,
    ToolApprovalResponse,
)

type ApprovalResponder = Callable[[Iterable[ToolApprovalResponse]], int]


@dataclass(frozen=True)
class ProviderRequest:
    user_message: str
    history: list[Message]
    cancellation: CancellationToken
    mode: InteractionMode = "text"
    effort: ReasoningEffort = "medium"
    # Without an approval responder every approval-gated call is denied.
    approvals_enabled: bool = True


@dataclass(frozen=True)
class ReasoningDelta:
    text: str


@dataclass(frozen=True)
class ToolInputStart:
    tool_name: str
    tool_call_id: str


@dataclass(frozen=True)
class ToolCall:
    tool_name: str
    input: dict[str, Any]
    tool_call_id: str


@dataclass(frozen=True)
class ToolResult:
    tool_name: str
    output: dict[str, Any]
    tool_call_id: str


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class StepFinish:
    usage: TokenUsage


@dataclass(frozen=True)
class ApprovalRequest:
    request: ToolApprovalRequest


@dataclass(frozen=True)
class ApprovalsPending:
    requests: tuple[ToolApprovalRequest, ...]
    respond: ApprovalResponder


@dataclass(frozen=True)
class SubagentToolCall:
    tool_call_id: str
    tool_name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class SubagentToolResult:
    tool_call_id: str
    tool_name: str
    success: bool


@dataclass(frozen=True)
class SubagentUsage:
    tool_call_id: str
    usage: TokenUsage


@dataclass(frozen=True)
class SubagentComplete:
    tool_call_id: str
    success: bool


@dataclass(frozen=True)
class StreamComplete:
    full_text: str
    response_messages: list[Message]
    usage: TokenUsage | None = None
    final_text: str | None = None
    subagent_usage: TokenUsage | None = None


@dataclass(frozen=True)
class StreamError:
    message: str


type ProviderEvent = (
    ReasoningDelta
    | ToolInputStart
    | ToolCall
    | ToolResult
    | TextDelta
    | StepFinish
    | ApprovalRequest
    | ApprovalsPending
    | SubagentToolCall
    | SubagentToolResult
    | SubagentUsage
    | SubagentComplete
    | StreamComplete
    | StreamError
)


class StreamingProvider(Protocol):
    def stream_response(self, request: ProviderRequest) -> AsyncGenerator[ProviderEvent, None]: ...


@dataclass(frozen=True)
class ToolCallRequest:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelStep:
    """What one model call produced."""

    text: str = ""
    reasoning: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    usage: TokenUsage | None = None


class ChatModel(Protocol):
    async def complete(
        self,
        messages: Sequence[Message],
        *,
        tools: list[Tool],
        system_prompt: str,
        effort: ReasoningEffort,
    ) -> ModelStep: ...

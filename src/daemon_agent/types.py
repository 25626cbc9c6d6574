"""Shared value types for the daemon agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

type Message = dict[str, Any]
type InteractionMode = Literal["text", "voice"]
type VoiceInteractionType = Literal["direct", "review"]
type ReasoningEffort = Literal["low", "medium", "high"]
type BashApprovalLevel = Literal["none", "dangerous", "all"]

BASH_APPROVAL_LEVELS: tuple[BashApprovalLevel, ...] = ("none", "dangerous", "all")


class DaemonState(StrEnum):
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    TYPING = "typing"
    RESPONDING = "responding"
    SPEAKING = "speaking"


def _add_cost(left: float | None, right: float | None) -> float | None:
    if left is None:
        return right
    if right is None:
        return left
    return left + right


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting for one model step, one subagent or a whole turn."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: int = 0
    cached_input_tokens: int = 0
    cost: float | None = None

    def __post_init__(self) -> None:
        for name in ("prompt_tokens", "completion_tokens", "total_tokens", "reasoning_tokens", "cached_input_tokens"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.total_tokens == 0 and (self.prompt_tokens or self.completion_tokens):
            object.__setattr__(self, "total_tokens", self.prompt_tokens + self.completion_tokens)

    def __add__(self, other: TokenUsage) -> TokenUsage:
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            reasoning_tokens=self.reasoning_tokens + other.reasoning_tokens,
            cached_input_tokens=self.cached_input_tokens + other.cached_input_tokens,
            cost=_add_cost(self.cost, other.cost),
        )

    @classmethod
    def combine(cls, *usages: TokenUsage | None) -> TokenUsage | None:
        """Sum the given usages, skipping missing ones. Returns None if all are missing."""
        present = [usage for usage in usages if usage is not None]
        if not present:
            return None
        total = present[0]
        for usage in present[1:]:
            total = total + usage
        return total


@dataclass(frozen=True)
class ToolApprovalRequest:
    approval_id: str
    tool_name: str
    tool_call_id: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolApprovalResponse:
    approval_id: str
    approved: bool
    reason: str | None = None


@dataclass(frozen=True)
class TurnParams:
    user_text: str
    history: list[Message]
    mode: InteractionMode = "text"
    effort: ReasoningEffort = "medium"


@dataclass(frozen=True)
class TurnResult:
    """Final outcome of a completed turn."""

    run_id: int
    full_text: str
    response_messages: list[Message]
    usage: TokenUsage | None = None
    final_text: str | None = None
    subagent_usage: TokenUsage | None = None

    @property
    def total_usage(self) -> TokenUsage | None:
        return TokenUsage.combine(self.usage, self.subagent_usage)

    @property
    def spoken_text(self) -> str:
        return self.final_text or self.full_text

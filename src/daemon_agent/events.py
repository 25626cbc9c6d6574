"""Daemon events and the bus that fans them out to subscribers."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from blinker import Signal
from loguru import logger

from daemon_agent.core.provider import ApprovalResponder
from daemon_agent.types import DaemonState, Message, TokenUsage, ToolApprovalRequest


@dataclass(frozen=True)
class StateChanged:
    previous: DaemonState
    current: DaemonState


@dataclass(frozen=True)
class TranscriptionUpdated:
    text: str


@dataclass(frozen=True)
class TranscriptionReady:
    text: str


@dataclass(frozen=True)
class UserMessage:
    text: str


@dataclass(frozen=True)
class ReasoningTokenReceived:
    token: str


@dataclass(frozen=True)
class ToolInputStarted:
    tool_name: str
    tool_call_id: str


@dataclass(frozen=True)
class ToolInvoked:
    tool_name: str
    input: dict[str, Any]
    tool_call_id: str


@dataclass(frozen=True)
class ToolResultReceived:
    tool_name: str
    output: dict[str, Any]
    tool_call_id: str


@dataclass(frozen=True)
class ToolApprovalRequested:
    request: ToolApprovalRequest


@dataclass(frozen=True)
class ApprovalsAwaiting:
    requests: tuple[ToolApprovalRequest, ...]
    respond: ApprovalResponder


@dataclass(frozen=True)
class SubagentToolCalled:
    tool_call_id: str
    tool_name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class SubagentToolResulted:
    tool_call_id: str
    tool_name: str
    success: bool


@dataclass(frozen=True)
class SubagentUsageReported:
    tool_call_id: str
    usage: TokenUsage


@dataclass(frozen=True)
class SubagentCompleted:
    tool_call_id: str
    success: bool


@dataclass(frozen=True)
class ResponseTokenReceived:
    token: str


@dataclass(frozen=True)
class StepUsageReported:
    usage: TokenUsage


@dataclass(frozen=True)
class ResponseCompleted:
    full_text: str
    response_messages: list[Message]
    usage: TokenUsage | None = None
    final_text: str | None = None


@dataclass(frozen=True)
class SpeakingStarted:
    text: str


@dataclass(frozen=True)
class SpeakingCompleted:
    pass


@dataclass(frozen=True)
class Cancelled:
    state: DaemonState


@dataclass(frozen=True)
class ErrorOccurred:
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error)


type DaemonEvent = (
    StateChanged
    | TranscriptionUpdated
    | TranscriptionReady
    | UserMessage
    | ReasoningTokenReceived
    | ToolInputStarted
    | ToolInvoked
    | ToolResultReceived
    | ToolApprovalRequested
    | ApprovalsAwaiting
    | SubagentToolCalled
    | SubagentToolResulted
    | SubagentUsageReported
    | SubagentCompleted
    | ResponseTokenReceived
    | StepUsageReported
    | ResponseCompleted
    | SpeakingStarted
    | SpeakingCompleted
    | Cancelled
    | ErrorOccurred
)

type Unsubscribe = Callable[[], None]


class EventBus:
    """Typed fan-out backed by one blinker signal per event class.

    A failing subscriber is logged and never affects the emitter or other subscribers.
    """

    def __init__(self) -> None:
        self._signals: dict[type, Signal] = {}
        self._wildcard = Signal("daemon.events.all")

    def _signal_for(self, event_type: type) -> Signal:
        signal = self._signals.get(event_type)
        if signal is None:
            signal = Signal(f"daemon.events.{event_type.__name__}")
            self._signals[event_type] = signal
        return signal

    def subscribe[E](self, event_type: type[E], handler: Callable[[E], None]) -> Unsubscribe:
        return _connect(self._signal_for(event_type), handler)

    def subscribe_all(self, handler: Callable[[DaemonEvent], None]) -> Unsubscribe:
        return _connect(self._wildcard, handler)

    def has_subscribers(self, event_type: type) -> bool:
        signal = self._signals.get(event_type)
        return signal is not None and bool(signal.receivers)

    def emit(self, event: DaemonEvent) -> None:
        signal = self._signals.get(type(event))
        if signal is not None:
            signal.send(self, event=event)
        self._wildcard.send(self, event=event)


def _connect(signal: Signal, handler: Callable[[Any], None]) -> Unsubscribe:
    def _receiver(sender: Any, *, event: Any) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception("daemon.event.handler_error event={}", type(event).__name__)

    signal.connect(_receiver, weak=False)
    return lambda: signal.disconnect(_receiver)

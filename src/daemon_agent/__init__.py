"""Turn orchestration and tool-execution safety for a terminal AI agent."""

from daemon_agent.core.history import ConversationHistoryStore
from daemon_agent.core.state import DaemonStateMachine
from daemon_agent.core.turn_runner import TurnCallbacks, TurnRunner
from daemon_agent.events import EventBus
from daemon_agent.security import classify
from daemon_agent.types import DaemonState, TokenUsage

__version__ = "0.1.0"

__all__ = [
    "ConversationHistoryStore",
    "DaemonState",
    "DaemonStateMachine",
    "EventBus",
    "TokenUsage",
    "TurnCallbacks",
    "TurnRunner",
    "classify",
]

"""Runtime wiring for the daemon agent."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from daemon_agent.config import Preferences, Settings, get_settings
from daemon_agent.core.agent_loop import AgentLoop
from daemon_agent.core.history import ConversationHistoryStore
from daemon_agent.core.provider import ChatModel
from daemon_agent.core.state import DaemonStateMachine
from daemon_agent.core.turn_runner import TurnRunner
from daemon_agent.errors import (
    ApiKeyNotConfiguredError,
    InvalidModelFormatError,
    ModelNotConfiguredError,
    WorkspaceNotFoundError,
)
from daemon_agent.events import EventBus
from daemon_agent.tools.builtin import build_registry
from daemon_agent.tools.registry import ToolRegistry
from daemon_agent.tools.todo import TodoList

WORKSPACE_NOT_FOUND_TEMPLATE = "Workspace directory does not exist: {path}"
MODEL_NOT_CONFIGURED_ERROR = "Model not configured. Set DAEMON_MODEL (e.g., 'openai:gpt-4o-mini')."
MODEL_FORMAT_ERROR = "Model must be in provider:model format (e.g., 'openai:gpt-4o-mini')."
API_KEY_NOT_CONFIGURED_ERROR = "API key not configured. Set DAEMON_API_KEY in your environment or .env file."


@dataclass(frozen=True)
class DaemonRuntime:
    workspace: Path
    settings: Settings
    preferences: Preferences
    events: EventBus
    registry: ToolRegistry
    todos: TodoList
    runner: TurnRunner
    daemon: DaemonStateMachine

    @property
    def tool_names(self) -> list[str]:
        return self.registry.names()

    @classmethod
    def build(
        cls,
        workspace: Path,
        *,
        settings: Settings | None = None,
        model: ChatModel | None = None,
        subagent_model: ChatModel | None = None,
    ) -> DaemonRuntime:
        """Wire the daemon. Without an explicit model the republic client is used."""
        settings = settings or get_settings()
        _validate_workspace(workspace)
        workspace = workspace.resolve()
        extra_prompt = settings.system_prompt

        if model is None:
            _validate_settings(settings)
            from daemon_agent.integrations.republic_client import (
                RepublicChatModel,
                build_llm,
                read_workspace_agents_prompt,
            )

            model = RepublicChatModel(
                build_llm(settings),
                max_tokens=settings.max_tokens,
                timeout_seconds=settings.model_timeout_seconds,
            )
            if settings.subagent_model and subagent_model is None:
                subagent_model = RepublicChatModel(
                    build_llm(settings, settings.subagent_model),
                    max_tokens=settings.max_tokens,
                    timeout_seconds=settings.model_timeout_seconds,
                )
            agents_prompt = read_workspace_agents_prompt(workspace)
            extra_prompt = "\n\n".join(part for part in (extra_prompt, agents_prompt) if part) or None

        preferences = Preferences.from_settings(settings)
        todos = TodoList()
        registry = build_registry(workspace=workspace, settings=settings, preferences=preferences, todos=todos)
        agent_loop = AgentLoop(
            model=model,
            subagent_model=subagent_model,
            registry=registry,
            workspace=workspace,
            max_steps=settings.max_steps,
            subagent_max_steps=settings.subagent_max_steps,
            extra_system_prompt=extra_prompt,
        )
        events = EventBus()
        runner = TurnRunner(agent_loop)
        daemon = DaemonStateMachine(
            runner=runner,
            events=events,
            history=ConversationHistoryStore(),
            preferences=preferences,
        )
        return cls(
            workspace=workspace,
            settings=settings,
            preferences=preferences,
            events=events,
            registry=registry,
            todos=todos,
            runner=runner,
            daemon=daemon,
        )


def _validate_workspace(workspace: Path) -> None:
    if not workspace.is_dir():
        raise WorkspaceNotFoundError(WORKSPACE_NOT_FOUND_TEMPLATE.format(path=workspace))


def _validate_settings(settings: Settings) -> None:
    if not settings.model:
        raise ModelNotConfiguredError(MODEL_NOT_CONFIGURED_ERROR)
    if ":" not in settings.model:
        raise InvalidModelFormatError(MODEL_FORMAT_ERROR)
    if not settings.api_key:
        raise ApiKeyNotConfiguredError(API_KEY_NOT_CONFIGURED_ERROR)

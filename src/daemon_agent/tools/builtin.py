"""Built-in tool set."""

from __future__ import annotations

from pathlib import Path

from daemon_agent.config import Preferences, Settings
from daemon_agent.core.subagents import create_subagent_tool
from daemon_agent.tools.fs import create_read_file_tool
from daemon_agent.tools.registry import ToolRegistry
from daemon_agent.tools.shell import create_bash_tool
from daemon_agent.tools.todo import TodoList, create_todo_tool


def build_registry(
    *,
    workspace: Path,
    settings: Settings,
    preferences: Preferences,
    todos: TodoList | None = None,
) -> ToolRegistry:
    """Register every built-in tool that is not disabled."""
    registry = ToolRegistry(disabled_tools=preferences.disabled_tools)
    registry.register(
        create_bash_tool(
            workspace=workspace,
            approval_level=lambda: preferences.bash_approval_level,
            default_timeout_seconds=settings.bash_timeout_seconds,
            max_output_chars=settings.bash_max_output_chars,
        )
    )
    registry.register(create_read_file_tool(workspace=workspace))
    registry.register(create_todo_tool(todos or TodoList()))
    registry.register(create_subagent_tool())
    return registry

"""Unified tool registry."""

from __future__ import annotations

import builtins
import inspect
import json
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from republic import Tool, tool_from_model

from daemon_agent.core.cancellation import CancellationToken

if TYPE_CHECKING:
    from daemon_agent.core.subagents import SubagentCoordinator


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed."""
    if len(text) <= width:
        return text
    available = width - len(placeholder)
    if available <= 0:
        return placeholder
    return text[:available] + placeholder


def render_tool_input(arguments: dict[str, Any], width: int = 30) -> str:
    """Compact one-line rendering of tool arguments for logs and terminal lines."""
    params: list[str] = []
    for key, value in arguments.items():
        try:
            rendered = json.dumps(value, ensure_ascii=False)
        except TypeError:
            rendered = repr(value)
        value = _shorten_text(rendered, width=width, placeholder="...")
        if value.startswith('"') and not value.endswith('"'):
            value = value + '"'
        if value.startswith("{") and not value.endswith("}"):
            value = value + "}"
        if value.startswith("[") and not value.endswith("]"):
            value = value + "]"
        params.append(f"{key}={value}")
    return ", ".join(params)


@dataclass(frozen=True)
class ToolCallContext:
    """Per-call runtime handles passed to tool handlers."""

    tool_call_id: str
    cancellation: CancellationToken
    subagents: SubagentCoordinator | None = None


type ToolHandler = Callable[[Any, ToolCallContext], Any | Awaitable[Any]]


@dataclass(frozen=True)
class ToolDescriptor:
    """Tool metadata and runtime handle.

    `tool` is the model-facing republic tool built from the input model. Approval and
    UI-only flags stay on the descriptor since the model never sees them.
    """

    name: str
    description: str
    input_model: type[BaseModel]
    handler: ToolHandler
    needs_approval: Callable[[Any], bool] | None = None
    ui_only: bool = False
    tool: Tool = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        def _handler(params: BaseModel) -> Any:
            return self.handler(params, ToolCallContext(tool_call_id=self.name, cancellation=CancellationToken()))

        tool = tool_from_model(self.input_model, _handler, name=self.name, description=self.description)
        object.__setattr__(self, "tool", tool)

    async def invoke(self, params: BaseModel, context: ToolCallContext) -> Any:
        result = self.handler(params, context)
        if inspect.isawaitable(result):
            result = await result
        return result


class ToolRegistry:
    """Tools visible to one agent, keyed by their model-facing name."""

    def __init__(self, allowed_tools: Iterable[str] | None = None, disabled_tools: Iterable[str] = ()) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        self._allowed = set(allowed_tools) if allowed_tools is not None else None
        self._disabled = set(disabled_tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def register(self, descriptor: ToolDescriptor) -> None:
        if descriptor.name in self._tools:
            raise ValueError(f"Duplicate tool name: {descriptor.name}")
        if not self._is_enabled(descriptor.name):
            return
        self._tools[descriptor.name] = descriptor

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def descriptors(self) -> builtins.list[ToolDescriptor]:
        return sorted(self._tools.values(), key=lambda item: item.name)

    def names(self) -> builtins.list[str]:
        return [descriptor.name for descriptor in self.descriptors()]

    def without(self, names: Iterable[str] = (), *, drop_ui_only: bool = False) -> ToolRegistry:
        """A new registry holding every tool except the given ones."""
        excluded = set(names)
        restricted = ToolRegistry()
        for descriptor in self.descriptors():
            if descriptor.name in excluded or (drop_ui_only and descriptor.ui_only):
                continue
            restricted.register(descriptor)
        return restricted

    def model_tools(self) -> builtins.list[Tool]:
        return [descriptor.tool for descriptor in self.descriptors()]

    def _is_enabled(self, name: str) -> bool:
        if name in self._disabled:
            return False
        return self._allowed is None or name in self._allowed

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Self

from pydantic import BaseModel, Field, model_validator

from daemon_agent.tools.registry import ToolCallContext, ToolDescriptor

TODO_TOOL_NAME = "todo"

type TodoStatus = Literal["pending", "in_progress", "completed", "cancelled"]

_STATUS_MARKS: dict[str, str] = {
    "pending": "[ ]",
    "in_progress": "[~]",
    "completed": "[x]",
    "cancelled": "[-]",
}


class TodoItem(BaseModel):
    content: str = Field(..., min_length=1, description="What needs to be done")
    status: TodoStatus = Field(default="pending", description="Current status")


class TodoInput(BaseModel):
    action: Literal["write", "update", "list"] = Field(..., description="write replaces the list")
    todos: list[TodoItem] | None = Field(default=None, description="Full list for the write action")
    index: int | None = Field(default=None, ge=1, description="1-based item number for the update action")
    status: TodoStatus | None = Field(default=None, description="New status for the update action")

    @model_validator(mode="after")
    def _check_action_arguments(self) -> Self:
        if self.action == "write" and self.todos is None:
            raise ValueError("write requires todos")
        if self.action == "update" and (self.index is None or self.status is None):
            raise ValueError("update requires index and status")
        return self


@dataclass
class TodoList:
    """Plan items kept for the lifetime of one daemon session."""

    items: list[TodoItem] = field(default_factory=list)

    def write(self, items: list[TodoItem]) -> None:
        self.items = list(items)

    def update(self, index: int, status: TodoStatus) -> None:
        if not 1 <= index <= len(self.items):
            raise IndexError(f"no todo item #{index}, the list has {len(self.items)}")
        self.items[index - 1] = self.items[index - 1].model_copy(update={"status": status})

    def render(self) -> str:
        if not self.items:
            return "(no todos)"
        lines = [f"{number}. {_STATUS_MARKS[item.status]} {item.content}" for number, item in enumerate(self.items, 1)]
        return "\n".join(lines)


def create_todo_tool(todos: TodoList) -> ToolDescriptor:
    def _handler(params: TodoInput, _context: ToolCallContext) -> str:
        if params.action == "write" and params.todos is not None:
            todos.write(params.todos)
        elif params.action == "update" and params.index is not None and params.status is not None:
            todos.update(params.index, params.status)
        return todos.render()

    return ToolDescriptor(
        name=TODO_TOOL_NAME,
        description="Keep a short plan for multi-step work: write the list, update one item, or list it.",
        input_model=TodoInput,
        handler=_handler,
    )

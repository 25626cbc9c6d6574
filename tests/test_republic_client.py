from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
from pydantic import BaseModel

from daemon_agent.integrations.republic_client import (
    MAX_AGENTS_PROMPT_CHARS,
    RepublicChatModel,
    parse_response,
    parse_usage,
    read_workspace_agents_prompt,
)
from daemon_agent.tools.registry import ToolDescriptor
from daemon_agent.types import TokenUsage


def test_read_workspace_agents_prompt_returns_empty_for_missing_file(tmp_path: Path) -> None:
    assert read_workspace_agents_prompt(tmp_path) == ""


def test_read_workspace_agents_prompt_returns_full_content_when_small(tmp_path: Path) -> None:
    content = "Always run the tests with make test."
    (tmp_path / "AGENTS.md").write_text(content, encoding="utf-8")
    assert read_workspace_agents_prompt(tmp_path) == content


def test_read_workspace_agents_prompt_truncates_when_too_large(tmp_path: Path) -> None:
    content = "A" * (MAX_AGENTS_PROMPT_CHARS + 123)
    (tmp_path / "AGENTS.md").write_text(content, encoding="utf-8")

    prompt = read_workspace_agents_prompt(tmp_path)
    assert prompt.endswith("[AGENTS.md truncated]")
    assert prompt.startswith("A" * MAX_AGENTS_PROMPT_CHARS)
    assert len(prompt) < len(content)


def _response(message: SimpleNamespace, usage: SimpleNamespace | None = None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


def test_parse_response_reads_text_reasoning_and_tool_calls() -> None:
    message = SimpleNamespace(
        content="Let me check.",
        reasoning_content="The user wants a listing.",
        tool_calls=[
            SimpleNamespace(id="call-1", function=SimpleNamespace(name="bash", arguments='{"command": "ls"}')),
            SimpleNamespace(id=None, function=SimpleNamespace(name="todo", arguments="not json")),
        ],
    )

    step = parse_response(_response(message))

    assert step.text == "Let me check."
    assert step.reasoning == "The user wants a listing."
    assert [(call.id, call.name, call.arguments) for call in step.tool_calls] == [
        ("call-1", "bash", {"command": "ls"}),
        ("call_1", "todo", {"_raw": "not json"}),
    ]
    assert step.usage is None


def test_parse_response_without_choices_is_empty() -> None:
    step = parse_response(SimpleNamespace(choices=[], usage=None))

    assert step.text == ""
    assert step.tool_calls == ()


def test_parse_usage_reads_detail_fields() -> None:
    usage = SimpleNamespace(
        prompt_tokens=120,
        completion_tokens=30,
        total_tokens=150,
        completion_tokens_details=SimpleNamespace(reasoning_tokens=12),
        prompt_tokens_details=SimpleNamespace(cached_tokens=100),
        cost=0.0021,
    )

    assert parse_usage(usage) == TokenUsage(
        prompt_tokens=120,
        completion_tokens=30,
        total_tokens=150,
        reasoning_tokens=12,
        cached_input_tokens=100,
        cost=0.0021,
    )
    assert parse_usage(SimpleNamespace(prompt_tokens=3, completion_tokens=4)).total_tokens == 7
    assert parse_usage(None) is None


class _LookInput(BaseModel):
    path: str


@pytest.mark.asyncio
async def test_chat_model_forwards_effort_tools_and_system_prompt() -> None:
    seen: dict[str, Any] = {}

    def _raw(**kwargs: Any) -> SimpleNamespace:
        seen.update(kwargs)
        return _response(SimpleNamespace(content="ok", tool_calls=None))

    llm = SimpleNamespace(chat=SimpleNamespace(raw=_raw))
    tool = ToolDescriptor(name="look", description="Look at a path", input_model=_LookInput, handler=lambda *_: "").tool
    model = RepublicChatModel(llm, max_tokens=10)  # type: ignore[arg-type]

    step = await model.complete(
        [{"role": "user", "content": "hi"}],
        tools=[tool],
        system_prompt="be brief",
        effort="high",
    )

    assert step.text == "ok"
    assert seen["reasoning_effort"] == "high"
    assert seen["max_tokens"] == 10
    assert seen["tools"] == [tool]
    assert seen["messages"] == [{"role": "system", "content": "be brief"}, {"role": "user", "content": "hi"}]

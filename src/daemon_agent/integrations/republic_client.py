"""Republic integration: a chat model backed by the republic LLM client."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from loguru import logger
from republic import LLM, Tool

from daemon_agent.config import Settings
from daemon_agent.core.provider import ModelStep, ToolCallRequest
from daemon_agent.types import Message, ReasoningEffort, TokenUsage

AGENTS_FILE = "AGENTS.md"
MAX_AGENTS_PROMPT_CHARS = 12_000


def build_llm(settings: Settings, model: str | None = None) -> LLM:
    """Build a republic LLM client for the configured model."""
    return LLM(
        model or settings.model,
        api_key=settings.api_key,
        api_base=settings.api_base,
    )


class RepublicChatModel:
    """One model step per call. The blocking client call runs in a worker thread."""

    def __init__(self, llm: LLM, *, max_tokens: int, timeout_seconds: float | None = None) -> None:
        self._llm = llm
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        tools: list[Tool],
        system_prompt: str,
        effort: ReasoningEffort,
    ) -> ModelStep:
        payload = [{"role": "system", "content": system_prompt}, *messages]
        logger.debug("model.call messages={} tools={} effort={}", len(payload), len(tools), effort)
        async with asyncio.timeout(self._timeout_seconds):
            response = await asyncio.to_thread(
                self._llm.chat.raw,
                messages=payload,
                tools=list(tools),
                max_tokens=self._max_tokens,
                reasoning_effort=effort,
            )
        return parse_response(response)


def parse_response(response: Any) -> ModelStep:
    """Normalize an OpenAI-style chat completion into a model step."""
    choices = getattr(response, "choices", None)
    if not choices:
        return ModelStep(usage=parse_usage(getattr(response, "usage", None)))
    message = getattr(choices[0], "message", None)
    if message is None:
        return ModelStep(usage=parse_usage(getattr(response, "usage", None)))
    reasoning = getattr(message, "reasoning_content", None) or getattr(message, "reasoning", None) or ""
    return ModelStep(
        text=getattr(message, "content", None) or "",
        reasoning=reasoning if isinstance(reasoning, str) else "",
        tool_calls=tuple(_parse_tool_calls(getattr(message, "tool_calls", None) or [])),
        usage=parse_usage(getattr(response, "usage", None)),
    )


def _parse_tool_calls(tool_calls: Sequence[Any]) -> list[ToolCallRequest]:
    calls: list[ToolCallRequest] = []
    for index, tool_call in enumerate(tool_calls):
        function = getattr(tool_call, "function", None)
        if function is None:
            continue
        raw_arguments = getattr(function, "arguments", "") or "{}"
        try:
            arguments = json.loads(raw_arguments) if isinstance(raw_arguments, str) else dict(raw_arguments)
        except (TypeError, ValueError):
            logger.warning("model.tool_call.bad_arguments name={}", getattr(function, "name", ""))
            arguments = {"_raw": raw_arguments}
        if not isinstance(arguments, dict):
            arguments = {"_raw": arguments}
        calls.append(
            ToolCallRequest(
                id=getattr(tool_call, "id", None) or f"call_{index}",
                name=getattr(function, "name", "") or "",
                arguments=arguments,
            )
        )
    return calls


def parse_usage(usage: Any) -> TokenUsage | None:
    if usage is None:
        return None
    completion_details = getattr(usage, "completion_tokens_details", None)
    prompt_details = getattr(usage, "prompt_tokens_details", None)
    cost = getattr(usage, "cost", None)
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
        reasoning_tokens=getattr(completion_details, "reasoning_tokens", 0) or 0,
        cached_input_tokens=getattr(prompt_details, "cached_tokens", 0) or 0,
        cost=float(cost) if isinstance(cost, int | float) else None,
    )


def read_workspace_agents_prompt(workspace: Path) -> str:
    """Read workspace AGENTS.md if present."""
    prompt_file = workspace / AGENTS_FILE
    if not prompt_file.is_file():
        return ""
    try:
        content = prompt_file.read_text(encoding="utf-8").strip()
    except OSError:
        return ""
    if len(content) <= MAX_AGENTS_PROMPT_CHARS:
        return content
    return content[:MAX_AGENTS_PROMPT_CHARS] + "\n\n[AGENTS.md truncated]"

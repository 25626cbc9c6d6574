"""System prompts for the agent and its subagents."""

from __future__ import annotations

from datetime import date

from daemon_agent.types import InteractionMode

DEFAULT_SYSTEM_PROMPT = """You are a terminal assistant that works directly on the user's machine.

Work through the task with the tools you have until it is done, then answer briefly.
Use the bash tool for shell work and read_file to inspect files. Keep a todo plan for
multi-step work. Delegate independent research or investigation to subagents so they
can run in parallel, and give each one a self-contained task.

If a tool call is denied, do not retry the same command. Explain what you would need instead."""

VOICE_SUFFIX = """
Your answer will be read aloud. Answer in short plain sentences without markdown,
code blocks, tables or lists."""

SUBAGENT_SYSTEM_PROMPT = """You are a subagent working on one delegated task.

Rules:
- Do not ask clarifying questions. Make reasonable assumptions and state them.
- Use the tools available to you to complete the task.
- Finish with a concise, self-contained summary of what you found or did, because only
  your final message is returned to the agent that delegated the task."""


def build_system_prompt(
    *,
    mode: InteractionMode,
    tool_names: list[str],
    workspace: str,
    extra: str | None = None,
    today: date | None = None,
) -> str:
    sections = [
        DEFAULT_SYSTEM_PROMPT,
        f"Today is {(today or date.today()).isoformat()}. Working directory: {workspace}.",
        f"Available tools: {', '.join(tool_names) if tool_names else '(none)'}.",
    ]
    if mode == "voice":
        sections.append(VOICE_SUFFIX.strip())
    if extra:
        sections.append(extra.strip())
    return "\n\n".join(sections)


def build_subagent_prompt(*, today: date | None = None) -> str:
    return f"{SUBAGENT_SYSTEM_PROMPT}\n\nToday is {(today or date.today()).isoformat()}."

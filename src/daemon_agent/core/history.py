"""Conversation history kept across turns, with undo and final-answer extraction."""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from daemon_agent.types import Message


class ConversationHistoryStore:
    """Ordered model-facing conversation, truncatable back to a user turn."""

    def __init__(self, messages: Iterable[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])

    def __len__(self) -> int:
        return len(self._messages)

    def get(self) -> list[Message]:
        return list(self._messages)

    def set(self, messages: Iterable[Message]) -> None:
        self._messages = list(messages)

    def clear(self) -> None:
        self._messages = []

    def append_turn(self, user_text: str, response_messages: Iterable[Message]) -> None:
        self._messages.append({"role": "user", "content": user_text})
        self._messages.extend(response_messages)

    def undo_last_turn(self) -> int:
        """Remove the last user message and everything after it. Returns the number removed."""
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index].get("role") == "user":
                removed = len(self._messages) - index
                del self._messages[index:]
                logger.info("history.undo removed={}", removed)
                return removed
        return 0


def extract_final_assistant_text(messages: Iterable[Message]) -> str | None:
    """Text content of the last assistant message that has any."""
    final: str | None = None
    for message in messages:
        if message.get("role") != "assistant":
            continue
        text = _message_text(message.get("content"))
        if text.strip():
            final = text
    return final


def _message_text(content: object) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [part.get("text", "") for part in content if isinstance(part, dict) and part.get("type") == "text"]
        return "".join(parts)
    return ""

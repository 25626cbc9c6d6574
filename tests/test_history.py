from __future__ import annotations

from daemon_agent.core.history import ConversationHistoryStore, extract_final_assistant_text


def test_undo_on_empty_history_removes_nothing() -> None:
    store = ConversationHistoryStore()

    assert store.undo_last_turn() == 0
    assert store.get() == []


def test_undo_removes_last_user_message_and_everything_after() -> None:
    store = ConversationHistoryStore()
    store.append_turn("first", [{"role": "assistant", "content": "one"}])
    store.append_turn(
        "run ls",
        [
            {"role": "assistant", "content": "", "tool_calls": [{"id": "c1"}]},
            {"role": "tool", "tool_call_id": "c1", "content": "a.txt"},
            {"role": "assistant", "content": "There is a.txt"},
        ],
    )

    assert store.undo_last_turn() == 4
    assert store.get() == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "one"},
    ]
    assert store.undo_last_turn() == 2
    assert len(store) == 0


def test_undo_without_user_message_is_a_no_op() -> None:
    store = ConversationHistoryStore([{"role": "assistant", "content": "orphan"}])

    assert store.undo_last_turn() == 0
    assert len(store) == 1


def test_get_returns_a_copy() -> None:
    store = ConversationHistoryStore()
    store.append_turn("hello", [])

    snapshot = store.get()
    snapshot.append({"role": "user", "content": "sneaky"})

    assert len(store) == 1


def test_set_and_clear_replace_history() -> None:
    store = ConversationHistoryStore()
    store.set([{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}])
    assert len(store) == 2

    store.clear()
    assert store.get() == []


def test_final_assistant_text_skips_blank_messages() -> None:
    messages = [
        {"role": "assistant", "content": "Looking..."},
        {"role": "tool", "tool_call_id": "c1", "content": "result"},
        {"role": "assistant", "content": [{"type": "text", "text": "Done."}]},
        {"role": "assistant", "content": "   "},
    ]

    assert extract_final_assistant_text(messages) == "Done."
    assert extract_final_assistant_text([{"role": "user", "content": "hi"}]) is None

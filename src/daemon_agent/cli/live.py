"""Interactive and one-shot drivers that connect the daemon to the terminal."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable

from loguru import logger

from daemon_agent.core.state import DaemonStateMachine
from daemon_agent.events import (
    ApprovalsAwaiting,
    Cancelled,
    ErrorOccurred,
    EventBus,
    ReasoningTokenReceived,
    ResponseCompleted,
    ResponseTokenReceived,
    SubagentCompleted,
    SubagentToolCalled,
    ToolInvoked,
    ToolResultReceived,
    Unsubscribe,
)
from daemon_agent.runtime import DaemonRuntime
from daemon_agent.types import BASH_APPROVAL_LEVELS, ToolApprovalResponse

from .render import Renderer

HELP_TEXT = (
    "/undo            remove the last turn\n"
    "/clear           clear the conversation\n"
    "/approval LEVEL  bash approval: none, dangerous or all\n"
    "/effort LEVEL    reasoning effort: low, medium or high\n"
    "/tools           list tools\n"
    "/debug           toggle tool output\n"
    "/quit            exit"
)


def attach_renderer(events: EventBus, renderer: Renderer, *, interactive_approvals: bool) -> list[Unsubscribe]:
    """Render daemon events. With interactive approvals the user is asked for every gated call."""
    subscriptions = [
        events.subscribe(ResponseTokenReceived, lambda event: renderer.stream_token(event.token)),
        events.subscribe(ReasoningTokenReceived, lambda event: renderer.reasoning_token(event.token)),
        events.subscribe(ToolInvoked, lambda event: renderer.tool_call(event.tool_name, event.input)),
        events.subscribe(ToolResultReceived, lambda event: renderer.tool_result(event.tool_name, event.output)),
        events.subscribe(
            SubagentToolCalled,
            lambda event: renderer.subagent_event(event.tool_call_id, f"{event.tool_name} ..."),
        ),
        events.subscribe(
            SubagentCompleted,
            lambda event: renderer.subagent_event(event.tool_call_id, "done" if event.success else "failed"),
        ),
        events.subscribe(ResponseCompleted, lambda event: _render_response(renderer, event)),
        events.subscribe(ErrorOccurred, lambda event: renderer.error(event.message)),
        events.subscribe(Cancelled, lambda _event: renderer.info("[dim]Cancelled.[/dim]")),
    ]
    if interactive_approvals:
        subscriptions.append(events.subscribe(ApprovalsAwaiting, _approval_prompter(renderer)))
    return subscriptions


def _render_response(renderer: Renderer, event: ResponseCompleted) -> None:
    streamed = renderer.end_stream()
    text = event.final_text or event.full_text
    if not streamed and text.strip():
        renderer.assistant_message(text.strip())
    renderer.usage(event.usage)


def _approval_prompter(renderer: Renderer) -> Callable[[ApprovalsAwaiting], None]:
    pending: set[asyncio.Task[None]] = set()
    lock = asyncio.Lock()

    async def _ask(event: ApprovalsAwaiting) -> None:
        async with lock:
            responses = []
            for request in event.requests:
                approved = await renderer.confirm_approval(request)
                responses.append(ToolApprovalResponse(approval_id=request.approval_id, approved=approved))
            event.respond(responses)

    def _on_awaiting(event: ApprovalsAwaiting) -> None:
        task = asyncio.get_running_loop().create_task(_ask(event))
        pending.add(task)
        task.add_done_callback(pending.discard)

    return _on_awaiting


async def run_turn(daemon: DaemonStateMachine, text: str) -> None:
    """Submit one message; Ctrl-C cancels the turn instead of exiting."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, daemon.cancel_current_action)
        installed = True
    except (NotImplementedError, RuntimeError):
        installed = False
    try:
        await daemon.submit_text(text)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def handle_command(command: str, runtime: DaemonRuntime, renderer: Renderer) -> bool:
    """Handle a slash command. Returns False when the chat should end."""
    name, _, argument = command.strip().partition(" ")
    argument = argument.strip()
    daemon = runtime.daemon
    if name in {"/quit", "/exit", "/q"}:
        return False
    if name == "/undo":
        removed = daemon.undo_last_turn()
        renderer.info(f"Removed {removed} message(s)." if removed else "Nothing to undo.")
    elif name == "/clear":
        daemon.clear_history()
        renderer.info("Conversation cleared.")
    elif name == "/approval":
        if argument not in BASH_APPROVAL_LEVELS:
            renderer.error(f"Unknown approval level: {argument or '(none)'}")
        else:
            daemon.set_bash_approval_level(argument)  # type: ignore[arg-type]
            renderer.info(f"Bash approval level: {argument}")
    elif name == "/effort":
        if argument not in {"low", "medium", "high"}:
            renderer.error(f"Unknown reasoning effort: {argument or '(none)'}")
        else:
            daemon.set_reasoning_effort(argument)  # type: ignore[arg-type]
            renderer.info(f"Reasoning effort: {argument}")
    elif name == "/tools":
        renderer.info(", ".join(runtime.tool_names))
    elif name == "/debug":
        renderer.toggle_debug()
    elif name == "/help":
        renderer.info(HELP_TEXT)
    else:
        renderer.error(f"Unknown command: {name}. Type /help for commands.")
    return True


async def run_chat(runtime: DaemonRuntime, renderer: Renderer) -> None:
    subscriptions = attach_renderer(runtime.events, renderer, interactive_approvals=True)
    try:
        while True:
            try:
                user_input = await renderer.get_user_input()
            except (KeyboardInterrupt, EOFError):
                renderer.info("Goodbye!")
                break
            if not user_input.strip():
                continue
            if user_input.startswith("/"):
                if not handle_command(user_input, runtime, renderer):
                    renderer.info("Goodbye!")
                    break
                continue
            await run_turn(runtime.daemon, user_input)
    finally:
        for unsubscribe in subscriptions:
            unsubscribe()
        await runtime.daemon.aclose()
        logger.info("chat.closed")


async def run_once(runtime: DaemonRuntime, renderer: Renderer, message: str, *, interactive: bool) -> bool:
    """Run a single turn. Returns False when it ended with an error."""
    failed = False

    def _mark_failed(_event: ErrorOccurred) -> None:
        nonlocal failed
        failed = True

    subscriptions = attach_renderer(runtime.events, renderer, interactive_approvals=interactive)
    subscriptions.append(runtime.events.subscribe(ErrorOccurred, _mark_failed))
    try:
        await run_turn(runtime.daemon, message)
    finally:
        for unsubscribe in subscriptions:
            unsubscribe()
        await runtime.daemon.aclose()
    return not failed

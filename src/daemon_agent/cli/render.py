"""CLI renderer for the daemon agent."""

from __future__ import annotations

import json
import threading
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markup import escape

from daemon_agent.security import CommandVerdict
from daemon_agent.tools.registry import render_tool_input
from daemon_agent.types import TokenUsage, ToolApprovalRequest

TOOL_PREVIEW_LIMIT = 200


class Renderer:
    """CLI renderer using Rich for terminal output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console: Console = console or Console()
        self._show_debug: bool = False
        self._prompt_session: PromptSession[str] | None = None
        self._confirm_session: PromptSession[str] | None = None
        self._print_lock = threading.Lock()
        self._stream_kind: str | None = None
        self._answer_streamed = False

    def toggle_debug(self) -> None:
        """Toggle debug mode to show/hide tool output."""
        self._show_debug = not self._show_debug
        status = "enabled" if self._show_debug else "disabled"
        self._print(f"[dim]Debug mode {status}[/dim]")

    @property
    def show_debug(self) -> bool:
        return self._show_debug

    def info(self, message: str) -> None:
        self._print(message)

    def error(self, message: str) -> None:
        self._print(f"[bold red]Error:[/bold red] {escape(message)}")

    def welcome(self, message: str = "[bold blue]daemon-agent[/bold blue] - Ctrl-C cancels a running turn.") -> None:
        self._print(message)

    def usage_info(self, workspace_path: str | None = None, model: str = "", tools: list[str] | None = None) -> None:
        if workspace_path:
            self._print(f"[bold]Working directory:[/bold] [cyan]{escape(workspace_path)}[/cyan]")
        if model:
            self._print(f"[bold]Model:[/bold] [magenta]{escape(model)}[/magenta]")
        if tools:
            self._print(f"[bold]Available tools:[/bold] [green]{', '.join(tools)}[/green]")

    def assistant_message(self, message: str) -> None:
        self._print(f"[bold yellow]Agent:[/bold yellow] {escape(message)}")

    def stream_token(self, token: str) -> None:
        """Append streamed assistant text to the open answer line."""
        self._stream("answer", "[bold yellow]Agent:[/bold yellow] ", token)
        self._answer_streamed = True

    def reasoning_token(self, token: str) -> None:
        if self._show_debug:
            self._stream("reasoning", "[dim]Thinking:[/dim] ", token, style="dim")

    def end_stream(self) -> bool:
        """Close the open streamed line. Returns whether answer text was streamed since the last call."""
        with self._print_lock:
            self._close_stream()
            streamed, self._answer_streamed = self._answer_streamed, False
            return streamed

    def tool_call(self, tool_name: str, arguments: dict[str, Any]) -> None:
        self._print(f"[dim]> {escape(tool_name)}({escape(render_tool_input(arguments, width=60))})[/dim]")

    def tool_result(self, tool_name: str, payload: dict[str, Any]) -> None:
        status = payload.get("status", "ok")
        if status != "ok":
            self._print(f"[red]< {escape(tool_name)} {status}: {escape(str(payload.get('error', '')))}[/red]")
            return
        if not self._show_debug:
            return
        preview = json.dumps(payload.get("output"), ensure_ascii=False, default=str)
        if len(preview) > TOOL_PREVIEW_LIMIT:
            preview = preview[:TOOL_PREVIEW_LIMIT] + "..."
        self._print(f"[dim]< {escape(tool_name)} {escape(preview)}[/dim]")

    def subagent_event(self, tool_call_id: str, message: str) -> None:
        self._print(f"[dim blue]  [{escape(tool_call_id[-6:])}] {escape(message)}[/dim blue]")

    def usage(self, usage: TokenUsage | None) -> None:
        if usage is None:
            return
        cost = f", ${usage.cost:.4f}" if usage.cost is not None else ""
        self._print(f"[dim]tokens: {usage.prompt_tokens} in / {usage.completion_tokens} out{cost}[/dim]")

    def verdict(self, command: str, verdict: CommandVerdict) -> None:
        self._print(f"[bold]Command:[/bold] {escape(command)}")
        self._print(f"dangerous: {'[red]yes[/red]' if verdict.dangerous else '[green]no[/green]'}")
        self._print(
            f"sensitive path access: {'[red]yes[/red]' if verdict.sensitive_path_access else '[green]no[/green]'}"
        )
        self._print(f"requires approval: {'yes' if verdict.requires_approval else 'no'}")

    def debug_message(self, message: str) -> None:
        if self._show_debug:
            self._print(f"[dim]{escape(message)}[/dim]")

    async def get_user_input(self) -> str:
        """Prompt user for input."""
        if self._prompt_session is None:
            self._prompt_session = PromptSession()
        with patch_stdout(raw=True):
            return await self._prompt_session.prompt_async("$ ")

    async def confirm_approval(self, request: ToolApprovalRequest) -> bool:
        """Ask whether one tool call may run. Anything but an explicit yes denies it."""
        if self._confirm_session is None:
            self._confirm_session = PromptSession()
        summary = request.input.get("command") or render_tool_input(request.input, width=80)
        self._print(f"[bold yellow]Approval needed[/bold yellow] for [bold]{escape(request.tool_name)}[/bold]:")
        self._print(f"  {escape(str(summary))}")
        try:
            with patch_stdout(raw=True):
                answer = await self._confirm_session.prompt_async("Allow? [y/N] ")
        except (KeyboardInterrupt, EOFError):
            return False
        return answer.strip().lower() in {"y", "yes"}

    def _print(self, message: str) -> None:
        with self._print_lock:
            self._close_stream()
            self.console.print(message)

    def _stream(self, kind: str, prefix: str, token: str, style: str | None = None) -> None:
        with self._print_lock:
            if self._stream_kind != kind:
                self._close_stream()
                self.console.print(prefix, end="", soft_wrap=True)
                self._stream_kind = kind
            self.console.print(token, end="", style=style, markup=False, highlight=False, soft_wrap=True)

    def _close_stream(self) -> None:
        if self._stream_kind is not None:
            self.console.print()
            self._stream_kind = None


def create_cli_renderer() -> Renderer:
    return Renderer()

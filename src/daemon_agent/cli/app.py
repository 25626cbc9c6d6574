"""CLI entry points for the daemon agent."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer

from daemon_agent.config import get_settings
from daemon_agent.errors import ConfigurationError
from daemon_agent.logging_utils import configure_logging
from daemon_agent.runtime import DaemonRuntime
from daemon_agent.security import classify as classify_command
from daemon_agent.types import BASH_APPROVAL_LEVELS

from .live import run_chat, run_once
from .render import Renderer, create_cli_renderer

app = typer.Typer(
    name="daemon-agent",
    help="Terminal AI agent with guarded tool execution.",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.callback(invoke_without_command=True)
def main_callback(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        chat(workspace=None, model=None, approval=None)


def _build_runtime(
    renderer: Renderer,
    workspace: Path | None,
    model: str | None,
    approval: str | None,
) -> DaemonRuntime:
    if approval is not None and approval not in BASH_APPROVAL_LEVELS:
        raise typer.BadParameter(f"expected one of {', '.join(BASH_APPROVAL_LEVELS)}", param_hint="--approval")
    settings = get_settings(model=model, bash_approval_level=approval)
    try:
        return DaemonRuntime.build(workspace or Path.cwd(), settings=settings)
    except ConfigurationError as exc:
        renderer.error(str(exc))
        raise typer.Exit(1) from exc


@app.command()
def chat(
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Working directory for tools"),
    model: str | None = typer.Option(None, "--model", help="Model in provider:model format"),
    approval: str | None = typer.Option(None, "--approval", help="none, dangerous or all"),
) -> None:
    """Start an interactive chat."""
    configure_logging(profile="chat")
    renderer = create_cli_renderer()
    runtime = _build_runtime(renderer, workspace, model, approval)
    renderer.welcome()
    renderer.usage_info(str(runtime.workspace), runtime.settings.model, runtime.tool_names)
    asyncio.run(run_chat(runtime, renderer))


@app.command()
def run(
    message: str = typer.Argument(..., help="Message to send"),
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Working directory for tools"),
    model: str | None = typer.Option(None, "--model", help="Model in provider:model format"),
    approval: str | None = typer.Option(None, "--approval", help="none, dangerous or all"),
) -> None:
    """Run a single turn and exit."""
    configure_logging(profile="chat")
    renderer = create_cli_renderer()
    runtime = _build_runtime(renderer, workspace, model, approval)
    ok = asyncio.run(run_once(runtime, renderer, message, interactive=sys.stdin.isatty()))
    if not ok:
        raise typer.Exit(1)


@app.command()
def classify(command: str = typer.Argument(..., help="Shell command to classify")) -> None:
    """Show whether a shell command would need approval."""
    verdict = classify_command(command)
    create_cli_renderer().verdict(command, verdict)


if __name__ == "__main__":
    app()

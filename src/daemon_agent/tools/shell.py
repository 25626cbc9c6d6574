"""Bash tool: runs workspace commands under a timeout and the turn cancellation token."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from daemon_agent.core.cancellation import CancellationToken
from daemon_agent.errors import OperationCancelledError
from daemon_agent.security import requires_approval
from daemon_agent.tools.registry import ToolCallContext, ToolDescriptor
from daemon_agent.types import BashApprovalLevel

BASH_TOOL_NAME = "bash"
TRUNCATION_MARKER = "\n... [output truncated]"

BASH_DESCRIPTION = (
    "Run a shell command with bash and return its exit code, stdout and stderr. "
    "Prefer short, non-interactive commands. Risky commands may need the user's approval."
)


class BashInput(BaseModel):
    description: str = Field(..., description="One short sentence saying what the command does")
    command: str = Field(..., description="Shell command to run")
    workdir: str | None = Field(default=None, description="Working directory, relative to the workspace")
    timeout: float | None = Field(default=None, gt=0, description="Timeout in seconds")


def truncate_output(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


async def run_bash(
    command: str,
    *,
    cwd: Path,
    timeout_seconds: float,
    cancellation: CancellationToken | None = None,
    max_output_chars: int = 50_000,
) -> dict[str, Any]:
    """Run one command, killing it on timeout or cancellation."""
    started = time.monotonic()
    process = await asyncio.create_subprocess_exec(
        "bash",
        "-c",
        command,
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        stdin=asyncio.subprocess.DEVNULL,
    )
    communicate = asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    try:
        if cancellation is not None:
            stdout_bytes, stderr_bytes = await cancellation.guard(communicate)
        else:
            stdout_bytes, stderr_bytes = await communicate
    except TimeoutError:
        await _kill(process)
        logger.warning("bash.timeout seconds={} command={}", timeout_seconds, command)
        return {
            "success": False,
            "exit_code": None,
            "stdout": "",
            "stderr": "",
            "error": f"Command timed out after {timeout_seconds:g}s",
        }
    except (OperationCancelledError, asyncio.CancelledError):
        await _kill(process)
        raise

    exit_code = process.returncode
    logger.debug("bash.done exit_code={} elapsed={:.3f}s", exit_code, time.monotonic() - started)
    result: dict[str, Any] = {
        "success": exit_code == 0,
        "exit_code": exit_code,
        "stdout": truncate_output(stdout_bytes.decode("utf-8", errors="replace"), max_output_chars),
        "stderr": truncate_output(stderr_bytes.decode("utf-8", errors="replace"), max_output_chars),
    }
    if exit_code != 0:
        result["error"] = f"Command exited with code {exit_code}"
    return result


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


def create_bash_tool(
    *,
    workspace: Path,
    approval_level: Callable[[], BashApprovalLevel],
    default_timeout_seconds: float = 30.0,
    max_output_chars: int = 50_000,
) -> ToolDescriptor:
    """Build the bash tool bound to a workspace and a live approval level."""

    def _needs_approval(params: BashInput) -> bool:
        return requires_approval(params.command, approval_level())

    async def _handler(params: BashInput, context: ToolCallContext) -> dict[str, Any]:
        cwd = workspace
        if params.workdir:
            workdir = Path(params.workdir).expanduser()
            cwd = workdir if workdir.is_absolute() else (workspace / workdir).resolve()
        if not cwd.is_dir():
            raise FileNotFoundError(f"working directory does not exist: {cwd}")
        return await run_bash(
            params.command,
            cwd=cwd,
            timeout_seconds=params.timeout or default_timeout_seconds,
            cancellation=context.cancellation,
            max_output_chars=max_output_chars,
        )

    return ToolDescriptor(
        name=BASH_TOOL_NAME,
        description=BASH_DESCRIPTION,
        input_model=BashInput,
        handler=_handler,
        needs_approval=_needs_approval,
    )
